"""
FastAPI Entry Point

错误代理服务的 FastAPI 入口：加载配置与资源，组装编排器并安装 ErrorProxyMiddleware。

HTTP 异常统一以空 body 返回，由错误代理负责渲染错误页（远程页面或本地兜底页）。

启动方式：
    python main.py                 # 或安装后执行 error-proxy-service
    uvicorn main:app --port 8000   # 需要 reload / 多 worker 时直接使用 uvicorn CLI
"""
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

# 在导入其他模块之前，先加载 .env 文件
from dotenv import load_dotenv
load_dotenv()

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.proxy_config import ProxyConfig, get_proxy_config
from core.error_proxy_middleware import STATE_ATTR, ErrorProxyMiddleware
from core.orchestrator import ErrorProxyOrchestrator, build_orchestrator
from core.resource_store import ErrorResources
from utils.log_manager import get_logger, set_request_id

logger = get_logger(__name__)


def create_app(
    config: Optional[ProxyConfig] = None,
    orchestrator: Optional[ErrorProxyOrchestrator] = None,
) -> FastAPI:
    """
    创建 FastAPI 应用

    Args:
        config: 代理配置，默认 get_proxy_config()
        orchestrator: 预先组装好的编排器（测试注入）；为 None 时在 lifespan 中按配置组装
    """
    config = config or get_proxy_config()

    # ============================================================
    # 生命周期管理
    # ============================================================
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Error proxy 服务启动中...")

        resources: Optional[ErrorResources] = None
        proxy = orchestrator
        if proxy is None:
            try:
                # Fail fast：资源文件有问题时在启动阶段暴露，而不是等到第一个错误请求
                resources = ErrorResources.load(config.resources_path)
            except Exception as e:
                logger.error(
                    "Error proxy 资源加载失败",
                    extra={"error": str(e), "path": str(config.resources_path)}
                )
                raise
            proxy = build_orchestrator(config, resources)

        app.state.error_resources = resources
        setattr(app.state, STATE_ATTR, proxy)
        logger.info("✓ Error proxy 服务已启动 | enabled={}", config.enabled)

        try:
            yield
        finally:
            logger.info("Error proxy 服务关闭中...")
            try:
                if orchestrator is None:
                    proxy.close()
                logger.info("✓ Error proxy 服务已关闭")
            except Exception as e:
                logger.error(
                    "服务关闭出错",
                    extra={"error": str(e)}
                )

    app = FastAPI(
        title="Error Proxy Service",
        description="把错误页渲染代理到外部 URL 的服务",
        version="1.0.0",
        lifespan=lifespan
    )

    # 注意：Starlette 中后添加的中间件在外层，request_id 中间件需要包住错误代理
    app.add_middleware(
        ErrorProxyMiddleware,
        default_locale=config.default_locale,
        max_concurrent_reports=config.max_concurrent_reports,
        enabled=config.enabled,
    )

    # ============================================================
    # Middleware: Request ID 注入
    # ============================================================
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """
        请求 ID 中间件

        从 Trace-ID header 读取或生成 request_id，写入日志上下文并回写到响应头。
        """
        request_id = request.headers.get("Trace-ID")
        if not request_id:
            request_id = f"req-{datetime.now().strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:8]}"

        set_request_id(request_id)

        response = await call_next(request)
        response.headers["Trace-ID"] = request_id
        return response

    # ============================================================
    # 异常处理：错误页交给错误代理
    # ============================================================
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """
        HTTP 异常只返回状态码与头部，body 留空，由 ErrorProxyMiddleware 负责渲染。
        """
        return Response(status_code=exc.status_code, headers=exc.headers)

    # ============================================================
    # API 端点
    # ============================================================
    @app.get("/")
    async def root():
        return {"status": "ok", "service": "Error Proxy Service"}

    @app.get("/health", tags=["Health"])
    async def health_check():
        """
        健康检查端点

        返回错误代理是否启用以及已加载资源的 locale 数量。
        """
        resources: Optional[ErrorResources] = getattr(app.state, "error_resources", None)
        return {
            "status": "ok",
            "error_proxy_enabled": config.enabled,
            "resources_loaded": resources is not None,
            "url_locales": resources.proxy_urls.locales if resources else [],
            "description_locales": resources.status_descriptions.locales if resources else [],
        }

    return app


app = create_app()


def run(config: Optional[ProxyConfig] = None) -> None:
    """
    用 uvicorn 启动服务，监听地址取自 ProxyConfig（ERROR_PROXY_HOST / ERROR_PROXY_PORT）
    """
    config = config or get_proxy_config()
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    run()

