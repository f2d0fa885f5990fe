"""
Error Proxy Middleware Module

ASGI 中间件：检测"错误状态码且尚未写出 body"的响应，构造 ErrorContext 并交给编排器。

- 状态码 >= 400 的 http.response.start 先暂存；后续 body 非空则原样放行
- body 为空且响应结束时，由编排器接管整个响应（状态码保持不变）
- 内层应用在响应开始前抛出异常时，按 500 处理，异常作为 throwable 传入

编排器是同步阻塞的，在 anyio 工作线程中执行，并发数由 CapacityLimiter 限制。
"""
from typing import Any, Callable, Dict, List, Optional, Tuple

import anyio.to_thread

from core.orchestrator import ErrorProxyOrchestrator
from core.resource_store import normalize_locale
from core.response_sink import AsgiResponseSink, Headers
from core.trigger_gate import MIN_ERROR_STATUS
from schemas.error_context import ErrorContext
from schemas.proxy import ProxyOutcome, ProxyReport
from utils.log_manager import get_logger

logger = get_logger(__name__)

# app.state 上保存编排器的属性名（由 main.py 的 lifespan 设置）
STATE_ATTR = "error_proxy"

Scope = Dict[str, Any]
Message = Dict[str, Any]


def parse_accept_language(header: Optional[str]) -> List[str]:
    """
    解析 Accept-Language，按 q 值从高到低返回规范化的 locale 列表（忽略 "*" 与 q=0）
    """
    if not header:
        return []
    weighted: List[Tuple[float, int, str]] = []
    for index, item in enumerate(header.split(",")):
        parts = [p.strip() for p in item.split(";")]
        tag = parts[0]
        if not tag or tag == "*":
            continue
        q = 1.0
        for param in parts[1:]:
            if param.startswith("q="):
                try:
                    q = float(param[2:])
                except ValueError:
                    q = 0.0
        if q <= 0:
            continue
        weighted.append((-q, index, normalize_locale(tag)))
    weighted.sort()
    return [locale for _, _, locale in weighted if locale]


def _request_uri(scope: Scope) -> str:
    """
    原始请求路径（不解码、不含查询串）；path 已包含 root_path
    """
    raw_path = scope.get("raw_path")
    if raw_path:
        return raw_path.split(b"?", 1)[0].decode("latin-1")
    return scope.get("path", "")


def _header(scope: Scope, name: bytes) -> Optional[str]:
    for key, value in scope.get("headers") or []:
        if key.lower() == name:
            return value.decode("latin-1")
    return None


class ErrorProxyMiddleware:
    """
    错误代理 ASGI 中间件

    Args:
        app: 内层 ASGI 应用
        orchestrator: 编排器；为 None 时在每个请求中从 app.state.error_proxy 读取
        default_locale: 请求未携带 Accept-Language 时使用
        max_concurrent_reports: 同时执行上报的工作线程上限
        enabled: 关闭时完全透传
    """

    def __init__(
        self,
        app: Callable,
        orchestrator: Optional[ErrorProxyOrchestrator] = None,
        default_locale: str = "en",
        max_concurrent_reports: int = 40,
        enabled: bool = True,
    ):
        self.app = app
        self._orchestrator = orchestrator
        self.default_locale = normalize_locale(default_locale)
        self.max_concurrent_reports = max_concurrent_reports
        self.enabled = enabled
        # CapacityLimiter 需要在事件循环中创建，延迟到第一次上报
        self._limiter: Optional[anyio.CapacityLimiter] = None

    def _get_orchestrator(self, scope: Scope) -> Optional[ErrorProxyOrchestrator]:
        if self._orchestrator is not None:
            return self._orchestrator
        app = scope.get("app")
        state = getattr(app, "state", None)
        return getattr(state, STATE_ATTR, None)

    def _build_context(self, scope: Scope, status_code: int, throwable: Optional[BaseException] = None) -> ErrorContext:
        locales = parse_accept_language(_header(scope, b"accept-language"))
        return ErrorContext(
            status_code=status_code,
            request_uri=_request_uri(scope),
            locale=locales[0] if locales else self.default_locale,
            bytes_written=0,
            throwable=throwable,
        )

    async def __call__(self, scope: Scope, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http" or not self.enabled:
            await self.app(scope, receive, send)
            return

        orchestrator = self._get_orchestrator(scope)
        if orchestrator is None:
            await self.app(scope, receive, send)
            return

        held_start: Optional[Message] = None
        response_started = False
        taken_over = False

        async def send_wrapper(message: Message) -> None:
            nonlocal held_start, response_started, taken_over
            if taken_over:
                # 响应已由编排器接管，丢弃内层应用的后续消息
                return

            if message["type"] == "http.response.start":
                if message["status"] >= MIN_ERROR_STATUS:
                    held_start = message
                    return
                response_started = True
                await send(message)
                return

            if message["type"] == "http.response.body" and held_start is not None:
                if message.get("body", b""):
                    # 错误响应自带内容，原样放行
                    start, held_start = held_start, None
                    response_started = True
                    await send(start)
                    await send(message)
                    return
                if message.get("more_body", False):
                    return
                start, held_start = held_start, None
                taken_over = True
                ctx = self._build_context(scope, start["status"])
                await self._report(orchestrator, ctx, send, start.get("headers") or [])
                return

            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            if response_started or taken_over:
                raise
            taken_over = True
            held_start = None
            logger.opt(exception=exc).error(
                "Unhandled exception before response started, reporting as 500",
                extra={"path": scope.get("path"), "error_type": type(exc).__name__}
            )
            ctx = self._build_context(scope, 500, throwable=exc)
            await self._report(orchestrator, ctx, send, [])
            return

        if held_start is not None and not taken_over:
            # 内层应用只发了 start 就结束：视为空 body 的错误响应
            start, held_start = held_start, None
            taken_over = True
            ctx = self._build_context(scope, start["status"])
            await self._report(orchestrator, ctx, send, start.get("headers") or [])

    async def _report(
        self,
        orchestrator: ErrorProxyOrchestrator,
        ctx: ErrorContext,
        send: Callable,
        headers: Headers,
    ) -> ProxyReport:
        if self._limiter is None:
            self._limiter = anyio.CapacityLimiter(self.max_concurrent_reports)

        sink = AsgiResponseSink(ctx.status_code, send, headers)
        report = await anyio.to_thread.run_sync(orchestrator.report, ctx, sink, limiter=self._limiter)

        # 未触发（或兜底未能写出任何内容）时，补发原始的空响应
        if not sink.committed:
            await send({
                "type": "http.response.start",
                "status": ctx.status_code,
                "headers": [(k, v) for k, v in headers if k.lower() != b"content-length"]
                + [(b"content-length", b"0")],
            })
            await send({"type": "http.response.body", "body": b"", "more_body": False})
        elif not sink.finished:
            await send({"type": "http.response.body", "body": b"", "more_body": False})

        if report.outcome != ProxyOutcome.SUCCESS:
            logger.debug(
                "Error proxy finished without proxied content",
                extra={"outcome": report.outcome.value, "status_code": ctx.status_code}
            )
        return report
