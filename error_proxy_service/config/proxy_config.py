"""
Proxy Configuration Module

基于 pydantic-settings 的错误代理全局配置，支持环境变量（前缀 ERROR_PROXY_）和 .env 文件。
"""
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 默认资源文件：与 config 包同级的 resources/error_proxy.yaml（源码树与安装后的布局一致，由 package-data 打包）
DEFAULT_RESOURCES_PATH = Path(__file__).parent.parent / "resources" / "error_proxy.yaml"


class ProxyConfig(BaseSettings):
    """
    错误代理配置类

    通过 get_proxy_config() 获取延迟初始化的单例。
    """

    model_config = SettingsConfigDict(
        env_prefix="ERROR_PROXY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ============================================================
    # 开关与资源
    # ============================================================
    enabled: bool = Field(
        default=True,
        description="是否启用错误代理；关闭时错误响应原样透传"
    )

    resources_path: Path = Field(
        default=DEFAULT_RESOURCES_PATH,
        description="包含 proxy_urls / status_descriptions 的 YAML 资源文件"
    )

    default_locale: str = Field(
        default="en",
        description="请求未携带 Accept-Language 时使用的 locale"
    )

    # ============================================================
    # 服务监听（uvicorn）
    # ============================================================
    host: str = Field(
        default="0.0.0.0",
        description="run() 启动 uvicorn 时监听的地址"
    )

    port: int = Field(
        default=8000,
        gt=0,
        lt=65536,
        description="run() 启动 uvicorn 时监听的端口"
    )

    # ============================================================
    # 远程拉取（RemoteFetcher）
    # ============================================================
    fetch_timeout_sec: Optional[float] = Field(
        default=None,
        gt=0,
        description="远程拉取超时（秒），None 表示不设超时"
    )

    chunk_size: int = Field(
        default=8192,
        gt=0,
        description="流式拷贝时每块的字节数"
    )

    follow_redirects: bool = Field(
        default=True,
        description="远程拉取时是否跟随重定向"
    )

    max_concurrent_reports: int = Field(
        default=40,
        gt=0,
        description="同时执行代理上报的工作线程上限"
    )

    # ============================================================
    # 本地兜底页面（LocalErrorRenderer）
    # ============================================================
    show_report: bool = Field(
        default=True,
        description="兜底页面是否展示 Message / Description 等详情"
    )

    show_server_info: bool = Field(
        default=True,
        description="兜底页面是否展示服务信息页脚"
    )

    server_info: str = Field(
        default="Error Proxy Service",
        description="兜底页面页脚展示的服务名称"
    )


# ============================================================
# 单例实例
# ============================================================
proxy_config: Optional[ProxyConfig] = None


def get_proxy_config() -> ProxyConfig:
    """
    获取全局配置实例（延迟初始化）

    Returns:
        ProxyConfig: 全局配置实例
    """
    global proxy_config
    if proxy_config is None:
        proxy_config = ProxyConfig()
    return proxy_config
