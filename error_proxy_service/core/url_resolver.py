"""
Locale URL Resolver Module

把 (状态码, locale) 解析为基础代理 URL：先查状态码 key，再查默认 key "0"，都没有则 NotConfigured。
"""
from typing import Any, Optional

from core.errors import NotConfiguredError
from core.resource_store import LocaleResourceStore
from schemas.proxy import ProxyTarget, TargetSource
from utils.log_manager import get_logger

DEFAULT_STATUS_KEY = "0"


class LocaleUrlResolver:
    """
    代理 URL 解析器

    locale 回退链（语言/地区/根 bundle）由 LocaleResourceStore 负责；
    这里只区分"key 不存在"和"其他错误"，后者也统一转成 NotConfiguredError，不向调用方抛出原始异常。
    """

    def __init__(self, proxy_urls: LocaleResourceStore, logger: Optional[Any] = None):
        self._proxy_urls = proxy_urls
        self._logger = logger or get_logger(__name__)

    def resolve(self, status_code: int, locale: str) -> ProxyTarget:
        """
        解析代理目标

        Args:
            status_code: 响应状态码
            locale: 请求 locale

        Returns:
            ProxyTarget: 命中的基础 URL 及来源

        Raises:
            NotConfiguredError: 状态码 key 与默认 key 都不存在，或资源查找本身出错
        """
        try:
            url = self._proxy_urls.lookup(locale, str(status_code))
            if url:
                return ProxyTarget(base_url=url, source=TargetSource.STATUS_SPECIFIC, locale=locale)

            url = self._proxy_urls.lookup(locale, DEFAULT_STATUS_KEY)
            if url:
                self._logger.debug(
                    "No proxy url for status {}, using default key",
                    status_code,
                    extra={"locale": locale}
                )
                return ProxyTarget(base_url=url, source=TargetSource.DEFAULT, locale=locale)
        except Exception as e:
            raise NotConfiguredError(status_code, locale, reason=f"{type(e).__name__}: {e}") from e

        raise NotConfiguredError(status_code, locale)
