"""
Request Description Builder Module

把请求上下文作为查询参数追加到基础代理 URL 上：

    <base_url>?requestUri=...&statusCode=...[&statusDescription=...][&throwable=...]

每个值单独按 application/x-www-form-urlencoded 规则编码（空格 → "+"，"/" → "%2F"，非 ASCII 按 UTF-8）。
"""
from typing import Any, Optional
from urllib.parse import quote_plus

from core.errors import DescriptionLookupError
from core.resource_store import LocaleResourceStore
from schemas.error_context import ErrorContext
from schemas.proxy import ProxyTarget
from utils.log_manager import get_logger

DESCRIPTION_KEY_PREFIX = "http."


def encode_value(value: Any) -> str:
    return quote_plus(str(value), safe="", encoding="utf-8")


def describe_throwable(throwable: BaseException) -> str:
    """
    异常的简短描述："<类型>: <消息>"，消息为空时只有类型

    内置异常只用类名，其余带上模块路径；从不包含堆栈。
    """
    cls = type(throwable)
    if cls.__module__ == "builtins":
        name = cls.__qualname__
    else:
        name = f"{cls.__module__}.{cls.__qualname__}"
    message = str(throwable)
    return f"{name}: {message}" if message else name


class RequestDescriptionBuilder:
    """
    代理 URL 构建器

    statusDescription 查找失败只记 warning 并省略该字段，不影响其余参数，也不触发兜底。
    """

    def __init__(self, status_descriptions: LocaleResourceStore, logger: Optional[Any] = None):
        self._status_descriptions = status_descriptions
        self._logger = logger or get_logger(__name__)

    def build(self, target: ProxyTarget, ctx: ErrorContext) -> str:
        separator = "&" if "?" in target.base_url else "?"
        parts = [
            target.base_url,
            separator,
            "requestUri=",
            encode_value(ctx.request_uri),
            "&statusCode=",
            encode_value(ctx.status_code),
        ]

        description = self._lookup_description(ctx)
        if description is not None:
            parts.append("&statusDescription=")
            parts.append(encode_value(description))

        if ctx.throwable is not None:
            parts.append("&throwable=")
            parts.append(encode_value(describe_throwable(ctx.throwable)))

        return "".join(parts)

    def _lookup_description(self, ctx: ErrorContext) -> Optional[str]:
        key = f"{DESCRIPTION_KEY_PREFIX}{ctx.status_code}"
        try:
            description = self._status_descriptions.lookup(ctx.locale, key)
            if description is None:
                raise DescriptionLookupError(key, ctx.locale)
            return description
        except Exception as e:
            self._logger.warning(
                "Failed to get status description for {}",
                ctx.status_code,
                extra={"error": str(e), "error_type": type(e).__name__}
            )
            return None
