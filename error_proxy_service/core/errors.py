"""
Project-level error definitions.

ProxyError is the internal exception type of the error proxy chain. Every
subclass carries a stable code and the ProxyOutcome the orchestrator maps it
to; none of them is ever surfaced to the client.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from schemas.proxy import ProxyOutcome


class ProxyError(Exception):
    """
    错误代理链路的基类异常

    Fields:
    - code: 稳定错误码（用于日志检索）
    - outcome: 编排器对应的 ProxyOutcome
    - details: 诊断信息（只用于日志）
    """

    code: str = "PROXY_ERROR"
    outcome: ProxyOutcome = ProxyOutcome.UNEXPECTED_FAILURE

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:  # for logs only
        return self.message


class NotConfiguredError(ProxyError):
    """状态码专属 key 与默认 key "0" 都没有配置代理 URL"""

    code = "NOT_CONFIGURED"
    outcome = ProxyOutcome.NOT_CONFIGURED

    def __init__(self, status_code: int, locale: str, reason: Optional[str] = None):
        message = f"No proxy url configured for status={status_code} locale={locale or 'default'}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, details={"status_code": status_code, "locale": locale})
        self.status_code = status_code
        self.locale = locale


class ConnectionFailureError(ProxyError):
    """建立远程连接失败（DNS、拒绝连接、非法 URL、超时等）"""

    code = "CONNECTION_FAILURE"
    outcome = ProxyOutcome.CONNECTION_FAILURE

    def __init__(self, message: str, url: Optional[str] = None, original_error: Optional[BaseException] = None):
        super().__init__(message, details={"url": url})
        self.url = url
        self.original_error = original_error


class StreamingFailureError(ProxyError):
    """
    拷贝远程 body 到客户端过程中发生 I/O 失败

    字节可能已经写给客户端，因此不可重试。
    """

    code = "STREAMING_FAILURE"
    outcome = ProxyOutcome.STREAMING_FAILURE

    def __init__(self, message: str, bytes_copied: int = 0, original_error: Optional[BaseException] = None):
        super().__init__(message, details={"bytes_copied": bytes_copied})
        self.bytes_copied = bytes_copied
        self.original_error = original_error


class DescriptionLookupError(ProxyError):
    """
    状态描述查找失败

    只在 RequestDescriptionBuilder 内部使用：记录日志后省略 statusDescription 字段，不触发兜底。
    """

    code = "DESCRIPTION_LOOKUP_FAILURE"

    def __init__(self, key: str, locale: str):
        super().__init__(f"No status description for key={key} locale={locale or 'default'}")
        self.key = key
        self.locale = locale
