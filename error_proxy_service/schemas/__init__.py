"""
Schemas Package

错误代理链路的数据模型：
- error_context: 单请求错误上下文（ErrorContext）
- proxy: 解析目标、状态机状态与执行结果
"""
from .error_context import ErrorContext
from .proxy import (
    ProxyOutcome,
    ProxyReport,
    ProxyState,
    ProxyTarget,
    TargetSource,
)

__all__ = [
    "ErrorContext",
    "ProxyOutcome",
    "ProxyReport",
    "ProxyState",
    "ProxyTarget",
    "TargetSource",
]
