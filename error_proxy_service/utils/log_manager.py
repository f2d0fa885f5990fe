"""
Logging Management Module

基于 loguru 的日志系统：进程级一次性配置 + contextvars 传递 request_id。
错误代理链路的各组件不直接持有全局 logger，而是在组装时通过
get_component_logger() 注入绑定了 component 字段的子 logger。
"""
import contextvars
import os
import sys
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

# ============================================================
# PID Guard：防止多 worker / 热重载时重复配置
# ============================================================
_CONFIGURED_PID: Optional[int] = None

# ============================================================
# ContextVar 定义
# ============================================================
request_id_var = contextvars.ContextVar("request_id", default="system")

# 出现在 extra 中时追加到 message 末尾的耗时字段
_WHITELIST_LATENCY_FIELDS: Tuple[str, ...] = (
    "fetch_ms",
    "stream_ms",
    "total_ms",
)

_VALID_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}

BASE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "[{extra[request_id]}] | "
    "<cyan>{extra[component]}</cyan> | "
    "<cyan>{name}:{function}:{line}</cyan> - "
    "<level>{message}</level>"
)


def _format_kv_pairs(pairs: List[Tuple[str, Any]]) -> str:
    return ", ".join(f"{k}={v}" for k, v in pairs)


def _patch_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Loguru patcher：格式化前注入 request_id / component，并追加白名单耗时字段。
    """
    extra = record.get("extra")
    if not isinstance(extra, dict):
        extra = {}
        record["extra"] = extra

    # 避免 {extra[request_id]} / {extra[component]} KeyError
    if "request_id" not in extra:
        extra["request_id"] = request_id_var.get()
    extra.setdefault("component", "-")

    latency_pairs: List[Tuple[str, Any]] = [
        (k, extra[k]) for k in _WHITELIST_LATENCY_FIELDS if k in extra
    ]
    if latency_pairs and "total_ms=" not in record.get("message", ""):
        record["message"] = f"{record['message']} | {_format_kv_pairs(latency_pairs)}"

    return record


# ============================================================
# 核心配置函数
# ============================================================
def configure_logger():
    """
    配置 loguru logger

    1. PID guard：每个进程只配置一次
    2. 日志级别取 LOG_LEVEL，其次 LOGURU_LEVEL，默认 INFO；非法值回退 INFO
    3. 移除默认 handler，安装 patcher，输出到 stdout
    """
    global _CONFIGURED_PID

    current_pid = os.getpid()
    if _CONFIGURED_PID == current_pid:
        return

    log_level = (os.getenv("LOG_LEVEL") or os.getenv("LOGURU_LEVEL") or "INFO").upper()
    if log_level not in _VALID_LEVELS:
        log_level = "INFO"

    logger.remove()
    logger.configure(patcher=_patch_record)
    logger.add(
        sys.stdout,
        format=BASE_FORMAT,
        level=log_level,
        colorize=True,
        enqueue=True,
    )

    logger.info("Logger configured: level={}", log_level)

    _CONFIGURED_PID = current_pid


# ============================================================
# Helper 函数
# ============================================================
def get_logger(name: Optional[str] = None):
    """
    获取日志记录器实例

    Args:
        name: 模块名称（loguru 自动记录 {name}，这里保留参数以便统一调用方式）

    Returns:
        Logger: loguru logger 实例
    """
    return logger


def get_component_logger(component: str):
    """
    获取绑定了 component 字段的子 logger，用于在组装阶段注入到各组件。
    """
    return logger.bind(component=component)


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def get_request_id() -> str:
    """
    获取当前上下文的请求 ID，未设置时返回 "system"
    """
    return request_id_var.get()


@contextmanager
def LogContext(request_id: str):
    """
    日志上下文管理器

    进入时设置 request_id，退出时恢复之前的值。

    Usage:
        ```python
        with LogContext("req-123"):
            logger.info("This log will have request_id=req-123")
        ```
    """
    token = request_id_var.set(request_id)
    try:
        yield
    finally:
        try:
            request_id_var.reset(token)
        except (ValueError, LookupError):
            # token 属于其他上下文（例如在工作线程中复制的 context）
            request_id_var.set("system")


# 模块导入时自动配置
configure_logger()
