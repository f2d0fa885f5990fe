"""
Trigger Gate Module

决定某个请求是否需要走错误代理，每个 ErrorContext 最多放行一次。
"""
from typing import Any, Optional

from schemas.error_context import ErrorContext
from utils.log_manager import get_logger

# 低于该状态码（1xx/2xx/3xx）不做任何处理
MIN_ERROR_STATUS = 400


class TriggerGate:
    """
    上报闸门

    以下任一条件成立时不上报：
    - status_code < 400
    - 已经有 body 写给客户端（bytes_written > 0）
    - 该错误已经上报过

    宿主可能从多个路径触发错误收尾逻辑，check-and-set 由 ErrorContext.mark_reported() 保证原子性。
    """

    def __init__(self, logger: Optional[Any] = None):
        self._logger = logger or get_logger(__name__)

    def should_report(self, ctx: ErrorContext) -> bool:
        if ctx.status_code < MIN_ERROR_STATUS:
            return False
        if ctx.bytes_written > 0:
            self._logger.debug(
                "Skip error proxy: response already has content",
                extra={"status_code": ctx.status_code, "bytes_written": ctx.bytes_written}
            )
            return False
        if not ctx.mark_reported():
            self._logger.debug(
                "Skip error proxy: error already reported",
                extra={"status_code": ctx.status_code}
            )
            return False
        return True
