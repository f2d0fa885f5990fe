"""
Fallback Reporter Module

代理链路失败时的兜底：记录 warning，然后用原始异常调用本地渲染器。
"""
from typing import Any, Optional

from core.local_renderer import LocalErrorRenderer
from core.response_sink import ResponseSink
from schemas.error_context import ErrorContext
from utils.log_manager import get_logger


class FallbackReporter:
    """
    兜底上报器

    始终把 ErrorContext 中的原始 throwable 交给本地渲染器（而不是导致代理失败的异常）。
    调用前 TriggerGate 已把 reported 置为 True，且渲染器不经过代理链路，因此不会形成循环。
    """

    def __init__(self, renderer: LocalErrorRenderer, logger: Optional[Any] = None):
        self._renderer = renderer
        self._logger = logger or get_logger(__name__)

    def report(self, ctx: ErrorContext, sink: ResponseSink, cause: BaseException) -> None:
        self._logger.opt(exception=cause).warning(
            "Returning error reporting to local renderer | status={} cause={}",
            ctx.status_code,
            type(cause).__name__,
        )
        self._renderer.render(ctx, sink, ctx.throwable)
