"""
Error Proxy Orchestrator Module

错误代理编排器：闸门 → 解析 → 构建 → 拉取 → 流式写回，任何失败统一转入兜底。

状态机：

    IDLE → GATED → RESOLVED → BUILT → FETCHED → STREAMING → DONE
                 ↘ (GATED 之后任一状态失败) FALLBACK → DONE

每次调用只有一个 IDLE 初始状态，状态不会被重复进入。
"""
import time
from typing import Any, List, Optional

from config.proxy_config import ProxyConfig
from core.description_builder import RequestDescriptionBuilder
from core.errors import ProxyError, StreamingFailureError
from core.fallback_reporter import FallbackReporter
from core.local_renderer import LocalErrorRenderer
from core.remote_fetcher import RemoteFetcher
from core.resource_store import ErrorResources
from core.response_sink import ResponseSink
from core.trigger_gate import TriggerGate
from core.url_resolver import LocaleUrlResolver
from schemas.error_context import ErrorContext
from schemas.proxy import ProxyOutcome, ProxyReport, ProxyState
from utils.log_manager import get_component_logger, get_logger


class _StateTrail:
    """记录单次执行经过的状态，禁止重复进入"""

    def __init__(self):
        self.states: List[ProxyState] = [ProxyState.IDLE]

    @property
    def current(self) -> ProxyState:
        return self.states[-1]

    def advance(self, state: ProxyState) -> None:
        if state in self.states:
            raise RuntimeError(f"Proxy state {state.value} re-entered after {self.current.value}")
        self.states.append(state)


class ErrorProxyOrchestrator:
    """
    错误代理编排器

    所有协作者在组装时注入；兜底通过组合的 FallbackReporter 完成，而不是继承默认渲染器。
    """

    def __init__(
        self,
        gate: TriggerGate,
        resolver: LocaleUrlResolver,
        builder: RequestDescriptionBuilder,
        fetcher: RemoteFetcher,
        fallback: FallbackReporter,
        logger: Optional[Any] = None,
    ):
        self._gate = gate
        self._resolver = resolver
        self._builder = builder
        self._fetcher = fetcher
        self._fallback = fallback
        self._logger = logger or get_logger(__name__)

    def report(self, ctx: ErrorContext, sink: ResponseSink) -> ProxyReport:
        """
        对一个错误上下文执行代理上报

        Returns:
            ProxyReport: tagged result；失败结果都已经走过兜底，不会再抛给调用方
        """
        trail = _StateTrail()
        if not self._gate.should_report(ctx):
            return ProxyReport(outcome=ProxyOutcome.NOT_TRIGGERED, states=trail.states)
        trail.advance(ProxyState.GATED)

        started = time.perf_counter()
        url: Optional[str] = None
        try:
            target = self._resolver.resolve(ctx.status_code, ctx.locale)
            trail.advance(ProxyState.RESOLVED)

            url = self._builder.build(target, ctx)
            trail.advance(ProxyState.BUILT)
            # 完整 URL 含请求信息，只在 TRACE 级别输出
            self._logger.trace("Proxying error reporting to {}", url)

            with self._fetcher.fetch(url) as remote:
                trail.advance(ProxyState.FETCHED)
                # 只透传内容元数据，状态行保持原样
                sink.set_content_type(remote.content_type)
                sink.set_content_length(remote.content_length)
                trail.advance(ProxyState.STREAMING)
                remote.copy_to(sink)
            self._finish(sink)
        except ProxyError as e:
            return self._fall_back(ctx, sink, trail, e.outcome, e, url)
        except Exception as e:
            return self._fall_back(ctx, sink, trail, ProxyOutcome.UNEXPECTED_FAILURE, e, url)

        trail.advance(ProxyState.DONE)
        self._logger.debug(
            "Error page proxied | status={}",
            ctx.status_code,
            total_ms=int((time.perf_counter() - started) * 1000),
        )
        return ProxyReport(outcome=ProxyOutcome.SUCCESS, states=trail.states, url=url)

    @staticmethod
    def _finish(sink: ResponseSink) -> None:
        try:
            sink.finish()
        except Exception as e:
            raise StreamingFailureError(
                f"Failed to finish proxied response: {type(e).__name__}: {e}",
                bytes_copied=sink.bytes_written,
                original_error=e,
            ) from e

    def _fall_back(
        self,
        ctx: ErrorContext,
        sink: ResponseSink,
        trail: _StateTrail,
        outcome: ProxyOutcome,
        cause: BaseException,
        url: Optional[str],
    ) -> ProxyReport:
        trail.advance(ProxyState.FALLBACK)
        try:
            self._fallback.report(ctx, sink, cause)
        except Exception as e:
            # 兜底本身失败时不再产生第二个客户端可见的错误
            self._logger.opt(exception=e).error(
                "Local error renderer failed | status={}",
                ctx.status_code,
            )
        trail.advance(ProxyState.DONE)
        return ProxyReport(
            outcome=outcome,
            states=trail.states,
            url=url,
            error=f"{type(cause).__name__}: {cause}",
        )

    def close(self) -> None:
        self._fetcher.close()


def build_orchestrator(
    config: ProxyConfig,
    resources: ErrorResources,
    fetcher: Optional[RemoteFetcher] = None,
) -> ErrorProxyOrchestrator:
    """
    组装编排器：每个组件注入绑定了 component 字段的 logger

    Args:
        config: 代理配置
        resources: 启动时加载的不可变资源
        fetcher: 可选的自定义拉取器（测试注入 MockTransport 时使用）
    """
    renderer = LocalErrorRenderer(
        resources.status_descriptions,
        show_report=config.show_report,
        show_server_info=config.show_server_info,
        server_info=config.server_info,
        logger=get_component_logger("local_renderer"),
    )
    return ErrorProxyOrchestrator(
        gate=TriggerGate(logger=get_component_logger("trigger_gate")),
        resolver=LocaleUrlResolver(resources.proxy_urls, logger=get_component_logger("url_resolver")),
        builder=RequestDescriptionBuilder(
            resources.status_descriptions,
            logger=get_component_logger("description_builder"),
        ),
        fetcher=fetcher or RemoteFetcher(
            timeout=config.fetch_timeout_sec,
            chunk_size=config.chunk_size,
            follow_redirects=config.follow_redirects,
            logger=get_component_logger("remote_fetcher"),
        ),
        fallback=FallbackReporter(renderer, logger=get_component_logger("fallback_reporter")),
        logger=get_component_logger("orchestrator"),
    )
