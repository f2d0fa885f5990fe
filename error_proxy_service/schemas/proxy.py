"""
Proxy Schema Definition

定义错误代理链路中的解析目标、状态机状态与单次执行结果。
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TargetSource(str, Enum):
    """代理 URL 的来源：状态码专属 key 或默认 key "0" """
    STATUS_SPECIFIC = "status-specific"
    DEFAULT = "default"


class ProxyState(str, Enum):
    """
    编排器状态

    IDLE → GATED → RESOLVED → BUILT → FETCHED → STREAMING → DONE
    GATED 之后任一状态失败 → FALLBACK → DONE
    """
    IDLE = "IDLE"
    GATED = "GATED"
    RESOLVED = "RESOLVED"
    BUILT = "BUILT"
    FETCHED = "FETCHED"
    STREAMING = "STREAMING"
    FALLBACK = "FALLBACK"
    DONE = "DONE"


class ProxyOutcome(str, Enum):
    """单次上报的最终结果（tagged result）"""
    SUCCESS = "SUCCESS"                        # 远程内容已完整写回客户端
    NOT_TRIGGERED = "NOT_TRIGGERED"            # 状态码 <400 / 已写出内容 / 已上报
    NOT_CONFIGURED = "NOT_CONFIGURED"          # 状态码与默认 key 都未配置 URL
    CONNECTION_FAILURE = "CONNECTION_FAILURE"  # 建立远程连接失败
    STREAMING_FAILURE = "STREAMING_FAILURE"    # 拷贝 body 过程中 I/O 失败
    UNEXPECTED_FAILURE = "UNEXPECTED_FAILURE"  # 其他未预期异常


class ProxyTarget(BaseModel):
    """
    解析结果：某状态码 + locale 对应的基础代理 URL

    由 LocaleUrlResolver 产生，RequestDescriptionBuilder 立即消费，不做持久化。
    """
    model_config = ConfigDict(extra='forbid', frozen=True)

    base_url: str = Field(
        ...,
        min_length=1,
        description="配置中的基础 URL（可能已包含查询串）"
    )

    source: TargetSource = Field(
        ...,
        description="命中的 key 类型"
    )

    locale: str = Field(
        default="",
        description="解析时使用的 locale"
    )


class ProxyReport(BaseModel):
    """
    编排器单次执行的结果
    """
    model_config = ConfigDict(extra='forbid')

    outcome: ProxyOutcome = Field(
        ...,
        description="最终结果"
    )

    states: List[ProxyState] = Field(
        default_factory=list,
        description="按顺序经过的状态"
    )

    url: Optional[str] = Field(
        default=None,
        description="实际请求的完整代理 URL（构建成功时才有）"
    )

    error: Optional[str] = Field(
        default=None,
        description="失败原因摘要"
    )

    @property
    def fell_back(self) -> bool:
        return ProxyState.FALLBACK in self.states
