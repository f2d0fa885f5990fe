"""
Error Context Definition

单个请求的未上报错误状态。由宿主管道在检测到错误状态码时创建，请求结束时销毁。
"""
import threading
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ErrorContext:
    """
    错误上下文

    Fields:
    - status_code: 客户端可见的响应状态码（>= 100）
    - request_uri: 原始请求路径
    - locale: locale 标识（例如 "en"、"fr_CA"）
    - bytes_written: 已写给客户端的 body 字节数
    - throwable: 导致该错误的异常（可选）

    reported 只能由 mark_reported() 从 False 翻转为 True，且最多一次。
    """

    status_code: int
    request_uri: str
    locale: str = ""
    bytes_written: int = 0
    throwable: Optional[BaseException] = None
    _reported: bool = field(default=False, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.status_code < 100:
            raise ValueError(f"status_code must be >= 100, got {self.status_code}")
        if self.bytes_written < 0:
            raise ValueError(f"bytes_written must be >= 0, got {self.bytes_written}")

    @property
    def reported(self) -> bool:
        return self._reported

    def mark_reported(self) -> bool:
        """
        原子 check-and-set：第一次调用返回 True，之后都返回 False
        """
        with self._lock:
            if self._reported:
                return False
            self._reported = True
            return True
