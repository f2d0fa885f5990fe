"""
Response Sink Module

客户端输出的抽象。编排器与兜底渲染器只通过 ResponseSink 写响应：
可以设置 content-type / content-length、增量写 body，但不能修改状态码。

AsgiResponseSink 在工作线程中使用，通过 anyio.from_thread 把 ASGI 消息送回事件循环。
"""
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import anyio.from_thread

Headers = List[Tuple[bytes, bytes]]

_CONTENT_HEADERS = {b"content-type", b"content-length"}


class ResponseSink(ABC):
    """
    响应输出抽象

    第一次 write()（或 finish()）之后响应即"已提交"：状态行与头部已发出，不能再修改。
    """

    def __init__(self, status_code: int):
        self.status_code = status_code
        self.content_type: Optional[str] = None
        self.content_length: Optional[int] = None
        self.bytes_written = 0
        self._committed = False
        self._finished = False

    @property
    def committed(self) -> bool:
        return self._committed

    @property
    def finished(self) -> bool:
        return self._finished

    def set_content_type(self, content_type: Optional[str]) -> None:
        self._ensure_not_committed()
        self.content_type = content_type

    def set_content_length(self, content_length: Optional[int]) -> None:
        self._ensure_not_committed()
        # 远程未给出长度时（-1 / None）不设置，交给分块传输
        if content_length is not None and content_length < 0:
            content_length = None
        self.content_length = content_length

    def write(self, data: bytes) -> None:
        if self._finished:
            raise RuntimeError("Response already finished")
        if not data:
            return
        if not self._committed:
            self._commit()
        self._write_body(data, more_body=True)
        self.bytes_written += len(data)

    def finish(self) -> None:
        """结束响应，可重复调用"""
        if self._finished:
            return
        if not self._committed:
            self._commit()
        self._write_body(b"", more_body=False)
        self._finished = True

    def _commit(self) -> None:
        self._start_response()
        self._committed = True

    def _ensure_not_committed(self) -> None:
        if self._committed:
            raise RuntimeError("Response already committed, headers can no longer change")

    @abstractmethod
    def _start_response(self) -> None:
        """发出状态行与头部"""

    @abstractmethod
    def _write_body(self, data: bytes, more_body: bool) -> None:
        """发出一段 body"""


class AsgiResponseSink(ResponseSink):
    """
    基于 ASGI send 的 sink

    Args:
        status_code: 原始响应状态码（客户端看到的状态行）
        send: ASGI send callable（运行在事件循环中）
        headers: 原始响应头部；其中的 content-type / content-length 会被远程内容替换
        portal_run: 从工作线程调度协程的函数，默认 anyio.from_thread.run
    """

    def __init__(
        self,
        status_code: int,
        send: Callable[[Dict[str, Any]], Awaitable[None]],
        headers: Optional[Headers] = None,
        portal_run: Optional[Callable[..., Any]] = None,
    ):
        super().__init__(status_code)
        self._send = send
        self._headers: Headers = [
            (k, v) for k, v in (headers or []) if k.lower() not in _CONTENT_HEADERS
        ]
        self._portal_run = portal_run or anyio.from_thread.run

    def _start_response(self) -> None:
        headers = list(self._headers)
        if self.content_type:
            headers.append((b"content-type", self.content_type.encode("latin-1")))
        if self.content_length is not None:
            headers.append((b"content-length", str(self.content_length).encode("latin-1")))
        self._portal_run(
            self._send,
            {"type": "http.response.start", "status": self.status_code, "headers": headers},
        )

    def _write_body(self, data: bytes, more_body: bool) -> None:
        self._portal_run(
            self._send,
            {"type": "http.response.body", "body": data, "more_body": more_body},
        )
