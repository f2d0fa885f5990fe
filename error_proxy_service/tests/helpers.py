"""
测试辅助工具

错误代理链路测试共用的测试替身：记录型 sink、可追踪关闭的字节流、MockTransport 拉取器与资源数据。
"""
from typing import Any, Callable, Dict, Iterator, List, Optional

import httpx

from core.remote_fetcher import RemoteFetcher
from core.response_sink import ResponseSink


RESOURCE_DATA = {
    "proxy_urls": {
        "default": {
            "0": "http://err.example/default",
            "404": "http://err.example/404",
            "503": "http://err.example/e?x=1",
        },
        "fr": {
            "404": "http://err.example/fr/404",
        },
    },
    "status_descriptions": {
        "default": {
            "http.404": "Not Found",
            "http.500": "Internal Server Error",
            "http.503": "Service Unavailable",
            "http.404.desc": "The requested resource is not available.",
        },
        "fr": {
            "http.404": "Non trouvé",
        },
    },
}


class RecordingSink(ResponseSink):
    """
    记录所有输出的 ResponseSink

    Args:
        status_code: 原始响应状态码
        fail_after_bytes: 已写出不少于该字节数后，下一次写入抛出 OSError（模拟客户端断开）
    """

    def __init__(self, status_code: int = 500, fail_after_bytes: Optional[int] = None):
        super().__init__(status_code)
        self.fail_after_bytes = fail_after_bytes
        self.started: Optional[Dict[str, Any]] = None
        self.chunks: List[bytes] = []
        self.finish_calls = 0

    def _start_response(self) -> None:
        self.started = {
            "status": self.status_code,
            "content_type": self.content_type,
            "content_length": self.content_length,
        }

    def _write_body(self, data: bytes, more_body: bool) -> None:
        if not more_body:
            self.finish_calls += 1
            return
        if self.fail_after_bytes is not None and self.bytes_written >= self.fail_after_bytes:
            raise OSError("client disconnected")
        self.chunks.append(data)

    @property
    def body(self) -> bytes:
        return b"".join(self.chunks)


class TrackingStream(httpx.SyncByteStream):
    """
    可追踪关闭状态的同步字节流；fail_after 指定在第几个分块处抛出 httpx.ReadError
    """

    def __init__(self, chunks: List[bytes], fail_after: Optional[int] = None):
        self._chunks = chunks
        self._fail_after = fail_after
        self.closed = False

    def __iter__(self) -> Iterator[bytes]:
        for index, chunk in enumerate(self._chunks):
            if self._fail_after is not None and index >= self._fail_after:
                raise httpx.ReadError("connection reset by peer")
            yield chunk

    def close(self) -> None:
        self.closed = True


def make_fetcher(handler: Callable[[httpx.Request], httpx.Response], chunk_size: int = 4) -> RemoteFetcher:
    """用 httpx.MockTransport 构造 RemoteFetcher"""
    client = httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True)
    return RemoteFetcher(chunk_size=chunk_size, client=client)
