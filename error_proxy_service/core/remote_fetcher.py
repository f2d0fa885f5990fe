"""
Remote Fetcher Module

同步拉取代理 URL，并把远程 body 增量拷贝到客户端。

- 远程状态码只读取、记录日志，不解释也不透传：远程返回的错误页同样作为内容转发
- 只透传 content-type / content-length / body
- 远程流在任何退出路径上都会被关闭（包括拷贝中途失败）
"""
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional

import httpx

from core.errors import ConnectionFailureError, StreamingFailureError
from core.response_sink import ResponseSink
from utils.log_manager import get_logger

DEFAULT_CHUNK_SIZE = 8192

# 不接受压缩编码，保证转发的字节与 content-length 一致
_REQUEST_HEADERS = {"Accept-Encoding": "identity"}


def _parse_content_length(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        length = int(value.strip())
    except ValueError:
        return None
    return length if length >= 0 else None


@dataclass
class RemoteResponse:
    """
    远程响应

    由 RemoteFetcher.fetch() 的上下文持有，离开上下文后 body 不可再读。
    """

    http_status: int
    content_type: Optional[str]
    content_length: Optional[int]
    body: Iterator[bytes]

    def copy_to(self, sink: ResponseSink) -> int:
        """
        增量拷贝 body 到 sink，不在内存中缓存完整内容

        Returns:
            int: 拷贝的字节数

        Raises:
            StreamingFailureError: 读取远程或写入客户端失败
        """
        copied = 0
        try:
            for chunk in self.body:
                sink.write(chunk)
                copied += len(chunk)
        except Exception as e:
            raise StreamingFailureError(
                f"Streaming remote error page failed after {copied} bytes: {type(e).__name__}: {e}",
                bytes_copied=copied,
                original_error=e,
            ) from e
        return copied


class RemoteFetcher:
    """
    远程拉取器（同步、阻塞）

    Args:
        timeout: 超时（秒），None 表示不设超时
        chunk_size: 每次拷贝的字节数
        follow_redirects: 是否跟随重定向
        client: 可注入的 httpx.Client（测试时配合 httpx.MockTransport）
        logger: 组装时注入的 logger
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        follow_redirects: bool = True,
        client: Optional[httpx.Client] = None,
        logger: Optional[Any] = None,
    ):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._logger = logger or get_logger(__name__)
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout),
            follow_redirects=follow_redirects,
        )

    @contextmanager
    def fetch(self, url: str) -> Iterator[RemoteResponse]:
        """
        发起 GET 并在上下文中暴露远程响应

        Raises:
            ConnectionFailureError: URL 非法、连接失败、超时等
        """
        started = time.perf_counter()
        try:
            request = self._client.build_request("GET", url, headers=_REQUEST_HEADERS)
            response = self._client.send(request, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ConnectionFailureError(
                f"Failed to connect to error proxy target: {type(e).__name__}: {e}",
                url=url,
                original_error=e,
            ) from e

        try:
            if response.status_code >= 400:
                self._logger.debug(
                    "Remote error page returned status {}, forwarding as content",
                    response.status_code,
                )
            # fetch_ms 作为顶层 extra 字段，由 log_manager 的 patcher 追加到消息末尾
            self._logger.debug(
                "Remote response opened",
                http_status=response.status_code,
                fetch_ms=int((time.perf_counter() - started) * 1000),
            )
            content_length = _parse_content_length(response.headers.get("content-length"))
            if response.headers.get("content-encoding", "identity").lower() != "identity":
                # 远程仍然压缩时 body 会被解码，原始长度不再准确
                content_length = None
            yield RemoteResponse(
                http_status=response.status_code,
                content_type=response.headers.get("content-type"),
                content_length=content_length,
                body=response.iter_bytes(self.chunk_size),
            )
        finally:
            response.close()

    def close(self) -> None:
        """关闭内部创建的 HTTP 客户端（注入的客户端由调用方管理）"""
        if self._owns_client:
            self._client.close()
