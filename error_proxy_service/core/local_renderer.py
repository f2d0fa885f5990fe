"""
Local Error Renderer Module

本地默认错误页（兜底渲染器）。代理链路任一环节失败时由 FallbackReporter 调用。

页面格式：

    HTTP Status 404 – Not Found
    Type         Status Report / Exception Report
    Message      异常消息（有异常时）
    Description  状态码的详细描述（资源中配置了 http.<code>.desc 时）
    页脚          服务信息（可关闭）

不输出堆栈。
"""
import html
from http import HTTPStatus
from typing import Any, Optional

from core.resource_store import LocaleResourceStore
from core.response_sink import ResponseSink
from schemas.error_context import ErrorContext
from utils.log_manager import get_logger

CONTENT_TYPE = "text/html;charset=utf-8"

_STYLE = (
    "h1 {font-family:Tahoma,Arial,sans-serif;color:white;background-color:#525D76;font-size:22px;} "
    "b {color:white;background-color:#525D76;} "
    "p {font-family:Tahoma,Arial,sans-serif;background:white;color:black;font-size:12px;} "
    ".line {height:1px;background-color:#525D76;border:none;}"
)


def _default_reason(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return ""


class LocalErrorRenderer:
    """
    本地错误页渲染器

    Args:
        status_descriptions: 状态描述资源（http.<code> 作为标题，http.<code>.desc 作为详细描述）
        show_report: 是否展示 Type / Message / Description
        show_server_info: 是否展示页脚服务信息
        server_info: 页脚文本
    """

    def __init__(
        self,
        status_descriptions: Optional[LocaleResourceStore] = None,
        show_report: bool = True,
        show_server_info: bool = True,
        server_info: str = "Error Proxy Service",
        logger: Optional[Any] = None,
    ):
        self._status_descriptions = status_descriptions or LocaleResourceStore()
        self.show_report = show_report
        self.show_server_info = show_server_info
        self.server_info = server_info
        self._logger = logger or get_logger(__name__)

    def render(self, ctx: ErrorContext, sink: ResponseSink, throwable: Optional[BaseException]) -> None:
        if sink.committed:
            # 已有字节写给客户端，无法再替换页面，只能结束响应
            self._logger.debug(
                "Response already committed, local error page skipped",
                extra={"status_code": ctx.status_code, "bytes_written": sink.bytes_written}
            )
            sink.finish()
            return

        body = self.render_page(ctx.status_code, ctx.locale, throwable).encode("utf-8")
        sink.set_content_type(CONTENT_TYPE)
        sink.set_content_length(len(body))
        sink.write(body)
        sink.finish()

    def render_page(self, status_code: int, locale: str, throwable: Optional[BaseException]) -> str:
        reason = (
            self._status_descriptions.lookup(locale, f"http.{status_code}")
            or _default_reason(status_code)
        )
        title = f"HTTP Status {status_code}"
        if reason:
            title = f"{title} – {reason}"
        title = html.escape(title)
        lang = html.escape((locale or "en").split("_")[0])

        sb = [
            f'<!doctype html><html lang="{lang}"><head><title>{title}</title>',
            f"<style type=\"text/css\">{_STYLE}</style></head><body>",
            f"<h1>{title}</h1>",
        ]

        if self.show_report:
            report_type = "Exception Report" if throwable is not None else "Status Report"
            sb.append('<hr class="line" />')
            sb.append(f"<p><b>Type</b> {report_type}</p>")
            message = str(throwable) if throwable is not None else ""
            if message:
                sb.append(f"<p><b>Message</b> {html.escape(message)}</p>")
            description = self._status_descriptions.lookup(locale, f"http.{status_code}.desc")
            if description:
                sb.append(f"<p><b>Description</b> {html.escape(description)}</p>")

        sb.append('<hr class="line" />')
        if self.show_server_info and self.server_info:
            sb.append(f"<h3>{html.escape(self.server_info)}</h3>")
        sb.append("</body></html>")
        return "".join(sb)
