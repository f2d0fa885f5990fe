"""
【简述】
验证本地兜底错误页的内容、开关与已提交响应时的行为。

【用例概述】
- test_status_report_page:
  -- 验证无异常时渲染 Status Report，包含标题、描述与页脚
- test_exception_report_escapes_message:
  -- 验证有异常时渲染 Exception Report 且消息被 HTML 转义
- test_show_report_disabled:
  -- 验证 show_report=False 时只保留标题
- test_show_server_info_disabled:
  -- 验证 show_server_info=False 时不输出页脚
- test_localized_title_and_http_status_fallback:
  -- 验证标题按 locale 本地化，未配置时回退到标准原因短语
- test_committed_response_is_only_finished:
  -- 验证响应已提交时只结束响应，不再写页面
"""
from core.local_renderer import CONTENT_TYPE, LocalErrorRenderer
from core.resource_store import LocaleResourceStore
from schemas.error_context import ErrorContext
from tests.helpers import RESOURCE_DATA, RecordingSink


def _renderer(**kwargs) -> LocalErrorRenderer:
    return LocalErrorRenderer(
        LocaleResourceStore(RESOURCE_DATA["status_descriptions"]),
        server_info="Test Server",
        **kwargs,
    )


def test_status_report_page():
    sink = RecordingSink(404)
    ctx = ErrorContext(status_code=404, request_uri="/missing", locale="en")

    _renderer().render(ctx, sink, None)
    page = sink.body.decode("utf-8")

    assert sink.started == {"status": 404, "content_type": CONTENT_TYPE, "content_length": len(sink.body)}
    assert sink.finished is True
    assert "<title>HTTP Status 404 – Not Found</title>" in page
    assert "<p><b>Type</b> Status Report</p>" in page
    assert "<p><b>Description</b> The requested resource is not available.</p>" in page
    assert "Message" not in page
    assert "<h3>Test Server</h3>" in page


def test_exception_report_escapes_message():
    sink = RecordingSink(500)
    ctx = ErrorContext(status_code=500, request_uri="/boom", locale="en")

    _renderer().render(ctx, sink, RuntimeError("<script>alert(1)</script>"))
    page = sink.body.decode("utf-8")

    assert "<p><b>Type</b> Exception Report</p>" in page
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in page
    assert "<script>" not in page
    assert "Traceback" not in page


def test_show_report_disabled():
    sink = RecordingSink(404)
    ctx = ErrorContext(status_code=404, request_uri="/missing", locale="en")

    _renderer(show_report=False).render(ctx, sink, ValueError("secret detail"))
    page = sink.body.decode("utf-8")

    assert "<h1>HTTP Status 404 – Not Found</h1>" in page
    assert "Type" not in page
    assert "secret detail" not in page


def test_show_server_info_disabled():
    sink = RecordingSink(404)
    ctx = ErrorContext(status_code=404, request_uri="/missing", locale="en")

    _renderer(show_server_info=False).render(ctx, sink, None)

    assert "Test Server" not in sink.body.decode("utf-8")


def test_localized_title_and_http_status_fallback():
    renderer = _renderer()

    assert "HTTP Status 404 – Non trouvé" in renderer.render_page(404, "fr_FR", None)
    assert '<html lang="fr">' in renderer.render_page(404, "fr_FR", None)
    # 资源中没有 http.418，回退到标准原因短语
    assert "HTTP Status 418 – I&#x27;m a Teapot" in renderer.render_page(418, "en", None)
    # 非标准状态码只显示数字
    assert "<h1>HTTP Status 599</h1>" in renderer.render_page(599, "en", None)


def test_committed_response_is_only_finished():
    sink = RecordingSink(500)
    sink.write(b"partial remote content")
    ctx = ErrorContext(status_code=500, request_uri="/", locale="en")

    _renderer().render(ctx, sink, None)

    assert sink.body == b"partial remote content"
    assert sink.finished is True
    assert sink.finish_calls == 1
