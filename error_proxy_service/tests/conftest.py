"""
Pytest Configuration and Auto-Marking

根据测试文件路径自动为测试项添加分层 marker，并强制校验每个测试项至少拥有一个分层 marker。
同时提供错误代理链路测试共用的 fixture：资源、配置、远程站点 handler 与应用客户端。
"""
import io
import os
import sys
from pathlib import Path
from typing import Callable, List, Optional

import pytest

# conftest.py 位于 error_proxy_service/tests/，parent.parent 就是 error_proxy_service 目录
_service_dir = Path(__file__).parent.parent.resolve()
if str(_service_dir) not in sys.path:
    sys.path.insert(0, str(_service_dir))

if "PYTHONIOENCODING" not in os.environ:
    os.environ["PYTHONIOENCODING"] = "utf-8"

import httpx
from fastapi.testclient import TestClient
from loguru import logger

from config.proxy_config import ProxyConfig
from core.orchestrator import build_orchestrator
from core.resource_store import ErrorResources
from tests.helpers import RESOURCE_DATA, make_fetcher


# ============================================================
# Marker 自动打标与校验
# ============================================================

LAYER_MARKERS = {
    "unit",
    "integration",
}

# 路径到 marker 的映射（key 为相对 tests 根目录的文件名）
path_marker_map = {
    "test_trigger_gate.py": ["unit"],
    "test_resource_store.py": ["unit"],
    "test_url_resolver.py": ["unit"],
    "test_description_builder.py": ["unit"],
    "test_remote_fetcher.py": ["unit"],
    "test_local_renderer.py": ["unit"],
    "test_orchestrator.py": ["unit"],
    "test_proxy_config.py": ["unit"],
    "test_main.py": ["unit"],
    "test_error_proxy_middleware.py": ["integration"],
    "test_logger_and_middleware.py": ["integration"],
}


def _get_relative_test_path(item) -> str:
    try:
        return Path(str(item.path)).resolve().relative_to(Path(__file__).parent.resolve()).as_posix()
    except ValueError:
        return Path(str(item.path)).name


def pytest_configure(config):
    for marker in sorted(LAYER_MARKERS):
        config.addinivalue_line("markers", f"{marker}: {marker} layer test")


def pytest_collection_modifyitems(config, items):
    """
    根据测试文件路径自动添加 marker，并强制校验每个测试项都有分层 marker
    """
    unmarked_items = []

    for item in items:
        relative_path = _get_relative_test_path(item)
        existing_markers = {m.name for m in item.iter_markers()}

        for marker_name in path_marker_map.get(relative_path, []):
            if marker_name not in existing_markers:
                item.add_marker(getattr(pytest.mark, marker_name))
                existing_markers.add(marker_name)

        if not any(m.name in LAYER_MARKERS for m in item.iter_markers()):
            unmarked_items.append(item.nodeid)

    if unmarked_items:
        error_lines = ["\n" + "=" * 80, "ERROR: Found test items without layer markers", "=" * 80]
        for nodeid in unmarked_items:
            error_lines.append(f"\n  Test: {nodeid}")
        error_lines.append("\n  修复方式（二选一）：")
        error_lines.append("    1) 在测试项上添加 @pytest.mark.<layer>")
        error_lines.append("    2) 在 conftest.py 的 path_marker_map 中添加该文件")
        error_lines.append(f"\n必需的分层 markers: {', '.join(sorted(LAYER_MARKERS))}\n")
        raise pytest.UsageError("\n".join(error_lines))


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def resources() -> ErrorResources:
    return ErrorResources.from_mapping(RESOURCE_DATA)


@pytest.fixture
def proxy_config(tmp_path) -> ProxyConfig:
    return ProxyConfig(resources_path=tmp_path / "unused.yaml", server_info="Test Server")


@pytest.fixture
def remote_calls() -> List[httpx.Request]:
    return []


@pytest.fixture
def remote_handler(remote_calls):
    """
    默认远程站点：返回一段 HTML，记录每次请求
    """
    def _handler(request: httpx.Request) -> httpx.Response:
        remote_calls.append(request)
        return httpx.Response(
            200,
            headers={"Content-Type": "text/html; charset=utf-8"},
            content=b"<html>remote error page</html>",
        )
    return _handler


@pytest.fixture
def app_factory(proxy_config, resources):
    """
    用指定的远程 handler 构造 FastAPI 应用（编排器注入 MockTransport 拉取器）
    """
    from main import create_app

    def _factory(handler: Callable[[httpx.Request], httpx.Response], config: Optional[ProxyConfig] = None):
        config = config or proxy_config
        orchestrator = build_orchestrator(config, resources, fetcher=make_fetcher(handler, chunk_size=8))
        return create_app(config=config, orchestrator=orchestrator)

    return _factory


@pytest.fixture
def client(app_factory, remote_handler):
    """
    同步 TestClient fixture

    使用 context manager 确保 FastAPI lifespan 事件正确触发。
    """
    with TestClient(app_factory(remote_handler)) as c:
        yield c


@pytest.fixture
def log_capture():
    """
    日志捕获 fixture：临时 loguru sink，测试结束后移除
    """
    captured_logs = io.StringIO()
    handler_id = logger.add(
        captured_logs,
        format="[{extra[request_id]}] {level} {message}",
        level="DEBUG",
        enqueue=False
    )
    yield captured_logs
    logger.remove(handler_id)
