"""
Pytest configuration for fault-test-server tests.

Puts the src directory on the Python path and provides a small static site,
an in-process client, and a live uvicorn server on an ephemeral port.
Timeouts are kept short so the timeout route tests run quickly.
"""
import sys
import time
import threading
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Add src directory to Python path
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from fault_test_server.core.config import ServerConfig
from fault_test_server.main import create_app
from fault_test_server.server import bind_socket, build_server

TEST_TIMEOUT = 0.3
TEST_MARGIN = 0.3
LIVE_TIMEOUT = 0.5

BINARY_CONTENT = bytes(range(256)) * 8


@pytest.fixture
def site_dir(tmp_path):
    """Static root with an index page, a binary file and a nested page"""
    (tmp_path / "index.html").write_text("<h1>index</h1>")
    (tmp_path / "tests.html").write_text("<html><body>tests</body></html>")
    (tmp_path / "data.bin").write_bytes(BINARY_CONTENT)
    nested = tmp_path / "nested"
    nested.mkdir()
    (nested / "page.txt").write_text("nested page\n")
    return tmp_path


@pytest.fixture
def config(site_dir):
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        root=str(site_dir),
        timeout_seconds=TEST_TIMEOUT,
        stall_margin_seconds=TEST_MARGIN,
    )


@pytest.fixture
def app(config):
    return create_app(config)


@pytest_asyncio.fixture
async def async_client(app):
    """In-process client for the test server app"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def live_server(site_dir):
    """Real uvicorn server in a background thread; yields its base URL"""
    config = ServerConfig(
        host="127.0.0.1",
        port=0,
        root=str(site_dir),
        timeout_seconds=LIVE_TIMEOUT,
        stall_margin_seconds=LIVE_TIMEOUT,
        log_level="WARNING",
    )
    sock = bind_socket(config.host, config.port)
    port = sock.getsockname()[1]
    server = build_server(config)

    thread = threading.Thread(target=server.run, kwargs={"sockets": [sock]}, daemon=True)
    thread.start()

    deadline = time.monotonic() + 10
    while not server.started:
        if time.monotonic() > deadline:
            pytest.fail("Test server did not start")
        time.sleep(0.01)

    yield f"http://127.0.0.1:{port}"

    server.should_exit = True
    thread.join(timeout=10)
    sock.close()
