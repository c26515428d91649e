"""
TimeoutGuard tests against plain ASGI callables, without the FastAPI app.
"""

import asyncio
import time

import pytest

from fault_test_server.errors import RequestTimeoutError
from fault_test_server.routes import make_stall_app
from fault_test_server.timeout_guard import TimeoutGuard

SCOPE = {"type": "http", "method": "GET", "path": "/guarded"}


async def receive():
    return {"type": "http.request", "body": b"", "more_body": False}


def collector():
    sent = []

    async def send(message):
        sent.append(message)

    return sent, send


async def quick_app(scope, receive, send):
    await send({"type": "http.response.start", "status": 200, "headers": []})
    await send({"type": "http.response.body", "body": b"ok"})


async def wait_until(predicate, timeout=1.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
class TestTimeoutGuard:

    async def test_in_time_response_is_replayed(self):
        guard = TimeoutGuard(quick_app, timeout=1.0, message="Timeout Error")
        sent, send = collector()

        await guard(SCOPE, receive, send)

        assert [m["type"] for m in sent] == ["http.response.start", "http.response.body"]
        assert sent[0]["status"] == 200
        assert sent[1]["body"] == b"ok"

    async def test_guard_fires_before_stall_finishes(self):
        guard = TimeoutGuard(make_stall_app(0.4), timeout=0.1, message="Timeout Error")
        sent, send = collector()

        start = time.monotonic()
        with pytest.raises(RequestTimeoutError) as exc_info:
            await guard(SCOPE, receive, send)
        elapsed = time.monotonic() - start

        assert exc_info.value.message == "Timeout Error"
        assert exc_info.value.status_code == 503
        assert 0.1 <= elapsed < 0.4
        assert sent == []

    async def test_abandoned_handler_is_cancelled(self):
        guard = TimeoutGuard(make_stall_app(10), timeout=0.05, message="Timeout")
        _, send = collector()

        with pytest.raises(RequestTimeoutError):
            await guard(SCOPE, receive, send)

        await wait_until(lambda: guard.pending == 0)

    async def test_late_writes_are_dropped(self):
        attempted = []

        async def stubborn_app(scope, receive, send):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                # Ignores cancellation and tries to answer anyway
                await send({"type": "http.response.start", "status": 200, "headers": []})
                await send({"type": "http.response.body", "body": b"too late"})
                attempted.append(True)

        guard = TimeoutGuard(stubborn_app, timeout=0.05, message="Timeout")
        sent, send = collector()

        with pytest.raises(RequestTimeoutError):
            await guard(SCOPE, receive, send)

        await wait_until(lambda: attempted)
        await wait_until(lambda: guard.pending == 0)
        assert sent == []

    async def test_inner_error_propagates(self):
        async def broken_app(scope, receive, send):
            raise LookupError("boom")

        guard = TimeoutGuard(broken_app, timeout=1.0, message="Timeout")
        sent, send = collector()

        with pytest.raises(LookupError, match="boom"):
            await guard(SCOPE, receive, send)
        assert sent == []

    async def test_non_http_scopes_pass_through(self):
        seen = []

        async def lifespan_app(scope, receive, send):
            seen.append(scope["type"])

        guard = TimeoutGuard(lifespan_app, timeout=0.01, message="Timeout")
        _, send = collector()

        await guard({"type": "lifespan"}, receive, send)
        assert seen == ["lifespan"]

    async def test_outer_cancellation_cancels_inner(self):
        cancelled = asyncio.Event()

        async def slow_app(scope, receive, send):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        guard = TimeoutGuard(slow_app, timeout=5.0, message="Timeout")
        _, send = collector()

        request = asyncio.ensure_future(guard(SCOPE, receive, send))
        await asyncio.sleep(0.05)
        request.cancel()

        with pytest.raises(asyncio.CancelledError):
            await request
        await asyncio.wait_for(cancelled.wait(), timeout=1.0)
