"""
Timeout Guard Module

Wraps an ASGI application with a deadline. The wrapped application's response
is buffered; if it finishes in time the buffer is replayed to the client,
otherwise the guard abandons it and raises RequestTimeoutError so the
application's exception handler can answer instead.

Only one side ever writes to the client: once the deadline has passed the
buffer is closed and anything the abandoned handler still sends is dropped.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, MutableMapping, Set

from .errors import RequestTimeoutError

logger = logging.getLogger(__name__)

Message = MutableMapping[str, Any]
Send = Callable[[Message], Awaitable[None]]
ASGIApp = Callable[[Dict[str, Any], Callable[[], Awaitable[Message]], Send], Awaitable[None]]


class BufferedSend:
    """ASGI send callable that holds messages until they are replayed."""

    def __init__(self):
        self.messages: List[Message] = []
        self.closed = False

    async def __call__(self, message: Message) -> None:
        if self.closed:
            logger.debug(f"Dropping late {message.get('type')} message from timed out handler")
            return
        self.messages.append(message)

    def close(self) -> None:
        self.closed = True

    async def replay(self, send: Send) -> None:
        for message in self.messages:
            await send(message)


class TimeoutGuard:
    """
    ASGI application that runs an inner application under a deadline.

    Args:
        app: Inner ASGI application
        timeout: Seconds the inner application may run before the guard fires
        message: Body text of the error response produced on timeout
    """

    def __init__(self, app: ASGIApp, timeout: float, message: str):
        self.app = app
        self.timeout = timeout
        self.message = message
        self._abandoned: Set[asyncio.Task] = set()

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        buffered = BufferedSend()
        task = asyncio.ensure_future(self.app(scope, receive, buffered))

        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout)
        except asyncio.CancelledError:
            # Client went away while we were waiting
            buffered.close()
            task.cancel()
            raise

        if task in done:
            # Re-raises anything the inner application raised
            task.result()
            await buffered.replay(send)
            return

        buffered.close()
        self._abandon(task)
        logger.warning(f"Timeout guard fired after {self.timeout}s for {scope.get('path')}")
        raise RequestTimeoutError(self.timeout, self.message)

    @property
    def pending(self) -> int:
        """Number of abandoned handlers that have not finished cancelling."""
        return len(self._abandoned)

    def _abandon(self, task: asyncio.Task) -> None:
        self._abandoned.add(task)
        task.add_done_callback(self._forget)
        task.cancel()

    def _forget(self, task: asyncio.Task) -> None:
        self._abandoned.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Abandoned handler finished with error: {task.exception()}")
