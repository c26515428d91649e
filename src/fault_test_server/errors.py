"""
Error types raised by the fault-injection test server.
"""


class TestServerError(Exception):
    """Base class for test server errors."""


class StartupBindError(TestServerError):
    """The listening socket could not be bound. Fatal, never retried."""

    def __init__(self, host: str, port: int, cause: OSError):
        self.host = host
        self.port = port
        self.cause = cause
        super().__init__(f"Cannot bind {host or '*'}:{port}: {cause}")


class RequestTimeoutError(TestServerError):
    """Raised by the timeout guard when a handler outlives its deadline."""

    status_code = 503

    def __init__(self, timeout: float, message: str):
        self.timeout = timeout
        self.message = message
        super().__init__(f"Handler did not finish within {timeout}s")
