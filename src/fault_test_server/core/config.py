"""
Server configuration loaded from environment variables and command-line options.
"""
import os
import logging
from dataclasses import dataclass, replace
from typing import Optional

from dotenv import load_dotenv

DEFAULT_PORT = 8888
DEFAULT_TIMEOUT_SECONDS = 25.0
DEFAULT_STALL_MARGIN_SECONDS = 1.0
DEFAULT_TIMEOUT_MESSAGE = "Timeout Error"
DEFAULT_INDEX_PAGE = "tests.html"


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number. Configure this in your .env file.")


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be a valid integer. Configure this in your .env file.")


@dataclass(frozen=True)
class ServerConfig:
    """Settings for one server process, passed explicitly to the app and runner."""

    host: str = ""
    port: int = DEFAULT_PORT
    root: str = "."
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    stall_margin_seconds: float = DEFAULT_STALL_MARGIN_SECONDS
    timeout_message: str = DEFAULT_TIMEOUT_MESSAGE
    index_page: str = DEFAULT_INDEX_PAGE
    log_level: str = "INFO"

    def __post_init__(self):
        if not 0 <= self.port <= 65535:
            raise ValueError(f"Port must be between 0 and 65535, got {self.port}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"Timeout must be positive, got {self.timeout_seconds}")
        # The stall has to outlive the guard or the timeout route tests nothing
        if self.stall_margin_seconds <= 0:
            raise ValueError(f"Stall margin must be positive, got {self.stall_margin_seconds}")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "ServerConfig":
        """Build a config from TESTSERVER_* variables, loading a .env file first."""
        load_dotenv(env_file)
        return cls(
            host=os.getenv("TESTSERVER_HOST", ""),
            port=_int_env("TESTSERVER_PORT", DEFAULT_PORT),
            root=os.getenv("TESTSERVER_ROOT", "."),
            timeout_seconds=_float_env("TESTSERVER_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
            stall_margin_seconds=_float_env(
                "TESTSERVER_STALL_MARGIN_SECONDS", DEFAULT_STALL_MARGIN_SECONDS
            ),
            timeout_message=os.getenv("TESTSERVER_TIMEOUT_MESSAGE", DEFAULT_TIMEOUT_MESSAGE),
            index_page=os.getenv("TESTSERVER_INDEX_PAGE", DEFAULT_INDEX_PAGE),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    def with_overrides(self, **overrides) -> "ServerConfig":
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)

    @property
    def stall_seconds(self) -> float:
        return self.timeout_seconds + self.stall_margin_seconds

    @property
    def display_host(self) -> str:
        return self.host or "localhost"

    def display_url(self, port: Optional[int] = None) -> str:
        """URL announced at startup, e.g. http://localhost:8888/tests.html"""
        page = self.index_page.lstrip("/")
        return f"http://{self.display_host}:{port if port is not None else self.port}/{page}"


def setup_logging(level: str = "INFO"):
    """Configure logging based on the configured level."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    return logging.getLogger(__name__)
