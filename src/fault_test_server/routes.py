"""
Fault-Injection Route Table

Maps fixed URL paths to one of three canned behaviors and installs them on a
FastAPI application. Matching itself is left to the framework router; the
table only decides what is installed and in which order (most specific path
first, so "/" ends up as the catch-all).
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Union

from fastapi import FastAPI, HTTPException
from fastapi.staticfiles import StaticFiles

from .core.config import ServerConfig
from .timeout_guard import TimeoutGuard

logger = logging.getLogger(__name__)


class Behavior(str, Enum):
    STATIC_FILES = "static_files"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class StaticFilesParams:
    root: str

    def __post_init__(self):
        if not os.path.isdir(self.root):
            raise ValueError(f"Static root is not a directory: {self.root}")


@dataclass(frozen=True)
class TimeoutParams:
    """Guard timeout, response text, and how much longer the stall runs."""
    timeout: float
    message: str
    margin: float

    def __post_init__(self):
        if self.timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {self.timeout}")
        if self.margin <= 0:
            raise ValueError(f"Stall margin must be positive, got {self.margin}")

    @property
    def stall_duration(self) -> float:
        return self.timeout + self.margin


RouteParams = Union[StaticFilesParams, TimeoutParams, None]

_PARAMS_FOR = {
    Behavior.STATIC_FILES: StaticFilesParams,
    Behavior.NOT_FOUND: type(None),
    Behavior.TIMEOUT: TimeoutParams,
}


@dataclass(frozen=True)
class RouteEntry:
    path: str
    behavior: Behavior
    params: RouteParams = None

    def __post_init__(self):
        if not self.path.startswith("/"):
            raise ValueError(f"Route path must start with '/': {self.path!r}")
        expected = _PARAMS_FOR[self.behavior]
        if not isinstance(self.params, expected):
            raise ValueError(
                f"{self.behavior.name} route {self.path} needs {expected.__name__}, "
                f"got {type(self.params).__name__}"
            )

    @property
    def specificity(self) -> int:
        return len(self.path.rstrip("/"))


def make_stall_app(duration: float):
    """ASGI app that sleeps for `duration` before answering."""

    async def stall(scope, receive, send):
        await asyncio.sleep(duration)
        # Only observable when nothing guards this handler
        await send({
            "type": "http.response.start",
            "status": 200,
            "headers": [(b"content-type", b"text/plain; charset=utf-8")],
        })
        await send({"type": "http.response.body", "body": b"stall finished"})

    return stall


class NotFoundApp:
    """ASGI app answering 404 for every method."""

    async def __call__(self, scope, receive, send):
        raise HTTPException(status_code=404, detail="Not Found")


class RouteTable:
    """
    Ordered path -> behavior table, filled once before the server starts.

    Re-registering an exact path replaces the earlier entry. Once installed
    on an application the table is frozen and further registrations fail.
    """

    def __init__(self):
        self._entries: Dict[str, RouteEntry] = {}
        self._frozen = False
        self.guards: Dict[str, TimeoutGuard] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, path: str, behavior: Behavior, params: RouteParams = None) -> RouteEntry:
        if self._frozen:
            raise RuntimeError(f"Cannot register {path}: route table is already serving")
        entry = RouteEntry(path=path, behavior=behavior, params=params)
        if path in self._entries:
            logger.debug(f"Replacing route {path}: {self._entries[path].behavior.name} -> {behavior.name}")
        self._entries[path] = entry
        return entry

    def freeze(self) -> None:
        self._frozen = True

    def get(self, path: str) -> Optional[RouteEntry]:
        return self._entries.get(path)

    def entries(self) -> List[RouteEntry]:
        """Entries in install order: longest path first, ties by registration."""
        return sorted(self._entries.values(), key=lambda entry: entry.specificity, reverse=True)

    def install(self, app: FastAPI) -> None:
        self.freeze()
        for entry in self.entries():
            if entry.behavior is Behavior.NOT_FOUND:
                # No methods list: a partial match would fall through to the static mount
                app.add_route(entry.path, NotFoundApp(), include_in_schema=False)
            elif entry.behavior is Behavior.TIMEOUT:
                params = entry.params
                guard = TimeoutGuard(
                    make_stall_app(params.stall_duration), params.timeout, params.message
                )
                self.guards[entry.path] = guard
                app.add_route(entry.path, guard, include_in_schema=False)
            elif entry.behavior is Behavior.STATIC_FILES:
                app.mount(
                    entry.path,
                    StaticFiles(directory=entry.params.root, html=True),
                    name=f"static:{entry.path}",
                )
            logger.debug(f"Installed {entry.behavior.name} route at {entry.path}")


def default_routes(config: ServerConfig) -> RouteTable:
    """The fixed routes served by the test server."""
    table = RouteTable()
    table.register("/error/404", Behavior.NOT_FOUND)
    table.register(
        "/error/timeout",
        Behavior.TIMEOUT,
        TimeoutParams(
            timeout=config.timeout_seconds,
            message=config.timeout_message,
            margin=config.stall_margin_seconds,
        ),
    )
    table.register("/", Behavior.STATIC_FILES, StaticFilesParams(root=config.root))
    return table
