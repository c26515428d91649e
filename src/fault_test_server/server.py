"""
Listener setup and the uvicorn server loop.

The socket is bound here rather than by uvicorn so that an in-use port
surfaces as StartupBindError instead of uvicorn's own sys.exit.
"""
import logging
import socket
import sys

import uvicorn

from .core.config import ServerConfig
from .errors import StartupBindError
from .main import create_app

logger = logging.getLogger(__name__)

BACKLOG = 2048


def bind_socket(host: str, port: int) -> socket.socket:
    """
    Bind a TCP socket for the server.

    An empty host binds all interfaces. The socket is returned listening.
    Never retries on another port.

    Raises:
        StartupBindError: If the address cannot be bound
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        # On Windows SO_REUSEADDR lets a second process share a listening port
        if sys.platform != "win32":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        # Listening now keeps a second SO_REUSEADDR socket from binding the same port
        sock.listen(BACKLOG)
    except OSError as e:
        sock.close()
        raise StartupBindError(host, port, e) from e
    return sock


def build_server(config: ServerConfig) -> uvicorn.Server:
    app = create_app(config)
    uvicorn_config = uvicorn.Config(
        app,
        log_level=config.log_level.lower(),
        http='h11',   # HTTP/1.1 only
        ws='none',    # No WebSocket routes
    )
    return uvicorn.Server(uvicorn_config)


def run_server(config: ServerConfig) -> None:
    """
    Build the app, bind, announce the serving URL, and serve until terminated.

    Raises:
        ValueError: If the static root is not a directory
        StartupBindError: If the address cannot be bound
    """
    server = build_server(config)
    sock = bind_socket(config.host, config.port)
    try:
        logger.info(f"Serving test webpage at {config.display_url(sock.getsockname()[1])}")
        server.run(sockets=[sock])
    finally:
        sock.close()
