# Shared configuration for the app factory and the CLI
from .config import ServerConfig, setup_logging

__all__ = [
    "ServerConfig",
    "setup_logging",
]
