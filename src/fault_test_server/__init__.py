"""Minimal HTTP test server: static files plus forced 404 and timeout routes."""

__version__ = "1.0.0"
