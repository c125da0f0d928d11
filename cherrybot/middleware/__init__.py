"""HTTP middleware."""

from cherrybot.middleware.logging import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
