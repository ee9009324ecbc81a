from ephemera.middleware.logging_middleware import LoggingMiddleware, setup_logging
from ephemera.middleware.auth_middleware import AuthContext, AuthMiddleware


logging_middleware = LoggingMiddleware()

__all__ = ["LoggingMiddleware", "AuthMiddleware", "AuthContext", "setup_logging", "logging_middleware"]
