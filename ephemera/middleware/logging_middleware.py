import sys
import logging
import time

from functools import wraps
from pathlib import Path
from typing import Any, Callable

from ephemera.common.errors import ServiceError
from ephemera.config import settings


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers and the lowest level they may emit at
QUIET_LOGGERS = {
    "botocore": logging.WARNING,
    "aiobotocore": logging.WARNING,
    "asyncio": logging.WARNING,
    "passlib": logging.ERROR,
}

SENSITIVE_MARKERS = ("password", "token", "secret", "api_key", "private_key")
LOGGABLE_TYPES = (str, int, float, bool, type(None))


def setup_logging() -> None:
    """Attach stdout (and optionally file) handlers to the root logger."""

    level = logging.getLevelName(settings.logging_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.logging_on_file:
        logs_dir = Path(settings.logs_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(logs_dir / "ephemera.log", encoding="utf-8"))

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    root = logging.getLogger()
    root.setLevel(level)

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


class LoggingMiddleware:
    """Decorators that log endpoint calls and push connections."""

    def __init__(self):
        self.logger = logging.getLogger("request-logger")
        self.logger.setLevel(settings.logging_level)

    @staticmethod
    def _sanitize_params(params: dict) -> dict:
        """Mask values whose key looks like a credential."""

        return {
            key: "***REDACTED***" if any(marker in key.lower() for marker in SENSITIVE_MARKERS) else value
            for key, value in params.items()
        }

    @staticmethod
    def _user_of(kwargs: dict) -> str:
        caller = kwargs.get("caller")
        return str(caller.user_id) if caller is not None else "anonymous"

    def _describe_params(self, kwargs: dict[str, Any]) -> dict:
        scalars = {
            key: value for key, value in kwargs.items()
            if key != "caller" and isinstance(value, LOGGABLE_TYPES)
        }
        return self._sanitize_params(scalars)

    def _transaction_decorator(self, func: Callable, level: int) -> Callable:
        name = func.__name__

        @wraps(func)
        async def wrapper(*args, **kwargs):
            prefix = f"[user:{self._user_of(kwargs)}] Transaction '{name}'"
            self.logger.debug(f"{prefix} params: {self._describe_params(kwargs)}")
            started = time.perf_counter()

            try:
                result = await func(*args, **kwargs)

            except ServiceError as e:
                # Expected refusals, rendered to the client as an envelope
                self.logger.warning(f"{prefix} rejected: {e.code}: {e.message} [{time.perf_counter() - started:.3f}s]")
                raise

            except Exception as e:
                self.logger.error(
                    f"{prefix} failed: {type(e).__name__}: {e} [{time.perf_counter() - started:.3f}s]",
                    exc_info=True,
                )
                raise

            self.logger.log(level, f"{prefix} completed [{time.perf_counter() - started:.3f}s]")
            return result

        return wrapper

    def log_transaction(self, func: Callable) -> Callable:
        return self._transaction_decorator(func, logging.INFO)

    def log_transaction_debug(self, func: Callable) -> Callable:
        """Same as ``log_transaction`` but successful calls go to DEBUG."""

        return self._transaction_decorator(func, logging.DEBUG)

    def log_connection(self, func: Callable) -> Callable:
        """Log the lifetime of a long-lived push connection handler."""

        name = func.__name__

        @wraps(func)
        async def wrapper(*args, **kwargs):
            opened = time.perf_counter()
            self.logger.debug(f"Connection '{name}' opened")

            try:
                return await func(*args, **kwargs)

            except Exception as e:
                self.logger.error(f"Connection '{name}' error: {type(e).__name__}: {e}", exc_info=True)
                raise

            finally:
                self.logger.debug(f"Connection '{name}' closed [{time.perf_counter() - opened:.1f}s]")

        return wrapper
