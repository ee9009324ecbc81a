"""
Production entry point for Ephemera server.
"""

import sys
import logging

import uvicorn

from ephemera.app import Application
from ephemera.config import settings


def create_app():
    """Build the ASGI application."""

    return Application().create_api()


def starter():
    logger = logging.getLogger("app-starter")

    try:
        uvicorn.run(
            create_app(),
            host=settings.host,
            port=settings.port,
            log_config=None,
        )

    except KeyboardInterrupt:
        pass

    except Exception:
        if settings.showing_tracebacks:
            import traceback
            traceback.print_exc()
        else:
            logger.critical(
                "Critical unexpected error. Enable the 'showing_tracebacks' parameter in your .env file for debugging.")
        sys.exit(1)


if __name__ == "__main__":
    starter()
