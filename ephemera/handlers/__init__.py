from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.handlers.auth import register_auth_handlers
from ephemera.handlers.friends import register_friends_handlers

from ephemera.handlers.chat import register_chat_handlers
from ephemera.handlers.rooms import register_rooms_handlers
from ephemera.handlers.media import register_media_handlers

from ephemera.handlers.admin import register_admin_handlers
from ephemera.handlers.push import register_push_handlers


def register_handlers(app: "Application"):
    """Register all handlers."""

    register_auth_handlers(app=app)
    register_friends_handlers(app=app)

    register_chat_handlers(app=app)
    register_rooms_handlers(app=app)
    register_media_handlers(app=app)

    register_admin_handlers(app=app)
    register_push_handlers(app=app)
