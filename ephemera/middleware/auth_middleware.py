"""Authentication dependencies for credential validation."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.models.db_models import UserDB
from ephemera.models.enums import Role
from ephemera.common.errors import Forbidden, Unauthorized


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


@dataclass
class AuthContext:
    """Authenticated caller."""

    user: UserDB
    session_id: int

    @property
    def user_id(self) -> int:
        return self.user.id


class AuthMiddleware:
    """Bearer-token authentication for endpoints."""

    def __init__(self, app: "Application"):
        """Initialize with application."""

        self.app = app

    async def current_user(self, token: Optional[str] = Depends(oauth2_scheme)) -> AuthContext:
        """Dependency requiring a valid credential."""

        if not token:
            raise Unauthorized("Token required")

        user_db, session_id = await self.app.user_service.authenticate(token)

        return AuthContext(user=user_db, session_id=session_id)

    async def optional_user(self, token: Optional[str] = Depends(oauth2_scheme)) -> Optional[AuthContext]:
        """Dependency resolving the caller when a valid credential is given."""

        if not token:
            return None

        try:
            user_db, session_id = await self.app.user_service.authenticate(token)
        except Unauthorized:
            return None

        return AuthContext(user=user_db, session_id=session_id)

    def require_roles(self, *roles: Role):
        """Dependency factory allowing only the given roles."""

        async def role_checker(auth: AuthContext = Depends(self.current_user)) -> AuthContext:
            if auth.user.role not in roles:
                raise Forbidden("Operation not permitted")
            return auth

        return role_checker

    def require_registered(self):
        async def registered_checker(auth: AuthContext = Depends(self.current_user)) -> AuthContext:
            if auth.user.is_guest:
                raise Forbidden("Registered account required")
            return auth

        return registered_checker

    def require_staff(self):
        return self.require_roles(Role.MODERATOR, Role.ADMIN)
