"""
Service error hierarchy.

Every error carries a stable ``code`` (used in the ``Result`` envelope) and the
HTTP status it is rendered with.
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    code = "SERVICE_ERROR"
    status_code = 400

    def __init__(self, message: str = "", **details):
        self.message = message or self.__class__.__name__
        self.details = details
        super().__init__(self.message)

    def as_error(self) -> tuple[str, str]:
        return self.code, self.message


class NotFound(ServiceError):
    """Entity absent."""

    code = "NOT_FOUND"
    status_code = 404


class Unauthorized(ServiceError):
    """Missing or invalid credential."""

    code = "UNAUTHORIZED"
    status_code = 401


class Forbidden(ServiceError):
    """Authenticated but not allowed to perform this action."""

    code = "FORBIDDEN"
    status_code = 403


class Banned(Forbidden):
    """Account is under an active ban."""

    code = "BANNED"

    def __init__(self, reason: str | None, banned_until: str):
        super().__init__("Your account is banned", reason=reason, banned_until=banned_until)


class Conflict(ServiceError):
    """Duplicate request or relationship."""

    code = "CONFLICT"
    status_code = 409


class InvalidState(ServiceError):
    """Operating on an expired, inactive or archived entity."""

    code = "INVALID_STATE"
    status_code = 409


class OwnerOffline(InvalidState):
    """Room owner is offline, the room is about to be removed."""

    code = "OWNER_OFFLINE"

    def __init__(self):
        super().__init__("Room creator is offline. This room will be deleted soon.")


class ValidationError(ServiceError):
    """Malformed input."""

    code = "VALIDATION_ERROR"
    status_code = 422


class UpstreamFailure(ServiceError):
    """External media storage or push channel failure."""

    code = "UPSTREAM_FAILURE"
    status_code = 502
