"""Domain error taxonomy.

Every error carries a stable ``code`` and the HTTP status it maps to at the
route boundary (see ``backend.campusops.main``). None of them are retried.
"""

from fastapi import status


class CampusOpsError(Exception):
    """Base class for errors surfaced to API callers."""

    code: str = "INTERNAL_ERROR"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Something went wrong"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidToken(CampusOpsError):
    """Malformed, expired, or wrong-domain credential. Caller must re-authenticate."""

    code = "UNAUTHORIZED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid or expired token"


class MissingOrgContext(CampusOpsError):
    """A tenant-scoped operation ran with no organization established."""

    code = "UNAUTHORIZED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Organization context is required"


class InvalidOrganization(CampusOpsError):
    """The selected organization does not exist or is suspended."""

    code = "UNAUTHORIZED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid organization"


class InsufficientPermissions(CampusOpsError):
    """Authorization denial for a specific permission key."""

    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, permission: str, message: str | None = None) -> None:
        self.permission = permission
        super().__init__(message or f"Insufficient permissions: {permission}")


class CrossTenantWrite(CampusOpsError):
    """A scoped write tried to move a record into another organization."""

    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Records cannot be moved between organizations"


class InvalidSetupToken(CampusOpsError):
    code = "INVALID_TOKEN"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid setup token"


class TokenUsed(CampusOpsError):
    code = "TOKEN_USED"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "This setup link has already been used"


class TokenExpired(CampusOpsError):
    code = "TOKEN_EXPIRED"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "This setup link has expired"


class NotFound(CampusOpsError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(CampusOpsError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class BadRequest(CampusOpsError):
    code = "BAD_REQUEST"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"
