"""
Domain exceptions for HelpOrbit

Services raise these; the API layer turns them into
``{"success": false, "error": ..., "code": ...}`` responses.
"""
from typing import Dict, List, Optional

from fastapi import status


class HelpOrbitError(Exception):
    """Base class for all expected application errors"""

    code = "error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be completed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


class ValidationError(HelpOrbitError):
    """Malformed input or schema violation"""

    code = "validation-error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Invalid input data"

    def __init__(self, message: Optional[str] = None, errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(message)
        self.errors = errors or {}

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.errors:
            body["errors"] = self.errors
        return body


class PermissionDeniedError(HelpOrbitError):
    """The acting member's role does not allow the action"""

    code = "permission-denied"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient permissions"


class NotFoundError(HelpOrbitError):
    code = "not-found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class AlreadyProcessedError(HelpOrbitError):
    """The entity is already in a terminal state"""

    code = "already-processed"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This invitation has already been processed"


class ExpiredError(HelpOrbitError):
    code = "expired"
    status_code = status.HTTP_410_GONE
    default_message = "This invitation has expired"


class WrongUserError(HelpOrbitError):
    """The invitation was addressed to a different email than the acting user's"""

    code = "wrong-user"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "This invitation was sent to a different email address"


class UniquenessError(HelpOrbitError):
    """A unique constraint would be violated"""

    code = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class SlugTakenError(UniquenessError):
    code = "slug-taken"
    default_message = "Organization slug is already taken"


class LastOwnerError(HelpOrbitError):
    """The change would leave an organization without any owner"""

    code = "last-owner"
    status_code = status.HTTP_409_CONFLICT
    default_message = "An organization must keep at least one owner"


class UnexpectedError(HelpOrbitError):
    code = "unexpected-error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "An unexpected error occurred"
