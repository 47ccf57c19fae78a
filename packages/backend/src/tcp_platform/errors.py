"""Error taxonomy shared by services and routes.

Services raise these; main.py renders them as JSON with the matching
status code. Authentication failures (401) never say which part of a
credential was wrong.
"""

from typing import Optional


class PlatformError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 400
    code = "error"
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(PlatformError):
    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid credentials"


class Expired(PlatformError):
    status_code = 401
    code = "expired"
    default_message = "Credential has expired"


class AccessDenied(PlatformError):
    status_code = 403
    code = "access_denied"
    default_message = "Insufficient permissions"


class NotFound(PlatformError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class Conflict(PlatformError):
    status_code = 409
    code = "conflict"
    default_message = "Conflict"


class AlreadyUsed(Conflict):
    code = "already_used"
    default_message = "Credential has already been used"


class MalformedInput(PlatformError):
    status_code = 422
    code = "malformed_input"
    default_message = "Invalid request data"
