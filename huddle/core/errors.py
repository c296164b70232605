"""Error taxonomy shared by services, the API and the sync client."""

from typing import Any, Dict, Optional


class HuddleError(Exception):
    """Base class for all domain errors.

    Every error carries a stable machine code, the HTTP status it maps to and
    whether retrying the same call can succeed.
    """

    code = "HUDDLE_ERROR"
    status_code = 500
    retryable = False
    default_message = "Unexpected error"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}

    def __repr__(self):
        return f"<{self.__class__.__name__}(code={self.code!r}, message={self.message!r})>"


class NotAuthorized(HuddleError):
    code = "NOT_AUTHORIZED"
    status_code = 403
    default_message = "You are not allowed to perform this action"


class InvalidToken(HuddleError):
    code = "INVALID_TOKEN"
    status_code = 404
    default_message = "This invitation link is invalid or has expired"


class InvitationsDisabled(HuddleError):
    code = "INVITATIONS_DISABLED"
    status_code = 409
    default_message = "Invitations for this group have been disabled"


class InvalidTarget(HuddleError):
    code = "INVALID_TARGET"
    status_code = 422
    default_message = "The selected user is not a member of this group"


class NotFound(HuddleError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"


class TransientIO(HuddleError):
    code = "TRANSIENT_IO"
    status_code = 503
    retryable = True
    default_message = "Temporary failure talking to the server, please retry"


class ValidationError(HuddleError):
    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Invalid input"
