"""Error taxonomy for chat operations.

Every error carries a stable ``code`` that the HTTP layer returns to clients.
"""

from typing import Literal


class ChatError(Exception):
    """Base exception for chat operation errors."""

    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnauthenticatedError(ChatError):
    """Raised when no verified identity is present."""

    code = "unauthenticated"


class ProfileNotFoundError(ChatError):
    """Raised when the identity is verified but no profile was upserted yet."""

    code = "profile_not_found"


class ValidationError(ChatError):
    """Raised when input fails validation (empty name, empty message, ...)."""

    code = "validation_error"


class NotMemberError(ChatError):
    """Raised when the caller is not a member of the target conversation."""

    code = "not_member"


class ForbiddenError(ChatError):
    """Raised when acting on a resource owned by another user."""

    code = "forbidden"


class NotFoundError(ChatError):
    """Raised when a referenced entity does not exist."""

    code = "not_found"


UploadFailureReason = Literal["storage", "too_large", "invalid_handle"]


class UploadError(ChatError):
    """Raised when attachment storage fails or rejects content.

    Returned to clients with kind "upload", separate from validation errors.

    Attributes:
        reason: What went wrong with the upload.
    """

    code = "upload_failed"

    def __init__(self, message: str, reason: UploadFailureReason = "storage") -> None:
        super().__init__(message)
        self.reason = reason
