"""Errors raised by the field signing service.

Every failure of ``sign_field`` is one of three categories. They all
subclass ``ValueError`` so callers that only care about "bad request"
can catch that, while the API maps each category to its own status.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable error codes returned alongside the message."""

    VALIDATION_ERROR = "VAL_001"
    NOT_FOUND = "RES_001"
    CONFLICT = "RES_003"


class FieldSignError(ValueError):
    """Base class for signing failures."""

    code: ErrorCode = ErrorCode.VALIDATION_ERROR
    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code.value}


class NotFoundError(FieldSignError):
    """The token does not resolve to a recipient owning the field."""

    code = ErrorCode.NOT_FOUND
    status_code = 404


class ConflictError(FieldSignError):
    """The document, recipient or field is no longer in a signable state."""

    code = ErrorCode.CONFLICT
    status_code = 409


class SigningValidationError(FieldSignError):
    """The submitted value can't be stored for this field."""

    code = ErrorCode.VALIDATION_ERROR
    status_code = 422
