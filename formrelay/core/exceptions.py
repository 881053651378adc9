"""
Custom Exception Classes for FormRelay.

Domain errors raised by the submission store and the mail sender. Each
carries the HTTP status it maps to and a message that is safe to return
to the caller.
"""
from dataclasses import dataclass

from fastapi import status


@dataclass(frozen=True)
class FieldError:
    """A single violated field constraint."""

    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class ContactFormError(Exception):
    """Base class for all FormRelay domain errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: str = "An unexpected error occurred"

    def __init__(self, message: str | None = None):
        self.message = message or self.public_message
        super().__init__(self.message)


class ValidationError(ContactFormError):
    """Exception raised when one or more submission fields are invalid."""

    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Validation Error"

    def __init__(self, errors: list[FieldError]):
        self.errors = list(errors)
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in self.errors))


class ConflictError(ContactFormError):
    """Exception raised when the storage layer reports a uniqueness conflict."""

    public_message = "Duplicate key error"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Duplicate value for field '{field}'")


class TransportError(ContactFormError):
    """Exception raised when the mail transport cannot connect or deliver."""

    status_code = status.HTTP_502_BAD_GATEWAY
    public_message = "Email delivery failed"


class UnknownError(ContactFormError):
    """Exception raised for any failure that has no more specific category."""
