"""Contact form schemas."""
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class ContactFormRequest(BaseModel):
    """Contact form submission request."""
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    message: str = Field(..., min_length=1, max_length=1000)

    @field_validator("name", "email", "message", mode="before")
    @classmethod
    def strip_whitespace(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class SubmissionCandidate(BaseModel):
    """A submission that has not been persisted yet."""
    name: str
    email: str
    message: str
    submitted_at: Optional[datetime] = None


class StoredSubmission(BaseModel):
    """Read-only view of a persisted submission."""
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    name: str
    email: str
    message: str
    submitted_at: datetime


class FieldErrorDetail(BaseModel):
    """A single field-level validation message."""
    field: str
    message: str


class ContactFormResponse(BaseModel):
    """Contact form submission response."""
    success: bool
    message: str
    formId: Optional[str] = None
    emailError: Optional[bool] = None
    error: Optional[str] = None
    errors: Optional[list[FieldErrorDetail]] = None
