"""
FormRelay Pydantic Schemas
Request/Response models for API endpoints.
"""
from formrelay.schemas.contact import (
    ContactFormRequest,
    ContactFormResponse,
    FieldErrorDetail,
    StoredSubmission,
    SubmissionCandidate,
)

__all__ = [
    "ContactFormRequest",
    "ContactFormResponse",
    "FieldErrorDetail",
    "StoredSubmission",
    "SubmissionCandidate",
]
