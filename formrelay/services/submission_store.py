"""
Submission Store

Durable, write-once persistence of contact form submissions. Field
constraints are checked again here even though requests are validated
before they reach the workflow.
"""
import re
import uuid
from datetime import datetime, timezone
from typing import Callable

import structlog
from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from formrelay.core.exceptions import ConflictError, FieldError, ValidationError
from formrelay.models import ContactSubmission
from formrelay.schemas.contact import StoredSubmission, SubmissionCandidate

logger = structlog.get_logger(__name__)


NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50
MESSAGE_MAX_LENGTH = 1000

# SQLite: "UNIQUE constraint failed: contact_submissions.id"
# PostgreSQL: "Key (id)=(...) already exists."
_SQLITE_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: \w+\.(\w+)")
_POSTGRES_KEY_RE = re.compile(r"Key \((\w+)\)=")


def _validate_name(value: str) -> str | None:
    if not value:
        return "Name is required"
    if len(value) < NAME_MIN_LENGTH:
        return f"Name must be at least {NAME_MIN_LENGTH} characters long"
    if len(value) > NAME_MAX_LENGTH:
        return f"Name cannot exceed {NAME_MAX_LENGTH} characters"
    return None


def _validate_email(value: str) -> str | None:
    if not value:
        return "Email is required"
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return "Please provide a valid email"
    return None


def _validate_message(value: str) -> str | None:
    if not value:
        return "Message is required"
    if len(value) > MESSAGE_MAX_LENGTH:
        return f"Message cannot exceed {MESSAGE_MAX_LENGTH} characters"
    return None


def clean_candidate(candidate: SubmissionCandidate) -> dict[str, str]:
    """
    Normalize and check a candidate's fields.

    Returns the trimmed values (email lowercased) or raises ValidationError
    with one message per violated field.
    """
    cleaned = {
        "name": (candidate.name or "").strip(),
        "email": (candidate.email or "").strip().lower(),
        "message": (candidate.message or "").strip(),
    }
    validators = {
        "name": _validate_name,
        "email": _validate_email,
        "message": _validate_message,
    }

    errors = []
    for field, check in validators.items():
        problem = check(cleaned[field])
        if problem:
            errors.append(FieldError(field=field, message=problem))

    if errors:
        raise ValidationError(errors)
    return cleaned


def conflicting_field(error: IntegrityError) -> str:
    """Best-effort extraction of the column named in a uniqueness violation."""
    text = str(error.orig) if error.orig is not None else str(error)
    for pattern in (_SQLITE_UNIQUE_RE, _POSTGRES_KEY_RE):
        match = pattern.search(text)
        if match:
            return match.group(1)
    return "id"


class SubmissionStore:
    """Persists submissions; the only writer of ContactSubmission rows."""

    def __init__(
        self,
        session: AsyncSession,
        id_factory: Callable[[], uuid.UUID] = uuid.uuid4,
    ):
        self.session = session
        self.id_factory = id_factory

    async def save(self, candidate: SubmissionCandidate) -> StoredSubmission:
        """
        Validate and insert a candidate submission.

        Args:
            candidate: Submission without an identity.

        Returns:
            The persisted submission with ``id`` and ``submitted_at`` set.

        Raises:
            ValidationError: One or more fields violate their constraints.
            ConflictError: The backend rejected the row as a duplicate.
        """
        fields = clean_candidate(candidate)

        stored = StoredSubmission(
            id=self.id_factory(),
            submitted_at=candidate.submitted_at or datetime.now(timezone.utc),
            **fields,
        )
        row = ContactSubmission(**stored.model_dump())
        self.session.add(row)

        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            field = conflicting_field(e)
            logger.warning("submission_conflict", field=field)
            raise ConflictError(field) from e
        except Exception:
            await self.session.rollback()
            raise

        logger.info("submission_saved", submission_id=str(stored.id), email=stored.email)
        return stored
