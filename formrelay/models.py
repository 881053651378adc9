"""
FormRelay Database Models
SQLAlchemy ORM models for contact form submissions.
"""
import uuid
from datetime import datetime

from sqlalchemy import TIMESTAMP, Index, String, Text, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class ContactSubmission(Base):
    """
    A contact form submission.

    Rows are written once by the submission store and never updated
    or deleted by the service.
    """

    __tablename__ = "contact_submissions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        doc="Identity assigned when the submission is persisted",
    )
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="Submitter name (trimmed, 2-50 characters)",
    )
    email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        doc="Submitter email (trimmed, lowercase)",
    )
    message: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Message body (trimmed, at most 1000 characters)",
    )
    submitted_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        doc="When the form was submitted",
    )

    __table_args__ = (
        Index("ix_contact_submissions_submitted_at", "submitted_at"),
        Index("ix_contact_submissions_email", "email"),
    )

    def __repr__(self) -> str:
        return f"<ContactSubmission(id={self.id}, email={self.email!r})>"
