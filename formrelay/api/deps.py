"""
FastAPI Dependencies
Shared dependencies wiring the submission workflow to its collaborators.
"""
from typing import Annotated, Callable

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from formrelay.core.config import settings
from formrelay.database import get_db
from formrelay.delivery.mail import MailSender, SMTPMailSender
from formrelay.services.email import SubmissionMailRenderer
from formrelay.services.submission_store import SubmissionStore
from formrelay.services.submission_workflow import SubmissionWorkflow

_renderer = SubmissionMailRenderer(settings)


def get_mail_sender_factory() -> Callable[[], MailSender]:
    """Factory producing a fresh SMTP sender for each request."""
    return SMTPMailSender.from_settings


def get_mail_renderer() -> SubmissionMailRenderer:
    """Shared renderer; it holds no per-request state."""
    return _renderer


def get_submission_workflow(
    db: Annotated[AsyncSession, Depends(get_db)],
    mail_sender_factory: Annotated[Callable[[], MailSender], Depends(get_mail_sender_factory)],
    renderer: Annotated[SubmissionMailRenderer, Depends(get_mail_renderer)],
) -> SubmissionWorkflow:
    """Build the workflow for one request."""
    return SubmissionWorkflow(
        store=SubmissionStore(db),
        mail_sender_factory=mail_sender_factory,
        renderer=renderer,
    )
