"""
Submission Workflow

Persist-then-notify orchestration for contact form submissions.

A request moves through a strict sequence: persist, verify the mail
transport, notify the administrator, acknowledge the submitter. Once the
submission is persisted nothing that happens afterwards can turn the
request into a failure; mail problems only downgrade the outcome to a
partial success. Nothing is retried and no step runs concurrently with
another.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Union

import structlog

from formrelay.core.exceptions import ContactFormError, TransportError, UnknownError
from formrelay.delivery.mail import MailSender
from formrelay.schemas.contact import ContactFormRequest, StoredSubmission, SubmissionCandidate
from formrelay.services.email import SubmissionMailRenderer
from formrelay.services.submission_store import SubmissionStore

logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Outcomes
# =============================================================================


@dataclass(frozen=True)
class FullSuccess:
    """Persisted, and both emails were delivered."""

    submission: StoredSubmission


@dataclass(frozen=True)
class PartialSuccess:
    """Persisted, but the notification phase stopped at ``error``."""

    submission: StoredSubmission
    error: TransportError


@dataclass(frozen=True)
class Failure:
    """Nothing was persisted and no email was attempted."""

    cause: ContactFormError


SubmissionOutcome = Union[FullSuccess, PartialSuccess, Failure]


# =============================================================================
# Workflow
# =============================================================================


class SubmissionWorkflow:
    """
    Coordinates the submission store and the mail transport.

    Args:
        store: Persistence for the submission.
        mail_sender_factory: Returns a fresh, unconnected MailSender. Called
            once per request, after persistence succeeds.
        renderer: Builds the admin notice and the acknowledgment.
        clock: Source of ``submitted_at``.
    """

    def __init__(
        self,
        store: SubmissionStore,
        mail_sender_factory: Callable[[], MailSender],
        renderer: SubmissionMailRenderer,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.mail_sender_factory = mail_sender_factory
        self.renderer = renderer
        self.clock = clock

    async def submit(self, payload: ContactFormRequest) -> SubmissionOutcome:
        """Run the workflow for one request and return its single outcome."""
        candidate = SubmissionCandidate(
            name=payload.name,
            email=payload.email,
            message=payload.message,
            submitted_at=self.clock(),
        )

        try:
            submission = await self.store.save(candidate)
        except ContactFormError as e:
            logger.warning("submission_rejected", error_type=type(e).__name__, error=e.message)
            return Failure(cause=e)
        except Exception as e:
            logger.exception("submission_persist_failed", error=str(e))
            unknown = UnknownError("Failed to persist submission")
            unknown.__cause__ = e
            return Failure(cause=unknown)

        try:
            await self._notify(submission)
        except TransportError as e:
            logger.error(
                "submission_notification_failed",
                submission_id=str(submission.id),
                error=e.message,
            )
            return PartialSuccess(submission=submission, error=e)

        logger.info("submission_completed", submission_id=str(submission.id))
        return FullSuccess(submission=submission)

    async def _notify(self, submission: StoredSubmission) -> None:
        """
        Verify the transport, then send the admin notice and the acknowledgment.

        Stops at the first failure. Every failure surfaces as TransportError.
        """
        try:
            admin_notice = self.renderer.render_admin_notice(submission)
            acknowledgment = self.renderer.render_acknowledgment(submission)
            async with self.mail_sender_factory() as sender:
                await sender.verify_connectivity()
                await sender.send(admin_notice)
                await sender.send(acknowledgment)
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(f"Unexpected mail failure: {e}") from e
