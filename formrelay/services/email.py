"""
FormRelay Email Rendering
Jinja2-based rendering of the administrator notice and the submitter
acknowledgment for a persisted submission.
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import structlog
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from formrelay.core.config import Settings, settings as default_settings
from formrelay.delivery.models import OutboundMessage
from formrelay.schemas.contact import StoredSubmission


logger = structlog.get_logger(__name__)


# Template directory path
TEMPLATES_DIR = Path(__file__).parent.parent / "templates"

ADMIN_NOTICE_SUBJECT = "New Contact Form Submission"
ACKNOWLEDGMENT_SUBJECT = "We received your message"


def format_timestamp(value: datetime) -> str:
    """
    Format a timestamp for people, e.g. ``October 19, 2026 at 10:52 AM UTC``.

    Naive values are treated as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    hour = value.strftime("%I").lstrip("0")
    return f"{value.strftime('%B')} {value.day}, {value.year} at {hour}:{value.strftime('%M %p')} UTC"


class SubmissionMailRenderer:
    """
    Renders outbound messages for a submission.

    Rendering has no side effects: the same submission and settings always
    produce the same messages. User-supplied fields are HTML-escaped in
    the HTML templates; plain-text bodies are rendered verbatim.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._env: Optional[Environment] = None

    @property
    def env(self) -> Environment:
        """Lazy-loaded Jinja2 environment."""
        if self._env is None:
            self._env = Environment(
                loader=FileSystemLoader(str(TEMPLATES_DIR)),
                autoescape=select_autoescape(enabled_extensions=("html",), default=False),
                trim_blocks=True,
                lstrip_blocks=True,
            )
            self._env.filters["format_timestamp"] = format_timestamp
        return self._env

    def _get_base_context(self) -> dict[str, Any]:
        return {
            "app_name": self.settings.app_name,
            "brand_name": self.settings.brand_name,
        }

    def render_template(self, template_name: str, context: dict[str, Any]) -> str:
        """Render a single template file with the given context."""
        template = self.env.get_template(template_name)
        return template.render(**context)

    def render_email(
        self,
        template_name: str,
        submission: StoredSubmission,
    ) -> tuple[str, str]:
        """
        Render both HTML and plain-text versions of an email template.

        Args:
            template_name: Base name of the template (without extension).
            submission: The persisted submission to render.

        Returns:
            Tuple of (html_content, text_content).
        """
        context = {**self._get_base_context(), "submission": submission}
        html_content = self.render_template(f"{template_name}.html", context)

        try:
            text_content = self.render_template(f"{template_name}.txt", context)
        except TemplateNotFound:
            logger.warning(
                "plain_text_template_not_found",
                template=f"{template_name}.txt",
            )
            text_content = ""

        return html_content, text_content

    @property
    def _from_email(self) -> str:
        return self.settings.email_user or ""

    def render_admin_notice(self, submission: StoredSubmission) -> OutboundMessage:
        """Notice to the site administrator with every submitted field."""
        html_content, text_content = self.render_email("admin_notice", submission)
        return OutboundMessage(
            subject=ADMIN_NOTICE_SUBJECT,
            body_html=html_content,
            body_text=text_content,
            from_email=self._from_email,
            from_name=self.settings.admin_sender_name,
            to_email=self.settings.recipient_email or "",
            reply_to=submission.email,
        )

    def render_acknowledgment(self, submission: StoredSubmission) -> OutboundMessage:
        """Short confirmation sent back to the submitter."""
        html_content, text_content = self.render_email("acknowledgment", submission)
        return OutboundMessage(
            subject=ACKNOWLEDGMENT_SUBJECT,
            body_html=html_content,
            body_text=text_content,
            from_email=self._from_email,
            from_name=self.settings.brand_name,
            to_email=submission.email,
            to_name=submission.name,
        )
