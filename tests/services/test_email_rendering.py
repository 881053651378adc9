"""
Tests for submission email rendering.
"""
from datetime import datetime, timedelta, timezone

from formrelay.services.email import (
    ACKNOWLEDGMENT_SUBJECT,
    ADMIN_NOTICE_SUBJECT,
    SubmissionMailRenderer,
    format_timestamp,
)


class TestFormatTimestamp:
    def test_utc_value(self):
        value = datetime(2026, 10, 19, 10, 52, tzinfo=timezone.utc)
        assert format_timestamp(value) == "October 19, 2026 at 10:52 AM UTC"

    def test_naive_value_is_treated_as_utc(self):
        assert format_timestamp(datetime(2026, 1, 5, 15, 7)) == "January 5, 2026 at 3:07 PM UTC"

    def test_offset_value_is_converted(self):
        value = datetime(2026, 10, 19, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(value) == "October 19, 2026 at 10:00 AM UTC"


class TestAdminNotice:
    """Tests for the administrator notice."""

    def test_addressing(self, renderer, stored_submission):
        notice = renderer.render_admin_notice(stored_submission)

        assert notice.subject == ADMIN_NOTICE_SUBJECT
        assert notice.to_email == "admin@enlinque.com"
        assert notice.from_email == "noreply@enlinque.com"
        assert notice.sender == "Contact Form <noreply@enlinque.com>"
        assert notice.reply_to == "ada@example.com"

    def test_contains_every_field(self, renderer, stored_submission):
        notice = renderer.render_admin_notice(stored_submission)

        for body in (notice.body_html, notice.body_text):
            assert "Ada Lovelace" in body
            assert "ada@example.com" in body
            assert "October 19, 2026 at 10:52 AM UTC" in body
            assert str(stored_submission.id) in body
        assert "I'd like to talk about the analytical engine." in notice.body_text

    def test_html_escapes_user_input(self, renderer, stored_submission):
        hostile = stored_submission.model_copy(
            update={"name": "<script>alert(1)</script>", "message": "a < b & c"}
        )

        notice = renderer.render_admin_notice(hostile)

        assert "<script>" not in notice.body_html
        assert "&lt;script&gt;" in notice.body_html
        assert "a &lt; b &amp; c" in notice.body_html
        # Plain text is sent verbatim
        assert "a < b & c" in notice.body_text

    def test_missing_recipient_renders_empty_address(self, test_settings, stored_submission):
        settings = test_settings.model_copy(update={"recipient_email": None})

        notice = SubmissionMailRenderer(settings).render_admin_notice(stored_submission)

        assert notice.to_email == ""


class TestAcknowledgment:
    """Tests for the submitter acknowledgment."""

    def test_addressed_to_submitter(self, renderer, stored_submission):
        ack = renderer.render_acknowledgment(stored_submission)

        assert ack.subject == ACKNOWLEDGMENT_SUBJECT
        assert ack.to_email == "ada@example.com"
        assert ack.recipient == "Ada Lovelace <ada@example.com>"
        assert ack.sender == "Enlinque <noreply@enlinque.com>"

    def test_greets_by_name_and_signs_with_brand(self, renderer, stored_submission):
        ack = renderer.render_acknowledgment(stored_submission)

        assert "Dear Ada Lovelace" in ack.body_text
        assert "Enlinque Team" in ack.body_text
        assert "Ada Lovelace" in ack.body_html

    def test_rendering_is_deterministic(self, renderer, stored_submission):
        assert renderer.render_acknowledgment(stored_submission) == renderer.render_acknowledgment(
            stored_submission
        )
