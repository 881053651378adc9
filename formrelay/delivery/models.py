"""
FormRelay Mail Delivery Models
Pydantic models for outbound email content.
"""

import re
from email.utils import formataddr
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

_LINE_BREAKS = re.compile(r"[\r\n]+\s*")


def header_safe(value: str) -> str:
    """Collapse line breaks so a display name fits on one header line."""
    return _LINE_BREAKS.sub(" ", value).strip()


class OutboundMessage(BaseModel):
    """A fully rendered email ready for the transport."""

    model_config = ConfigDict(frozen=True)

    subject: str = Field(..., max_length=200)
    body_html: str
    body_text: str
    from_email: str
    from_name: str
    to_email: str
    to_name: Optional[str] = None
    reply_to: Optional[str] = None

    @property
    def sender(self) -> str:
        """RFC 5322 From header value."""
        return formataddr((header_safe(self.from_name), self.from_email))

    @property
    def recipient(self) -> str:
        """RFC 5322 To header value."""
        if self.to_name:
            return formataddr((header_safe(self.to_name), self.to_email))
        return self.to_email
