"""
FormRelay Mail Delivery
Transport and message models for submission notifications.
"""
from formrelay.delivery.mail import MailSender, SMTPMailSender
from formrelay.delivery.models import OutboundMessage

__all__ = [
    # Transport
    "MailSender",
    "SMTPMailSender",
    # Models
    "OutboundMessage",
]
