"""
Sentry Error Reporting
Optional error tracking for the contact form service. Without a DSN every
helper here is a no-op.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from formrelay.core.config import settings

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
SENSITIVE_HEADERS = ("authorization", "cookie")


def before_send(event: dict[str, Any], hint: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Skip health probe noise and keep submitted form bodies out of events."""
    request = event.get("request")
    if not request:
        return event

    if request.get("url", "").endswith("/health"):
        return None

    if "data" in request:
        request["data"] = REDACTED

    headers = request.get("headers") or {}
    for name in SENSITIVE_HEADERS:
        if name in headers:
            headers[name] = REDACTED

    return event


def init_sentry() -> bool:
    """Configure the SDK; returns False when reporting stays disabled."""
    if not settings.sentry_dsn:
        return False

    environment = settings.sentry_environment or settings.environment
    try:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=environment,
            release=f"formrelay@{settings.app_version}",
            traces_sample_rate=settings.sentry_traces_sample_rate,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                # Mail failures are logged at ERROR; keep them as breadcrumbs only
                LoggingIntegration(level=logging.INFO, event_level=None),
                SqlalchemyIntegration(),
            ],
            before_send=before_send,
            send_default_pii=False,
        )
    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")
        return False

    sentry_sdk.set_tag("service", "formrelay")
    logger.info(f"Sentry reporting to environment {environment}")
    return True


@contextmanager
def _scope_with(extra: Optional[dict[str, Any]]) -> Iterator[Any]:
    with sentry_sdk.new_scope() as scope:
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        yield scope


def capture_exception(error: BaseException, extra: Optional[dict[str, Any]] = None) -> Optional[str]:
    """Report an exception; returns the event id when one was sent."""
    with _scope_with(extra):
        return sentry_sdk.capture_exception(error)


def capture_message(
    message: str,
    level: str = "info",
    extra: Optional[dict[str, Any]] = None,
) -> Optional[str]:
    with _scope_with(extra):
        return sentry_sdk.capture_message(message, level=level)
