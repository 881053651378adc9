"""
FormRelay FastAPI Application

Wires the contact and health routers together with CORS, rate limit
headers, error handlers and the startup email self-test.
Run with ``uvicorn formrelay.main:app`` or ``python -m formrelay.main``.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from formrelay.api import contact, health
from formrelay.api.deps import get_mail_sender_factory
from formrelay.core.config import settings
from formrelay.core.exceptions import ContactFormError, TransportError
from formrelay.core.rate_limit import (
    RateLimitMiddleware,
    close_rate_limiter,
    rate_limit_exception_handler,
)
from formrelay.core.sentry import capture_exception, capture_message, init_sentry
from formrelay.database import close_db, init_db
from formrelay.delivery.mail import MailSender

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Startup Email Self-Test
# =============================================================================


async def check_email_config(
    app: FastAPI,
    sender_factory: Callable[[], MailSender],
) -> bool:
    """
    Verify the mail transport once at startup.

    The result only feeds ``/health``; submissions are accepted and stored
    either way, and each request verifies the transport again.
    """
    try:
        async with sender_factory() as sender:
            await sender.verify_connectivity()
    except TransportError as e:
        app.state.email_available = False
        logger.error(f"Email configuration error: {e.message}")
        logger.warning("Application will continue to run, but email functionality may not work.")
        capture_message(f"Email self-test failed: {e.message}", level="warning")
        return False

    app.state.email_available = True
    logger.info(f"SMTP transport verified ({settings.smtp_host}:{settings.smtp_port})")
    return True


def _report_task_failure(task: asyncio.Task) -> None:
    if task.cancelled() or task.exception() is None:
        return
    logger.error(f"Startup task {task.get_name()} crashed: {task.exception()!r}")
    capture_exception(task.exception(), extra={"task": task.get_name()})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start Sentry, optionally create tables, and launch the email self-test."""
    logger.info(
        f"{settings.app_name} {settings.app_version} starting "
        f"(environment={settings.environment}, debug={settings.debug})"
    )
    logger.info(f"Sentry reporting {'on' if init_sentry() else 'off'}")

    if settings.debug:
        try:
            await init_db()
            logger.info("contact_submissions table ready")
        except Exception as e:
            logger.error(f"Could not create tables: {e}")

    app.state.email_available = None
    factory_provider = app.dependency_overrides.get(get_mail_sender_factory, get_mail_sender_factory)
    self_test = asyncio.create_task(
        check_email_config(app, factory_provider()),
        name="email-self-test",
    )
    self_test.add_done_callback(_report_task_failure)

    yield

    if not self_test.done():
        self_test.cancel()
    await asyncio.gather(self_test, return_exceptions=True)
    await close_rate_limiter()
    await close_db()
    logger.info(f"{settings.app_name} stopped")


# =============================================================================
# Error Responses
# =============================================================================


async def route_not_found(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"success": False, "message": "Route not found"},
    )


async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """413, 415 and other HTTP errors in the API's failure shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=exc.headers,
    )


async def contact_form_error(request: Request, exc: ContactFormError) -> JSONResponse:
    """Validation errors raised while reading the request body."""
    return contact.error_response(exc)


async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    event_id = capture_exception(
        exc,
        extra={"request_method": request.method, "request_path": request.url.path},
    )

    content: dict[str, Any] = {"success": False, "message": "Internal server error"}
    if settings.debug:
        content["error"] = str(exc)
    if event_id:
        content["error_id"] = event_id
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    # Status-code handlers are consulted before the HTTPException class handler
    app.add_exception_handler(status.HTTP_404_NOT_FOUND, route_not_found)
    app.add_exception_handler(status.HTTP_429_TOO_MANY_REQUESTS, rate_limit_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_error)
    app.add_exception_handler(ContactFormError, contact_form_error)
    app.add_exception_handler(Exception, unhandled_error)


# =============================================================================
# Application Factory
# =============================================================================


def create_app() -> FastAPI:
    app = FastAPI(
        title=f"{settings.app_name} API",
        description=(
            "Contact form intake. Submissions are stored first; the administrator "
            "notice and the submitter acknowledgment are sent on a best-effort basis."
        ),
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    if settings.rate_limit_enabled:
        app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(contact.router)

    @app.get("/", tags=["Root"], summary="Welcome message")
    async def root() -> dict[str, str]:
        return {"status": "success", "message": "Welcome to API"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "formrelay.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )
