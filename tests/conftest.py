"""
FormRelay Test Configuration and Fixtures
Shared pytest fixtures for all test modules.
"""
import os
import tempfile
import uuid
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from formrelay.core.config import Settings
from formrelay.core.exceptions import TransportError
from formrelay.core.rate_limit import MemoryWindowCounter
from formrelay.delivery.mail import MailSender
from formrelay.delivery.models import OutboundMessage
from formrelay.models import Base
from formrelay.schemas.contact import StoredSubmission
from formrelay.services.email import SubmissionMailRenderer


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create an async SQLite engine for testing."""
    # Use a unique temp file for each test to ensure complete isolation
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()

    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest.fixture
def session_factory(async_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def async_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create an async session for testing."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# Settings and Rendering Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a complete mail configuration."""
    return Settings(
        _env_file=None,
        app_name="FormRelay",
        brand_name="Enlinque",
        admin_sender_name="Contact Form",
        email_user="noreply@enlinque.com",
        email_pass="secret",
        recipient_email="admin@enlinque.com",
        smtp_host="smtp.example.com",
        smtp_port=465,
    )


@pytest.fixture
def renderer(test_settings) -> SubmissionMailRenderer:
    return SubmissionMailRenderer(test_settings)


@pytest.fixture
def stored_submission() -> StoredSubmission:
    """A persisted submission as the workflow sees it."""
    return StoredSubmission(
        id=uuid.UUID("8a6e0804-2bd0-4672-b79d-d97027f9071a"),
        name="Ada Lovelace",
        email="ada@example.com",
        message="I'd like to talk about the analytical engine.",
        submitted_at=datetime(2026, 10, 19, 10, 52, tzinfo=timezone.utc),
    )


@pytest.fixture
def contact_payload() -> dict[str, str]:
    """A valid contact form body."""
    return {
        "name": "Ada Lovelace",
        "email": "Ada@Example.com",
        "message": "I'd like to talk about the analytical engine.",
    }


# =============================================================================
# Mail Transport Fakes
# =============================================================================


class FakeMailTransport:
    """
    Records what every FakeMailSender built from it did.

    ``fail_on`` selects the step that raises TransportError: "verify",
    "send" (every send), or "send:N" (the N-th send, 1-based).
    """

    def __init__(self, fail_on: Optional[str] = None):
        self.fail_on = fail_on
        self.verify_calls = 0
        self.sent: list[OutboundMessage] = []
        self.closed = 0
        self.senders_created = 0

    def factory(self) -> "FakeMailSender":
        self.senders_created += 1
        return FakeMailSender(self)


class FakeMailSender(MailSender):
    def __init__(self, transport: FakeMailTransport):
        self.transport = transport
        self._send_attempts = 0

    async def verify_connectivity(self) -> None:
        self.transport.verify_calls += 1
        if self.transport.fail_on == "verify":
            raise TransportError("SMTP connectivity check failed: connection refused")

    async def send(self, message: OutboundMessage) -> str:
        self._send_attempts += 1
        fail_on = self.transport.fail_on
        if fail_on == "send" or fail_on == f"send:{self._send_attempts}":
            raise TransportError("SMTP send failed: 550 mailbox unavailable")
        self.transport.sent.append(message)
        return f"<{self._send_attempts}@test>"

    async def close(self) -> None:
        self.transport.closed += 1


@pytest.fixture
def mail_transport() -> FakeMailTransport:
    return FakeMailTransport()


@pytest.fixture
def make_transport():
    """Build a FakeMailTransport, optionally failing at one step."""
    return FakeMailTransport


# =============================================================================
# Rate Limiter Fixtures
# =============================================================================


@pytest.fixture
def memory_rate_limiter():
    """Count rate limit hits in a fresh in-memory counter instead of Redis."""
    counter = MemoryWindowCounter()

    async def _get_window_counter():
        return counter

    with patch("formrelay.core.rate_limit.get_window_counter", _get_window_counter):
        yield counter


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(
    session_factory,
    mail_transport,
    renderer,
    memory_rate_limiter,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async client for the FastAPI app with the database, mail transport and
    renderer replaced by test doubles.
    """
    from formrelay.api.deps import get_mail_renderer, get_mail_sender_factory
    from formrelay.database import get_db
    from formrelay.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mail_sender_factory] = lambda: mail_transport.factory
    app.dependency_overrides[get_mail_renderer] = lambda: renderer
    app.state.email_available = True

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    app.state.email_available = None
