"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database (tables created once per session)
- Database session fixture with table cleanup after each test
- HTTPX AsyncClient bound to the ASGI app
- Settings and Gemini envelope helpers
"""
import json
import os
from typing import AsyncGenerator, Generator

# Must be set before rescue modules build the engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENV"] = "test"

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.orm import Session

from rescue.core.config import Settings
from rescue.core.deps import get_db
from rescue.db.base import Base
from rescue.db.enums import IntakeStatus, MessageRole
from rescue.db.models import ChatMessage, Intake
from rescue.db.session import engine, SessionLocal
from rescue.main import app


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="session", autouse=True)
def create_tables() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Database session for one test.

    App code commits freely; every table is emptied afterwards.
    """
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()

    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient for the public API, sharing the test session."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as c:
        yield c

    app.dependency_overrides.clear()


# =============================================================================
# Domain Helpers
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    """Isolated settings (no .env) with a Gemini key configured."""
    return Settings(
        _env_file=None,
        ENV="test",
        DATABASE_URL="sqlite://",
        GEMINI_API_KEY="test-gemini-key",
        TWILIO_ACCOUNT_SID="AC123",
        TWILIO_AUTH_TOKEN="twilio-secret",
        TWILIO_PHONE_NUMBER="+15550001111",
        TWILIO_FLOW_SID="FW123",
        VET_PHONE_NUMBER="+15552223333",
    )


@pytest.fixture
def intake(db: Session) -> Intake:
    """Intake with the first user message and a pending assistant placeholder."""
    record = Intake(
        species="owl",
        description="wing droops, found on road",
        status=IntakeStatus.PENDING.value,
    )
    db.add(record)
    db.flush()
    db.add(
        ChatMessage(
            intake_id=record.id,
            role=MessageRole.USER.value,
            content=record.description,
        )
    )
    db.flush()
    db.add(
        ChatMessage(
            intake_id=record.id,
            role=MessageRole.ASSISTANT.value,
            content="Analyzing",
            pending=True,
        )
    )
    db.commit()
    db.refresh(record)
    return record


def pending_message(intake: Intake) -> ChatMessage:
    return next(m for m in intake.chat_messages if m.pending)


def triage_payload(**overrides) -> dict:
    payload = {
        "species": "owl",
        "condition": "conscious",
        "injury": "possible wing fracture",
        "handling": "Cover the bird with a towel. Place it in a ventilated box. Keep it somewhere quiet.",
        "danger": "low",
        "error": "",
        "user_message": "Thanks for helping this owl. Here's what to do: Contact a rescue soon.",
    }
    payload.update(overrides)
    return payload


def gemini_envelope(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def gemini_json_envelope(**overrides) -> dict:
    return gemini_envelope(json.dumps(triage_payload(**overrides)))
