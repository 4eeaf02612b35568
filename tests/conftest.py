"""
Shared fixtures: in-memory quota store, settings, trace archives and a fake OpenAI client.
"""
import io
import json
import zipfile
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from trace_analyst.config import Settings
from trace_analyst.db import Base
from trace_analyst.models.subscription import Subscription


@pytest.fixture
def settings():
    """Metered (non self-hosted) settings with a dummy API key."""
    return Settings(
        _env_file=None,
        openai_api_key="test-key",
        openai_model="gpt-4-turbo",
        openai_insights_model="gpt-4o-mini",
        openai_timeout_seconds=5.0,
        self_hosted=False,
    )


@pytest.fixture
def db_session():
    """SQLite session shared across threads (the analyzer runs quota work in a worker thread)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def make_subscription(db_session):
    """Insert a subscription row for a team and return it."""
    def _make(team_id="team-1", status="INACTIVE", ai_analysis_count=0, ai_analysis_reset_at=None):
        subscription = Subscription(
            team_id=team_id,
            status=status,
            ai_analysis_count=ai_analysis_count,
            ai_analysis_reset_at=ai_analysis_reset_at,
        )
        db_session.add(subscription)
        db_session.commit()
        db_session.refresh(subscription)
        return subscription
    return _make


@pytest.fixture
def make_trace_zip():
    """Build a trace archive in memory from JSON-lines events (dicts) or raw lines (str)."""
    def _make(events=None, trace_name="test.trace", extra_files=None, raw_content=None):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for name, content in (extra_files or {}).items():
                archive.writestr(name, content)
            if trace_name is not None:
                if raw_content is None:
                    lines = [
                        event if isinstance(event, str) else json.dumps(event)
                        for event in (events or [])
                    ]
                    raw_content = "\n".join(lines)
                archive.writestr(trace_name, raw_content)
        return buffer.getvalue()
    return _make


def make_openai_response(content):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
    )


@pytest.fixture
def make_openai_client():
    """Fake AsyncOpenAI client whose chat.completions.create returns the given content."""
    def _make(content=None, side_effect=None):
        client = MagicMock()
        if isinstance(content, dict):
            content = json.dumps(content)
        client.chat.completions.create = AsyncMock(
            return_value=make_openai_response(content),
            side_effect=side_effect,
        )
        return client
    return _make
