"""
Tests for quota store database setup.
"""
import pytest
from sqlalchemy import create_engine, inspect
from sqlalchemy.pool import StaticPool
from trace_analyst.db import SessionLocal, create_db_engine, get_db, init_db, normalize_database_url


@pytest.mark.parametrize("url,expected", [
    ("postgres://u:p@host:5432/app", "postgresql+psycopg://u:p@host:5432/app"),
    ("postgresql://u:p@host/app", "postgresql+psycopg://u:p@host/app"),
    ("postgresql+psycopg://u:p@host/app", "postgresql+psycopg://u:p@host/app"),
])
def test_normalize_database_url(url, expected):
    assert normalize_database_url(url) == expected


@pytest.mark.parametrize("url", [None, "", "sqlite:///app.db", "mysql://u:p@host/app"])
def test_normalize_database_url_rejects(url):
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        normalize_database_url(url)


def test_init_db_binds_session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)

    init_db(engine, create_all=True)

    assert "subscriptions" in inspect(engine).get_table_names()
    sessions = get_db()
    db = next(sessions)
    try:
        assert db.get_bind() is engine
    finally:
        sessions.close()
    SessionLocal.configure(bind=None)
    engine.dispose()


def test_create_db_engine_rejects_non_postgres_url():
    with pytest.raises(RuntimeError, match="PostgreSQL"):
        create_db_engine("sqlite:///local.db")
