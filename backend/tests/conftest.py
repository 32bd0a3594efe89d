"""
Shared pytest fixtures for backend tests.
Uses a temp-file SQLite database for isolation.
"""
import pytest
import sqlite3
import sys
import os

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda: None)

    # Create tables directly (skip alembic for tests)
    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
    """)
    conn.commit()
    conn.close()

    yield db_path


@pytest.fixture
def app_client(test_db, monkeypatch):
    """
    Create a test client for the FastAPI app.
    Mocks init_db to skip alembic migrations.
    """
    from fastapi.testclient import TestClient
    import main

    # Skip alembic in tests - tables already created by test_db fixture
    monkeypatch.setattr(main, "init_db", lambda: None)

    with TestClient(main.app) as client:
        yield client


@pytest.fixture
def fake_generate():
    """Stand-in for providers.generate that records prompts and returns a canned reply."""
    class FakeGenerate:
        def __init__(self):
            self.reply = '{"summary": "Solid day", "detailed_review": "You kept going.", "mood": "excellent", "score": 88}'
            self.error = None
            self.prompts = []

        async def __call__(self, prompt, config):
            self.prompts.append(prompt)
            if self.error is not None:
                raise self.error
            return self.reply

    return FakeGenerate()
