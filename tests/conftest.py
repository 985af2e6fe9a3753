"""
tests/conftest.py -- Shared fixtures for sqlite-auth tests.

This module provides:
  - QUERIES: the three templates used against the test users table
  - db_path: a fresh SQLite file per test with an empty users table
  - make_engine: factory that builds an AuthEngine over db_path with overrides
  - seed_user(): writes a user row directly, bypassing the engine
  - connection_counter(): counts checkouts/checkins on an engine's pool

Design: a real file per test (tmp_path), not :memory:. The engine opens a new
connection for every operation, and a plain :memory: database would be empty
on each of them.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine

from auth.engine import AuthEngine

QUERIES: dict[str, str] = {
    "auth_user": "SELECT username, usergroups FROM users WHERE username = ? AND password = ?",
    "add_user": "INSERT INTO users (username, password) VALUES (?, ?)",
    "update_user": "UPDATE users SET password = ? WHERE username = ? AND password = ?",
}

SECRET = "k"

_DDL = """
CREATE TABLE users (
    username    TEXT PRIMARY KEY,
    password    TEXT NOT NULL,
    usergroups  TEXT
)
"""

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def seed_user(db_path: Path, username: str, stored_password: str, usergroups: str | None = None) -> None:
    """Insert a row directly. stored_password must already be hashed (or plaintext)."""
    engine = create_engine(f"sqlite:///{db_path}")
    with engine.connect() as conn:
        conn.execute(
            text("INSERT INTO users (username, password, usergroups) VALUES (:u, :p, :g)"),
            {"u": username, "p": stored_password, "g": usergroups},
        )
        conn.commit()
    engine.dispose()


def read_user(db_path: Path, username: str):
    """Return the (password, usergroups) row for username, or None."""
    engine = create_engine(f"sqlite:///{db_path}")
    with engine.connect() as conn:
        row = conn.execute(
            text("SELECT password, usergroups FROM users WHERE username = :u"), {"u": username}
        ).fetchone()
    engine.dispose()
    return row


def set_groups(db_path: Path, username: str, usergroups: str | None) -> None:
    engine = create_engine(f"sqlite:///{db_path}")
    with engine.connect() as conn:
        conn.execute(text("UPDATE users SET usergroups = :g WHERE username = :u"), {"g": usergroups, "u": username})
        conn.commit()
    engine.dispose()


def connection_counter(engine: Engine) -> dict[str, int]:
    """Attach pool listeners and return a live dict of checkout/checkin counts."""
    counts = {"checkout": 0, "checkin": 0}

    def _checkout(dbapi_conn, record, proxy) -> None:
        counts["checkout"] += 1

    def _checkin(dbapi_conn, record) -> None:
        counts["checkin"] += 1

    event.listen(engine, "checkout", _checkout)
    event.listen(engine, "checkin", _checkin)
    return counts


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / "users.db"
    engine = create_engine(f"sqlite:///{path}")
    with engine.connect() as conn:
        conn.execute(text(_DDL))
        conn.commit()
    engine.dispose()
    return path


@pytest.fixture
def make_engine(db_path: Path) -> Generator[Callable[..., AuthEngine], None, None]:
    """Yield a factory: make_engine(secret="x", queries={...}, **other_options)."""
    created: list[AuthEngine] = []

    def _make(**overrides) -> AuthEngine:
        config = {"path": str(db_path), "secret": SECRET, "queries": dict(QUERIES)}
        config.update(overrides)
        engine = AuthEngine(config)
        created.append(engine)
        return engine

    yield _make

    for engine in created:
        engine.close()
