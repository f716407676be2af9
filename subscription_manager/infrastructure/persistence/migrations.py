"""Applies the ordered ``sql/*.sql`` scripts shipped with the package."""

from __future__ import annotations

import logging
import sqlite3
from datetime import timezone
from importlib import resources
from typing import List, Optional, Tuple

from ...domain.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

MIGRATIONS_PACKAGE = "subscription_manager.infrastructure.persistence"
MIGRATIONS_DIR = "sql"


def available_migrations() -> List[Tuple[str, str]]:
    """Return ``(version, sql)`` pairs sorted by file name."""
    folder = resources.files(MIGRATIONS_PACKAGE).joinpath(MIGRATIONS_DIR)
    scripts = sorted(
        (item for item in folder.iterdir() if item.name.endswith(".sql")),
        key=lambda item: item.name,
    )
    return [(item.name[: -len(".sql")], item.read_text(encoding="utf-8")) for item in scripts]


def applied_versions(conn: sqlite3.Connection) -> List[str]:
    _ensure_migrations_table(conn)
    cur = conn.execute("SELECT version FROM schema_migrations ORDER BY version")
    return [row[0] for row in cur.fetchall()]


def apply_migrations(conn: sqlite3.Connection, clock: Optional[Clock] = None) -> List[str]:
    """Apply every migration not yet recorded; returns the versions applied."""
    clock = clock or SystemClock()
    done = set(applied_versions(conn))
    applied: List[str] = []
    for version, sql in available_migrations():
        if version in done:
            continue
        logger.info("Applying migration %s", version)
        # executescript commits any open transaction before running.
        conn.executescript(sql)
        applied_at = clock.now()
        if applied_at.tzinfo is None:
            applied_at = applied_at.replace(tzinfo=timezone.utc)
        with conn:
            conn.execute(
                "INSERT INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                (version, applied_at.astimezone(timezone.utc).isoformat()),
            )
        applied.append(version)
    return applied


def _ensure_migrations_table(conn: sqlite3.Connection) -> None:
    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version TEXT PRIMARY KEY,
                applied_at TEXT NOT NULL
            )
            """
        )
