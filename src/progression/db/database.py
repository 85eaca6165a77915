"""SQLite database connection and schema management.

Provides connection management and schema initialization for the progression engine.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import structlog

logger = structlog.get_logger(__name__)

# Default database location
DEFAULT_DB_PATH = Path("db/progression.db")

# Current database path (module-level, set by init_db)
_db_path: Path | None = None


def init_db(db_path: Path | None = None) -> None:
    """Initialize database with schema.

    Creates the database file and all required tables if they don't exist.

    Args:
        db_path: Path to database file. Defaults to db/progression.db
    """
    global _db_path
    _db_path = db_path or DEFAULT_DB_PATH

    # Ensure directory exists
    _db_path.parent.mkdir(parents=True, exist_ok=True)

    with get_db() as conn:
        _create_schema(conn)

    logger.info("database.initialized", path=str(_db_path))


def get_db_path() -> Path:
    """Return the database path currently in use."""
    return _db_path or DEFAULT_DB_PATH


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get database connection as context manager.

    Everything executed inside the block runs in one transaction: it is
    committed when the block exits normally and rolled back on exception.

    Yields:
        SQLite connection with row factory set to sqlite3.Row

    Example:
        with get_db() as conn:
            cursor = conn.execute("SELECT * FROM enrollments")
            rows = cursor.fetchall()
    """
    db_path = get_db_path()

    # Ensure directory exists
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=10.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _create_schema(conn: sqlite3.Connection) -> None:
    """Create database schema.

    Uses IF NOT EXISTS for idempotency.
    """
    conn.executescript(
        """
        -- Table: enrollments (student <-> course, aggregated progress)
        CREATE TABLE IF NOT EXISTS enrollments (
            student_id TEXT NOT NULL,
            course_id TEXT NOT NULL,
            progress INTEGER NOT NULL DEFAULT 0 CHECK(progress BETWEEN 0 AND 100),
            completed_topics TEXT NOT NULL DEFAULT '[]',
            status TEXT NOT NULL DEFAULT 'active' CHECK(status IN ('active', 'completed')),
            -- Bundle order the student was enrolled from (NULL: from the start)
            starting_order INTEGER,
            enrolled_at TEXT NOT NULL,
            last_accessed TEXT,
            PRIMARY KEY (student_id, course_id)
        );

        -- Table: content_progress (one row per student per content item)
        CREATE TABLE IF NOT EXISTS content_progress (
            student_id TEXT NOT NULL,
            course_id TEXT NOT NULL,
            topic_id TEXT NOT NULL,
            content_id TEXT NOT NULL,
            content_type TEXT NOT NULL,
            completion_status TEXT NOT NULL DEFAULT 'not_started'
                CHECK(completion_status IN ('not_started', 'in_progress', 'completed', 'failed')),
            progress_percentage REAL NOT NULL DEFAULT 0,
            attempts INTEGER NOT NULL DEFAULT 0,
            best_score INTEGER NOT NULL DEFAULT 0,
            watch_count INTEGER NOT NULL DEFAULT 0,
            time_spent INTEGER NOT NULL DEFAULT 0,
            last_position REAL NOT NULL DEFAULT 0,
            last_accessed TEXT,
            completed_at TEXT,
            expected_end TEXT,
            PRIMARY KEY (student_id, content_id),
            FOREIGN KEY (student_id, course_id)
                REFERENCES enrollments(student_id, course_id) ON DELETE CASCADE
        );

        -- Table: attempts (timed quiz/homework attempts)
        CREATE TABLE IF NOT EXISTS attempts (
            student_id TEXT NOT NULL,
            content_id TEXT NOT NULL,
            attempt_number INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'in_progress'
                CHECK(status IN ('in_progress', 'completed', 'failed', 'timed_out', 'abandoned')),
            started_at TEXT NOT NULL,
            expected_end TEXT,
            completed_at TEXT,
            time_spent INTEGER NOT NULL DEFAULT 0,
            score INTEGER,
            correct_answers INTEGER,
            total_questions INTEGER,
            points INTEGER,
            passed INTEGER,
            passing_score INTEGER NOT NULL,
            answers TEXT NOT NULL DEFAULT '[]',
            shuffled_question_order TEXT,
            shuffled_option_orders TEXT,
            PRIMARY KEY (student_id, content_id, attempt_number),
            FOREIGN KEY (student_id, content_id)
                REFERENCES content_progress(student_id, content_id) ON DELETE CASCADE
        );

        -- At most one in-progress attempt per (student, content)
        CREATE UNIQUE INDEX IF NOT EXISTS idx_attempts_one_in_progress
            ON attempts(student_id, content_id) WHERE status = 'in_progress';

        -- Indexes
        CREATE INDEX IF NOT EXISTS idx_content_progress_course
            ON content_progress(student_id, course_id);
        """
    )


def is_initialized() -> bool:
    """True once init_db() has selected a database path."""
    return _db_path is not None
