"""Database module for SQLite persistence.

Provides:
- Database connection management
- Schema initialization
- Repository functions for enrollments, content_progress and attempts
"""

from progression.db.database import get_db, init_db

__all__ = ["get_db", "init_db"]
