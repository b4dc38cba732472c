"""
Database module.
Contains database connection, models, and repository implementations.
"""

from invite_jobs.db.connection import (
    AsyncSessionLocal,
    SessionFactory,
    close_db,
    create_session_factory,
    get_async_session,
    get_engine,
    get_session_context,
    init_db,
    session_scope,
)
from invite_jobs.db.models import Base, Job

__all__ = [
    "get_async_session",
    "get_session_context",
    "get_engine",
    "create_session_factory",
    "session_scope",
    "SessionFactory",
    "init_db",
    "close_db",
    "AsyncSessionLocal",
    "Job",
    "Base",
]
