"""
Database module.
Contains engine and session factories and the jobs table definition.
"""

from tablequeue.db.connection import (
    close_db,
    create_engine,
    create_session_factory,
    create_tables,
    get_engine,
    init_db,
)
from tablequeue.db.models import get_jobs_table, metadata

__all__ = [
    "create_engine",
    "create_session_factory",
    "create_tables",
    "get_engine",
    "init_db",
    "close_db",
    "get_jobs_table",
    "metadata",
]
