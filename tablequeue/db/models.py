"""
SQLAlchemy table definitions.
Defines the queue jobs table, one per configured table name.
"""

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    SmallInteger,
    String,
    Table,
    Text,
)

from tablequeue.constants import DEFAULT_TABLE_NAME, JobStatus

metadata = MetaData()

_tables: dict[str, Table] = {}


def get_jobs_table(name: str = DEFAULT_TABLE_NAME) -> Table:
    """
    Get (or define) the jobs table with the given name.

    The table is the authoritative source of truth for job state. Several
    logical queues may share one table; every query filters on ``queue``.

    Key constraints:
    - ``id`` is the primary key and the only target of conditional updates
    - ``(queue, status, scheduled)`` is indexed for claim polling
    - ``data`` holds the JSON payload ``{"class": ..., "content": ...}``

    Args:
        name: The table name.

    Returns:
        The SQLAlchemy Core table bound to the module metadata.
    """
    table = _tables.get(name)
    if table is None:
        table = Table(
            name,
            metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("queue", String(64), nullable=False),
            Column("status", SmallInteger, nullable=False, default=int(JobStatus.PENDING)),
            Column("created", DateTime, nullable=False),
            Column("scheduled", DateTime, nullable=False),
            Column("executed", DateTime, nullable=True),
            Column("finished", DateTime, nullable=True),
            Column("data", Text, nullable=False),
            Column("message", Text, nullable=True),
            Column("trace", Text, nullable=True),
            # Index for efficient queue polling
            Index(f"ix_{name}_poll", "queue", "status", "scheduled"),
        )
        _tables[name] = table
    return table
