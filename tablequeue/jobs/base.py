"""
Base class for queued jobs.
"""

import json
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

from tablequeue.types.job import JobOutcome

if TYPE_CHECKING:
    from tablequeue.queue.interface import QueueInterface


class Job(ABC):
    """
    A unit of work stored in the queue.

    A job is persisted as ``{"class": <identifier>, "content": <content>}``;
    ``content`` must be JSON serializable. Subclasses implement ``execute``
    and may mutate ``content`` before returning ``Retry`` (the released row
    stores the current content).

    Jobs must be idempotent - a job may run more than once if its worker
    crashes after finishing the work but before recording the outcome.
    """

    # Stored class identifier; defaults to the dotted import path
    identifier: ClassVar[str | None] = None

    def __init__(self, content: Any = None, id: int | None = None):
        self.content = content
        self.id = id

    @classmethod
    def get_identifier(cls) -> str:
        """Get the identifier stored in the payload's ``class`` key."""
        return cls.identifier or f"{cls.__module__}.{cls.__qualname__}"

    def serialize(self) -> str:
        """Serialize the job into the stored payload."""
        return json.dumps({"class": self.get_identifier(), "content": self.content})

    @abstractmethod
    async def execute(self, queue: "QueueInterface") -> JobOutcome | None:
        """
        Run the job's business logic.

        Args:
            queue: The queue the job was claimed from.

        Returns:
            The outcome. ``None`` counts as ``Success``.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id}, content={self.content!r})"
