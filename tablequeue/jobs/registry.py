"""
Job class registry.

Maps the ``class`` identifier stored with every job back to the Job subclass
that can execute it.
"""

import importlib
import logging
from typing import Any, Callable, TypeVar

from tablequeue.jobs.base import Job

logger = logging.getLogger(__name__)

J = TypeVar("J", bound=type[Job])


class JobRegistry:
    """
    Registry of job classes keyed by identifier.

    Unregistered identifiers that look like a dotted import path are
    resolved by importing the module, so plain Job subclasses work without
    explicit registration.
    """

    def __init__(self, allow_import: bool = True):
        self._jobs: dict[str, type[Job]] = {}
        self._allow_import = allow_import

    def register(self, job_class: J | None = None, *, identifier: str | None = None) -> Any:
        """
        Register a job class. Usable as a plain call or as a decorator.

        Example:
            @registry.register
            class SendEmail(Job):
                ...

            @registry.register(identifier="send_sms")
            class SendSms(Job):
                ...
        """

        def decorator(cls: J) -> J:
            if identifier is not None:
                cls.identifier = identifier
            name = cls.get_identifier()
            self._jobs[name] = cls
            logger.debug(f"Registered job class: {name}")
            return cls

        if job_class is not None:
            return decorator(job_class)
        return decorator

    def get(self, identifier: str) -> type[Job]:
        """
        Get the job class for an identifier.

        Raises:
            KeyError: If no class is known under the identifier.
        """
        job_class = self._jobs.get(identifier)
        if job_class is not None:
            return job_class
        if self._allow_import and "." in identifier:
            job_class = self._import(identifier)
            self._jobs[identifier] = job_class
            return job_class
        raise KeyError(f"No job class registered as {identifier!r}")

    def list(self) -> list[str]:
        """List all registered identifiers."""
        return list(self._jobs.keys())

    def create(self, identifier: str, content: Any = None, id: int | None = None) -> Job:
        """
        Instantiate a job from its stored identifier and content.

        Args:
            identifier: The stored class identifier.
            content: The stored job content.
            id: The job id to set on the instance.

        Returns:
            The reconstructed job.
        """
        job_class = self.get(identifier)
        return job_class(content=content, id=id)

    @staticmethod
    def _import(identifier: str) -> type[Job]:
        module_name, _, attr = identifier.rpartition(".")
        try:
            module = importlib.import_module(module_name)
            job_class = getattr(module, attr)
        except (ImportError, AttributeError) as e:
            raise KeyError(f"Cannot import job class {identifier!r}: {e}") from e
        if not isinstance(job_class, type) or not issubclass(job_class, Job):
            raise KeyError(f"{identifier!r} is not a Job subclass")
        return job_class


# Default registry used by the worker entry point
registry = JobRegistry()


def register_job(job_class: Callable[..., Any] | None = None, *, identifier: str | None = None) -> Any:
    """Register a job class with the default registry."""
    return registry.register(job_class, identifier=identifier)
