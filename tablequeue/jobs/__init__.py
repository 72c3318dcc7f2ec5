"""
Jobs module.
Contains the Job base class and the job class registry.
"""

from tablequeue.jobs.base import Job
from tablequeue.jobs.registry import JobRegistry, register_job, registry

__all__ = ["Job", "JobRegistry", "register_job", "registry"]
