"""
Job-related type definitions.

Job execution reports how it went by returning one of the outcome values
below; the worker maps each outcome onto exactly one queue transition.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Union

# Seconds, or an explicit duration
Delay = Union[int, float, timedelta]
# A datetime, or a UNIX timestamp
Schedule = Union[datetime, int, float]


@dataclass(frozen=True)
class Success:
    """The job finished; the worker deletes it."""


@dataclass(frozen=True)
class Retry:
    """
    The job hit a transient failure; the worker releases it.

    Leave both fields unset to make the job eligible again immediately.
    """

    delay: Delay | None = None
    scheduled: Schedule | None = None


@dataclass(frozen=True)
class Fail:
    """The job failed permanently; the worker buries it."""

    message: str | None = None
    trace: str | None = None


JobOutcome = Union[Success, Retry, Fail]
