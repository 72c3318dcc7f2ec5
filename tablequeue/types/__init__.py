"""
Type definitions for the job queue.
"""

from tablequeue.types.job import (
    Delay,
    Fail,
    JobOutcome,
    Retry,
    Schedule,
    Success,
)

__all__ = [
    "Delay",
    "Schedule",
    "Success",
    "Retry",
    "Fail",
    "JobOutcome",
]
