"""
Reaper module.
Contains the periodic recovery of abandoned jobs.
"""

from tablequeue.reaper.main import Reaper, run

__all__ = ["Reaper", "run"]
