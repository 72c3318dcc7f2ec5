"""
Worker module.
Contains the worker that drives a queue.
"""

from tablequeue.worker.main import Worker, run

__all__ = ["Worker", "run"]
