"""
Queue module.
Contains the table-backed queue engine and its capability interface.
"""

from tablequeue.queue.interface import QueueInterface
from tablequeue.queue.table import TableQueue

__all__ = ["QueueInterface", "TableQueue"]
