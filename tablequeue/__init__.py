"""
Table-backed Job Queue

A durable job queue whose state lives in a single relational table. Workers
push, claim, complete and recover jobs through transactions and row locks,
without a dedicated broker process.
"""

__version__ = "1.0.0"
