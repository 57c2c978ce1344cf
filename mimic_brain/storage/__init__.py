"""
Storage module for Mimic Brain.

Provides the shared, process-external state used to coordinate bot
processes joined to the same voice session.
"""

from .response_lock import LockRecord, ResponseLock

__all__ = [
    "LockRecord",
    "ResponseLock",
]
