"""
Storage module for toolloop.

Runs, their turn logs and active-set changes are recorded in SQLite so they
can be listed and reported on after the fact.
"""

from toolloop.store.db import LoopStore

__all__ = [
    "LoopStore",
]
