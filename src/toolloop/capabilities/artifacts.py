"""Append-only artifact collector shared by the calls of one loop run."""

import threading
from typing import Any


class ArtifactCollector:
    """
    Thread-safe, append-only list of artifacts.

    Parallel batches may add from worker threads, so every access holds the
    lock. Nothing is ever removed during a run.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._artifacts: list[Any] = []

    def add(self, artifact: Any) -> None:
        with self._lock:
            self._artifacts.append(artifact)

    def snapshot(self) -> list[Any]:
        """Copy of everything collected so far, in collection order."""
        with self._lock:
            return list(self._artifacts)

    def of_type(self, kind: type) -> list[Any]:
        """Collected artifacts that are instances of the given type."""
        with self._lock:
            return [a for a in self._artifacts if isinstance(a, kind)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._artifacts)
