"""Bounded executor shared by scan cycles."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from threading import Lock


class ThreadPoolManager:
    """Lazily create the scan pool; recreate it if a previous cycle shut it down."""

    def __init__(self, default_workers: int = 1) -> None:
        self.default_workers = max(1, default_workers)
        self._executor: ThreadPoolExecutor | None = None
        self._lock = Lock()

    def get(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.default_workers, thread_name_prefix="scan"
                )
            return self._executor

    def shutdown(self, wait: bool = False) -> None:
        with self._lock:
            if self._executor is not None:
                self._executor.shutdown(wait=wait)
                self._executor = None


__all__ = ["ThreadPoolManager"]
