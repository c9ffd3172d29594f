"""Bookkeeping of the currently running checker job per document and checker."""
from __future__ import annotations

import threading

from typing import Generic, NamedTuple, Optional, TypeVar


J = TypeVar('J')


class JobKey(NamedTuple):
    document_id: int
    checker_name: str


class JobRegistry(Generic[J]):
    """Map `JobKey`s to the *current* job.

    A job is current iff it is the value stored for its key, every other
    job for that key is obsolete.  All access goes through one lock so
    that completion handlers running on other threads always see a
    consistent state.
    """

    def __init__(self) -> None:
        self._jobs: dict[JobKey, J] = {}
        self._lock = threading.Lock()

    def set(self, key: JobKey, job: Optional[J]) -> Optional[J]:
        """Install `job` as the current job for key and return the previous one.

        Passing `None` clears the key.
        """
        with self._lock:
            previous = self._jobs.pop(key, None)
            if job is not None:
                self._jobs[key] = job
            return previous

    def get(self, key: JobKey) -> Optional[J]:
        with self._lock:
            return self._jobs.get(key)

    def is_current(self, key: JobKey, job: J) -> bool:
        with self._lock:
            return self._jobs.get(key) is job

    def running(self) -> list[J]:
        with self._lock:
            return list(self._jobs.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __repr__(self) -> str:
        return "JobRegistry({})".format(
            ', '.join(key.checker_name for key in self._jobs)
        )
