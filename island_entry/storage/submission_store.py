from __future__ import annotations

from dataclasses import dataclass
import time
import threading

from ..backend.client import Registration


@dataclass
class Submission:
    registration: Registration | None = None
    created_at: float = 0.0

    def touch(self) -> None:
        self.created_at = time.time()


class SubmissionStore:
    """Remembers which Idempotency-Key produced which registration.

    ``reserve`` claims a key before the backend call so a concurrent
    resubmission of the same key is refused; ``save`` stores the outcome and
    ``release`` frees the key again when the call failed.
    """

    def __init__(self, ttl_seconds: int) -> None:
        self._ttl_seconds = max(60, ttl_seconds)
        self._store: dict[str, tuple[Submission, float]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str, now: float) -> Submission | None:
        item = self._store.get(key)
        if not item:
            return None
        submission, expires_at = item
        if now >= expires_at:
            self._store.pop(key, None)
            return None
        return submission

    def get(self, key: str) -> Registration | None:
        with self._lock:
            submission = self._live(key, time.time())
            return submission.registration if submission else None

    def reserve(self, key: str) -> bool:
        now = time.time()
        with self._lock:
            # opportunistic cleanup
            expired = [k for k, (_, exp) in self._store.items() if exp <= now]
            for k in expired:
                self._store.pop(k, None)

            if key in self._store:
                return False
            submission = Submission()
            submission.touch()
            self._store[key] = (submission, submission.created_at + self._ttl_seconds)
            return True

    def save(self, key: str, registration: Registration) -> None:
        submission = Submission(registration=registration)
        submission.touch()
        with self._lock:
            self._store[key] = (submission, submission.created_at + self._ttl_seconds)

    def release(self, key: str) -> None:
        with self._lock:
            item = self._store.get(key)
            if item and item[0].registration is None:
                self._store.pop(key, None)
