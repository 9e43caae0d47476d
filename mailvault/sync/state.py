"""Per-run synchronization state.

Tracks which remote ids were seen, skipped, backed up or failed during one
run. Nothing is persisted: the local directory itself is the record of what
has been backed up, so a new run starts from an empty SyncState.

All methods are safe to call from worker threads.
"""

import threading


class SyncState:
    """Shared counters and id sets for a single run.

    Example:
        state = SyncState()
        if state.discover(ref.id):
            ...
            progress = state.mark_completed(ref.id)
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._seen: set[str] = set()
        self._completed: set[str] = set()
        self._skipped: set[str] = set()
        self._failed: dict[str, int] = {}
        self._reasons: dict[str, str] = {}
        self._retries: dict[str, int] = {}
        self._deletes = 0

    def discover(self, message_id: str) -> bool:
        """Record a listed id.

        Returns:
            False if the id was already seen during this run.
        """
        with self._lock:
            if message_id in self._seen:
                return False
            self._seen.add(message_id)
            return True

    def mark_skipped(self, message_id: str) -> None:
        with self._lock:
            self._skipped.add(message_id)

    def mark_completed(self, message_id: str) -> int | None:
        """Record a successful backup.

        Returns:
            The number of completed messages including this one, or None
            if the id had already been completed.
        """
        with self._lock:
            if message_id in self._completed:
                return None
            self._completed.add(message_id)
            self._failed.pop(message_id, None)
            self._reasons.pop(message_id, None)
            return len(self._completed)

    def record_retry(self, message_id: str) -> int:
        """Count a retry for a message and return its retry count so far."""
        with self._lock:
            count = self._retries.get(message_id, 0) + 1
            self._retries[message_id] = count
            return count

    def mark_failed(self, message_id: str, reason: str = "") -> None:
        """Record a permanent failure along with the retries it took."""
        with self._lock:
            if message_id not in self._completed:
                self._failed[message_id] = self._retries.get(message_id, 0)
                self._reasons[message_id] = reason

    def record_delete(self) -> int:
        with self._lock:
            self._deletes += 1
            return self._deletes

    @property
    def discovered(self) -> int:
        """Number of distinct ids listed so far."""
        with self._lock:
            return len(self._seen)

    @property
    def seen_ids(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._seen)

    @property
    def completed_ids(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._completed)

    @property
    def skipped_ids(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._skipped)

    @property
    def failed(self) -> dict[str, int]:
        """Failed ids mapped to the number of retries spent on each."""
        with self._lock:
            return dict(self._failed)

    @property
    def failure_reasons(self) -> dict[str, str]:
        """Failed ids mapped to the last error message."""
        with self._lock:
            return {message_id: self._reasons[message_id] for message_id in self._failed}

    @property
    def deletes_performed(self) -> int:
        with self._lock:
            return self._deletes
