"""Notifications emitted by the sync engine.

The engine talks to exactly one EventSink. Calls are serialized by the
engine, so a sink does not need its own locking even though events
originate on worker threads.
"""

import logging
from dataclasses import dataclass, field
from typing import Protocol

from mailvault.storage.local import BackupFile

logger = logging.getLogger(__name__)


@dataclass
class BackupSummary:
    """Result of a backup run.

    Tracks counts of messages processed and any errors encountered.
    """

    discovered: int = 0
    backed_up: int = 0
    skipped: int = 0
    failed: int = 0
    deleted: int = 0
    sync_deletes: bool = False
    listing_complete: bool = True
    cancelled: bool = False
    error_details: list[str] = field(default_factory=list)

    def add_error(self, message_id: str, error: str) -> None:
        """Record an error for a specific message.

        Args:
            message_id: ID of the message that failed.
            error: Error description.
        """
        self.failed += 1
        self.error_details.append(f"{message_id}: {error}")


class EventSink(Protocol):
    """Capabilities an engine consumer provides."""

    def on_before_backup(self, message_id: str, will_skip: bool, backup_file: BackupFile) -> None:
        ...

    def on_after_backup(self, message_id: str, progress: int, total: int) -> None:
        ...

    def on_log(self, message: str) -> None:
        ...

    def on_message_error(
        self, message_id: str, code: str, message: str, will_retry: bool
    ) -> None:
        ...

    def on_message_delete(self, message_id: str, backup_file: BackupFile) -> None:
        ...

    def on_end_backup(self, summary: BackupSummary) -> None:
        ...


class BackupEvents:
    """EventSink with no-op handlers. Subclass and override what you need.

    on_log goes to the module logger so engine lifecycle messages are not
    lost when a consumer ignores them.
    """

    def on_before_backup(self, message_id: str, will_skip: bool, backup_file: BackupFile) -> None:
        pass

    def on_after_backup(self, message_id: str, progress: int, total: int) -> None:
        pass

    def on_log(self, message: str) -> None:
        logger.info(message)

    def on_message_error(
        self, message_id: str, code: str, message: str, will_retry: bool
    ) -> None:
        pass

    def on_message_delete(self, message_id: str, backup_file: BackupFile) -> None:
        pass

    def on_end_backup(self, summary: BackupSummary) -> None:
        pass
