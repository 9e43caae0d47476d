"""Local backup storage: one .eml file per message.

Directory layout:
- <root>/<encoded id>.eml: completed backups
- <root>/.tmp/: files being written (atomic write in progress)

File names are the percent-encoded message id, so the mapping is
deterministic, collision-free and reversible: enumerating the directory
yields the ids it holds without any index file.
"""

import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote, unquote

from mailvault.errors import StorageError

logger = logging.getLogger(__name__)

SUFFIX = ".eml"
TMP_DIR = ".tmp"


@dataclass(frozen=True)
class BackupFile:
    """A message's location on disk."""

    local_path: Path
    message_id: str


def encode_message_id(message_id: str) -> str:
    """Turn a message id into a safe file name stem.

    Everything outside [A-Za-z0-9_.-~] is percent-encoded, including "/"
    which Graph ids contain. A leading "." is encoded too so no backup
    file is hidden.
    """
    encoded = quote(message_id, safe="")
    if encoded.startswith("."):
        encoded = "%2E" + encoded[1:]
    return encoded


def decode_message_id(stem: str) -> str:
    """Inverse of encode_message_id."""
    return unquote(stem)


class LocalStore:
    """File-per-message backup directory.

    Writes are atomic: data goes to .tmp/ first and is renamed into place,
    so a file with the final name is always complete. Safe to use from
    several worker threads.

    Example:
        store = LocalStore(Path("~/Backup/Work"))
        if not store.exists(ref.id):
            store.write(ref.id, raw_bytes)
    """

    def __init__(self, root: Path):
        """Initialize local storage.

        Args:
            root: Backup directory. Created on first write if missing.
        """
        self._root = root.expanduser().resolve()

    @property
    def root(self) -> Path:
        """Get the backup directory."""
        return self._root

    def path_for(self, message_id: str) -> Path:
        """Path a message is (or would be) stored at."""
        if not message_id:
            raise ValueError("message_id must not be empty")
        return self._root / f"{encode_message_id(message_id)}{SUFFIX}"

    def backup_file(self, message_id: str) -> BackupFile:
        return BackupFile(local_path=self.path_for(message_id), message_id=message_id)

    def exists(self, message_id: str) -> bool:
        """Check whether a completed backup exists for the message."""
        return self.path_for(message_id).is_file()

    def write(self, message_id: str, data: bytes) -> BackupFile:
        """Write a message, replacing any previous copy.

        Raises:
            StorageError: If the file can't be written.
        """
        backup_file = self.backup_file(message_id)
        tmp_dir = self._root / TMP_DIR

        # Unique temp name: two workers may write the same id concurrently
        tmp_path = tmp_dir / f"{uuid.uuid4().hex}{SUFFIX}"

        try:
            tmp_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(data)
            # os.replace is atomic on POSIX when src and dest share a filesystem
            os.replace(tmp_path, backup_file.local_path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(f"Could not write {backup_file.local_path}: {e}") from e

        return backup_file

    def list_local_ids(self) -> set[str]:
        """Ids of all completed backups. Files in .tmp/ are ignored."""
        if not self._root.is_dir():
            return set()

        try:
            return {
                decode_message_id(path.name[: -len(SUFFIX)])
                for path in self._root.iterdir()
                if path.name.endswith(SUFFIX) and path.is_file()
            }
        except OSError as e:
            raise StorageError(f"Could not list {self._root}: {e}") from e

    def delete(self, message_id: str) -> BackupFile:
        """Delete a message's backup file. Missing files are not an error.

        Raises:
            StorageError: If the file exists but can't be removed.
        """
        backup_file = self.backup_file(message_id)

        try:
            backup_file.local_path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Could not delete {backup_file.local_path}: {e}") from e

        logger.debug("Deleted %s", backup_file.local_path)
        return backup_file

    def clean_tmp(self) -> int:
        """Remove leftovers of interrupted writes.

        Returns:
            Number of files removed.
        """
        tmp_dir = self._root / TMP_DIR
        if not tmp_dir.is_dir():
            return 0

        removed = 0
        for path in tmp_dir.iterdir():
            if path.is_file():
                path.unlink(missing_ok=True)
                removed += 1

        return removed
