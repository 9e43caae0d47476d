"""Shared fixtures and fakes for mailvault tests."""

import threading
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from mailvault.auth.tokens import TokenManager
from mailvault.config.backup import BackupConfig
from mailvault.remote.fetcher import MessageFetcher
from mailvault.remote.lister import RemoteMessageLister
from mailvault.remote.models import ListQuery, MessagePage, MessageRef
from mailvault.remote.retry import RetryPolicy
from mailvault.storage.local import LocalStore
from mailvault.sync.engine import SyncEngine
from mailvault.sync.events import BackupEvents


class FakeMailApi:
    """In-memory MailApi.

    Pages are lists of ids; the cursor is the index of the next page.
    Failures are queued per id (fetch) or per page index (listing) and
    raised in order before the call succeeds.
    """

    def __init__(self, pages: list[list[str]] | None = None, fetch_delay: float = 0.0):
        self.pages = pages if pages is not None else [[]]
        self.fetch_delay = fetch_delay
        self.fetch_failures: dict[str, list[Exception]] = {}
        self.list_failures: dict[int, list[Exception]] = {}
        self.list_calls: list[tuple[str, ListQuery, str | None]] = []
        self.fetch_calls: list[tuple[str, str]] = []
        self.active_fetches = 0
        self.max_active_fetches = 0
        self._lock = threading.Lock()

    def list_page(self, token: str, query: ListQuery, cursor: str | None) -> MessagePage:
        self.list_calls.append((token, query, cursor))

        index = int(cursor) if cursor else 0
        failures = self.list_failures.get(index)
        if failures:
            raise failures.pop(0)

        refs = [MessageRef(id=message_id) for message_id in self.pages[index]]
        next_cursor = str(index + 1) if index + 1 < len(self.pages) else None
        return MessagePage(refs=refs, next_cursor=next_cursor)

    def get_raw(self, token: str, ref: MessageRef) -> bytes:
        with self._lock:
            self.fetch_calls.append((token, ref.id))
            self.active_fetches += 1
            self.max_active_fetches = max(self.max_active_fetches, self.active_fetches)
            failures = self.fetch_failures.get(ref.id)
            error = failures.pop(0) if failures else None

        try:
            if self.fetch_delay:
                time.sleep(self.fetch_delay)
            if error is not None:
                raise error
            return message_bytes(ref.id)
        finally:
            with self._lock:
                self.active_fetches -= 1

    @property
    def fetched_ids(self) -> list[str]:
        return [message_id for _token, message_id in self.fetch_calls]


class RecordingEvents(BackupEvents):
    """EventSink that records every call as (name, args)."""

    def __init__(self):
        self.calls: list[tuple] = []

    def on_before_backup(self, message_id, will_skip, backup_file):
        self.calls.append(("before", message_id, will_skip, backup_file))

    def on_after_backup(self, message_id, progress, total):
        self.calls.append(("after", message_id, progress, total))

    def on_log(self, message):
        self.calls.append(("log", message))

    def on_message_error(self, message_id, code, message, will_retry):
        self.calls.append(("error", message_id, code, message, will_retry))

    def on_message_delete(self, message_id, backup_file):
        self.calls.append(("delete", message_id, backup_file))

    def on_end_backup(self, summary):
        self.calls.append(("end", summary))

    def of(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


def message_bytes(message_id: str) -> bytes:
    return f"Subject: {message_id}\r\n\r\nBody of {message_id}\r\n".encode()


def make_tokens(token: str = "token-1", refreshed: str = "token-2") -> MagicMock:
    """A TokenManager double that always has a valid token."""
    tokens = MagicMock(spec=TokenManager)
    tokens.get_valid_token.return_value = token
    tokens.refresh.return_value = refreshed
    return tokens


@pytest.fixture
def tokens() -> MagicMock:
    return make_tokens()


@pytest.fixture
def no_wait_retry() -> RetryPolicy:
    """Default retry bound without sleeping between attempts."""
    return RetryPolicy(max_retries=5, base_delay=0)


@pytest.fixture
def backup_dir(tmp_path: Path) -> Path:
    path = tmp_path / "backup"
    path.mkdir()
    return path


@pytest.fixture
def make_engine(backup_dir: Path):
    """Factory building a SyncEngine around a FakeMailApi."""

    def _make(
        api: FakeMailApi,
        *,
        tokens: MagicMock | None = None,
        events: BackupEvents | None = None,
        max_connections: int = 5,
        max_retries: int = 5,
        sync_deletes: bool = False,
        **config_fields,
    ) -> SyncEngine:
        config = BackupConfig(
            client_id="client-id",
            client_secret="client-secret",
            data_dir=backup_dir,
            auth_url="https://login.example.com/authorize",
            token_url="https://login.example.com/token",
            scope="offline_access mail.read",
            max_connections=max_connections,
            max_retries=max_retries,
            sync_deletes=sync_deletes,
            **config_fields,
        )
        tokens = tokens or make_tokens()
        retry = RetryPolicy(max_retries=max_retries, base_delay=0)

        return SyncEngine(
            config=config,
            tokens=tokens,
            lister=RemoteMessageLister(api, tokens, retry),
            fetcher=MessageFetcher(api, tokens, retry),
            store=LocalStore(backup_dir),
            events=events,
        )

    return _make
