"""Sync engine for mailbox backups.

Coordinates token management, remote listing, message download and local
storage for one run:

    IDLE -> AUTHORIZING -> LISTING -> BACKING_UP -> [RECONCILING_DELETES]
         -> COMPLETED

FAILED is reachable from any state on a fatal error (authorization,
aborted listing, unrecoverable local I/O); CANCELLED when the run is
interrupted.

Listing runs on the calling thread and feeds a bounded thread pool, so
downloads start with the first listed message. A semaphore caps queued plus
in-flight downloads; when workers fall behind, listing waits.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum

from mailvault.auth.providers import get_provider
from mailvault.auth.tokens import TokenManager
from mailvault.config.backup import BackupConfig
from mailvault.errors import FetchError, StorageError, TransientError
from mailvault.remote.fetcher import MessageFetcher
from mailvault.remote.lister import RemoteMessageLister
from mailvault.remote.models import MessageRef
from mailvault.storage.local import LocalStore

from .events import BackupEvents, BackupSummary, EventSink
from .state import SyncState

logger = logging.getLogger(__name__)

# Queued + in-flight downloads allowed per worker
QUEUE_DEPTH_PER_WORKER = 2

# How often a producer blocked on a full queue checks for cancellation
SLOT_POLL_INTERVAL = 0.1


class EngineState(str, Enum):
    """Lifecycle states of a SyncEngine."""

    IDLE = "idle"
    AUTHORIZING = "authorizing"
    LISTING = "listing"
    BACKING_UP = "backing_up"
    RECONCILING_DELETES = "reconciling_deletes"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SyncEngine:
    """Engine for backing up a remote mailbox to a local directory.

    An engine runs once. Build a new one for every run.

    Example:
        engine = create_engine(config, consent=prompt_for_code, events=sink)
        summary = engine.run()
        print(f"Backed up {summary.backed_up} messages")
    """

    def __init__(
        self,
        config: BackupConfig,
        tokens: TokenManager,
        lister: RemoteMessageLister,
        fetcher: MessageFetcher,
        store: LocalStore,
        events: EventSink | None = None,
    ):
        """Initialize sync engine.

        Args:
            config: Validated run settings.
            tokens: Token manager shared with lister and fetcher.
            lister: Remote message lister.
            fetcher: Remote message fetcher.
            store: Local backup storage.
            events: Receiver for progress notifications.
        """
        self._config = config
        self._tokens = tokens
        self._lister = lister
        self._fetcher = fetcher
        self._store = store
        self._events = events or BackupEvents()

        self._state = EngineState.IDLE
        self._sync_state = SyncState()
        self._emit_lock = threading.Lock()
        self._cancelled = threading.Event()
        self._slots = threading.BoundedSemaphore(config.max_connections * QUEUE_DEPTH_PER_WORKER)
        self._fatal_error: BaseException | None = None
        self._fatal_lock = threading.Lock()
        self._listing_complete = False

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def sync_state(self) -> SyncState:
        return self._sync_state

    def cancel(self) -> None:
        """Ask a running engine to stop.

        Listing stops, queued downloads are dropped and in-flight downloads
        finish. run() then returns a summary with cancelled=True.
        """
        self._cancelled.set()

    def run(self) -> BackupSummary:
        """Run the backup to completion.

        Returns:
            Summary of the run (also sent to on_end_backup).

        Raises:
            AuthError: If authorization fails or the token is lost mid-run.
            TransientError, FetchError: If listing was aborted.
            StorageError: If the backup directory can't be read.
            RuntimeError: If the engine has already run.
        """
        if self._state is not EngineState.IDLE:
            raise RuntimeError("A SyncEngine runs once; create a new engine.")

        self._transition(EngineState.AUTHORIZING)
        try:
            self._authorize()
        except BaseException:
            self._transition(EngineState.FAILED)
            raise

        self._transition(EngineState.LISTING)
        try:
            listing_error = self._backup()
            if (
                listing_error is None
                and not self._cancelled.is_set()
                and self._config.sync_deletes
            ):
                self._reconcile_deletes()
        except KeyboardInterrupt:
            self._cancelled.set()
            self._finish(EngineState.CANCELLED)
            raise
        except BaseException:
            self._finish(EngineState.FAILED)
            raise

        if listing_error is not None:
            self._finish(EngineState.FAILED)
            raise listing_error

        if self._cancelled.is_set():
            return self._finish(EngineState.CANCELLED)

        return self._finish(EngineState.COMPLETED)

    def _authorize(self) -> None:
        config = self._config
        self._tokens.authorize(
            config.client_id,
            config.client_secret,
            config.auth_url,
            config.token_url,
            config.scope,
            extra_params=get_provider(config.provider).auth_params,
        )
        self._emit("on_log", "Authorization successful.")

    def _backup(self) -> TransientError | FetchError | None:
        """List and download. Returns the error that aborted listing, if any."""
        removed = self._store.clean_tmp()
        if removed:
            logger.info("Removed %d incomplete files from an earlier run", removed)

        self._emit("on_log", "Retrieving message list (this may take some time).")

        config = self._config
        executor = ThreadPoolExecutor(
            max_workers=config.max_connections,
            thread_name_prefix="mailvault",
        )
        listing_error = None

        try:
            for ref in self._lister.list(
                filter=config.filter,
                start_date=config.start_date,
                end_date=config.end_date,
            ):
                if self._cancelled.is_set():
                    break
                self._dispatch(executor, ref)
            else:
                self._listing_complete = True
                self._emit(
                    "on_log",
                    f"Message list complete: {self._sync_state.discovered} messages.",
                )
        except (TransientError, FetchError) as e:
            listing_error = e
            self._emit("on_log", f"Listing aborted: {e}")
        except BaseException:
            self._cancelled.set()
            raise
        finally:
            executor.shutdown(wait=True, cancel_futures=self._cancelled.is_set())

        if self._fatal_error is not None:
            raise self._fatal_error

        return listing_error

    def _dispatch(self, executor: ThreadPoolExecutor, ref: MessageRef) -> None:
        """Skip or schedule one listed message."""
        if not self._sync_state.discover(ref.id):
            logger.debug("Ignoring duplicate id from listing: %s", ref.id)
            return

        backup_file = self._store.backup_file(ref.id)
        will_skip = self._store.exists(ref.id)
        self._emit("on_before_backup", ref.id, will_skip, backup_file)

        if will_skip:
            self._sync_state.mark_skipped(ref.id)
            return

        # Backpressure: wait for a free slot, but stay responsive to cancel()
        while not self._slots.acquire(timeout=SLOT_POLL_INTERVAL):
            if self._cancelled.is_set():
                return

        if self._state is EngineState.LISTING:
            self._transition(EngineState.BACKING_UP)

        future = executor.submit(self._backup_one, ref)
        future.add_done_callback(self._on_task_done)

    def _backup_one(self, ref: MessageRef) -> None:
        """Download and store one message. Runs on a worker thread."""
        if self._cancelled.is_set():
            return

        def _on_retry(attempt: int, wait: float, error: TransientError) -> None:
            self._sync_state.record_retry(ref.id)
            self._emit("on_message_error", ref.id, error.code, str(error), True)

        try:
            data = self._fetcher.fetch(ref, on_retry=_on_retry)
            backup_file = self._store.write(ref.id, data)
        except (TransientError, FetchError, StorageError) as e:
            logger.debug("Giving up on %s: %s", ref.id, e)
            self._sync_state.mark_failed(ref.id, f"{e.code}: {e}")
            self._emit("on_message_error", ref.id, e.code, str(e), False)
            return

        logger.debug("Backed up %s to %s", ref.id, backup_file.local_path)

        # Counting and emitting under one lock keeps reported progress increasing
        with self._emit_lock:
            progress = self._sync_state.mark_completed(ref.id)
            if progress is not None:
                self._events.on_after_backup(ref.id, progress, self._sync_state.discovered)

    def _on_task_done(self, future: Future) -> None:
        self._slots.release()

        if future.cancelled():
            return

        # AuthError, or a bug in a worker or sink: stop the run
        error = future.exception()
        if error is not None:
            with self._fatal_lock:
                if self._fatal_error is None:
                    self._fatal_error = error
            self._cancelled.set()

    def _reconcile_deletes(self) -> None:
        """Delete local backups whose message was not listed remotely."""
        self._transition(EngineState.RECONCILING_DELETES)
        self._emit("on_log", "Checking for messages deleted remotely.")

        remote_ids = self._sync_state.seen_ids
        local_only = self._store.list_local_ids() - remote_ids

        for message_id in sorted(local_only):
            if self._cancelled.is_set():
                break

            try:
                backup_file = self._store.delete(message_id)
            except StorageError as e:
                self._emit("on_message_error", message_id, e.code, str(e), False)
                continue

            self._sync_state.record_delete()
            self._emit("on_message_delete", message_id, backup_file)

    def _finish(self, final_state: EngineState) -> BackupSummary:
        summary = self._build_summary(cancelled=final_state is EngineState.CANCELLED)
        self._transition(final_state)
        self._emit("on_end_backup", summary)
        return summary

    def _build_summary(self, cancelled: bool) -> BackupSummary:
        state = self._sync_state
        summary = BackupSummary(
            discovered=state.discovered,
            backed_up=len(state.completed_ids),
            skipped=len(state.skipped_ids),
            deleted=state.deletes_performed,
            sync_deletes=self._config.sync_deletes,
            listing_complete=self._listing_complete,
            cancelled=cancelled,
        )

        for message_id, reason in sorted(state.failure_reasons.items()):
            summary.add_error(message_id, reason)

        return summary

    def _transition(self, new_state: EngineState) -> None:
        logger.debug("Engine state %s -> %s", self._state.value, new_state.value)
        self._state = new_state

    def _emit(self, name: str, *args) -> None:
        with self._emit_lock:
            getattr(self._events, name)(*args)
