"""Mailbox synchronization: engine, per-run state and events."""

from .engine import EngineState, SyncEngine
from .events import BackupEvents, BackupSummary, EventSink
from .factory import create_engine
from .state import SyncState

__all__ = [
    "SyncEngine",
    "EngineState",
    "SyncState",
    "BackupEvents",
    "BackupSummary",
    "EventSink",
    "create_engine",
]
