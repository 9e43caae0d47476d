"""Wires a BackupConfig into a ready-to-run SyncEngine."""

from mailvault.auth.tokens import ConsentHandler, TokenManager
from mailvault.config.backup import BackupConfig
from mailvault.errors import ConfigError
from mailvault.remote.fetcher import MessageFetcher
from mailvault.remote.gmail import GmailMailApi
from mailvault.remote.graph import GraphMailApi
from mailvault.remote.lister import RemoteMessageLister
from mailvault.remote.retry import RetryPolicy
from mailvault.storage.local import LocalStore

from .engine import SyncEngine
from .events import EventSink

# Provider name -> transport class
TRANSPORTS = {
    "office365": GraphMailApi,
    "gmail": GmailMailApi,
}


def create_engine(
    config: BackupConfig,
    consent: ConsentHandler,
    events: EventSink | None = None,
    retry: RetryPolicy | None = None,
) -> SyncEngine:
    """Build an engine for one run.

    Args:
        config: Run settings. Validated here.
        consent: Interactive step returning an authorization code.
        events: Receiver for progress notifications.
        retry: Override the retry policy (defaults to config.max_retries).

    Raises:
        ConfigError: If the config is invalid or the provider has no transport.
    """
    config.validate()

    transport = TRANSPORTS.get(config.provider)
    if transport is None:
        raise ConfigError(f"No transport for provider '{config.provider}'.")

    api = transport()
    tokens = TokenManager(consent=consent)
    retry = retry or RetryPolicy(max_retries=config.max_retries)

    return SyncEngine(
        config=config,
        tokens=tokens,
        lister=RemoteMessageLister(api, tokens, retry),
        fetcher=MessageFetcher(api, tokens, retry),
        store=LocalStore(config.data_dir),
        events=events,
    )
