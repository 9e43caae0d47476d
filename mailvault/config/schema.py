"""Configuration schema definitions.

Uses TypedDict for type safety without runtime overhead.
These types match the structure of config.toml.
"""

from typing import TypedDict


class DefaultsConfig(TypedDict, total=False):
    """Default settings applied to all accounts.

    Attributes:
        max_connections: Number of messages downloaded in parallel.
        max_retries: Retries for a transient failure before giving up.
    """

    max_connections: int
    max_retries: int


class AccountConfig(TypedDict, total=False):
    """Single mailbox backup configuration.

    Attributes:
        provider: Mail provider ("office365" or "gmail").
        client_id: OAuth client ID of the registered application.
        client_secret: OAuth client secret (prefer env var).
        data_dir: Directory backup files are written to (e.g., "~/Backup/Work").
        filter: Provider query restricting which messages are listed.
        start_date: Lower date bound, YYYY/MM/DD.
        end_date: Upper date bound (inclusive), YYYY/MM/DD.
        max_connections: Overrides defaults.max_connections.
        sync_deletes: Delete local files whose message is gone remotely.
    """

    provider: str
    client_id: str
    client_secret: str
    data_dir: str
    filter: str
    start_date: str
    end_date: str
    max_connections: int
    sync_deletes: bool


class MailVaultConfig(TypedDict, total=False):
    """Root configuration structure.

    Attributes:
        defaults: Default settings for all accounts.
        accounts: Dict mapping account names to their configurations.
    """

    defaults: DefaultsConfig
    accounts: dict[str, AccountConfig]
