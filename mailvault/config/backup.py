"""Validated settings for a single backup run.

Merges, in increasing precedence: provider preset, [defaults] table,
[accounts.<name>] table, environment, CLI options. The result is a
BackupConfig that the engine factory consumes.
"""

import os
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path

from mailvault.auth.providers import DEFAULT_PROVIDER, get_provider
from mailvault.errors import ConfigError

from .schema import AccountConfig, DefaultsConfig

# Environment variable for client secret.
# Using env var is preferred over storing in config.toml for security.
CLIENT_SECRET_ENV = "MAILVAULT_CLIENT_SECRET"

DEFAULT_MAX_CONNECTIONS = 5
DEFAULT_MAX_RETRIES = 5

# YYYY/MM/DD is the documented format; ISO dates are accepted too
DATE_FORMATS = ("%Y/%m/%d", "%Y-%m-%d")

TRUE_WORDS = frozenset({"true", "yes", "1", "on"})
FALSE_WORDS = frozenset({"false", "no", "0", "off"})


def parse_date(value: str) -> date:
    """Parse a YYYY/MM/DD or YYYY-MM-DD date string.

    Raises:
        ConfigError: If the value matches neither format.
    """
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue

    raise ConfigError(f"Invalid date format: '{value}'. Use YYYY/MM/DD.")


def parse_bool(name: str, value: str | bool) -> bool:
    """Read a true/false setting given as a TOML boolean or a word like "yes".

    Raises:
        ConfigError: If the value is neither.
    """
    if isinstance(value, bool):
        return value

    lowered = str(value).strip().lower()
    if lowered in TRUE_WORDS:
        return True
    if lowered in FALSE_WORDS:
        return False

    raise ConfigError(f"Expected true/false for {name}, got '{value}'")


def parse_int(name: str, value: str | int) -> int:
    """Read a whole-number setting.

    Raises:
        ConfigError: If the value is not a whole number.
    """
    # bool is an int subclass; "max_retries = true" is a mistake
    if isinstance(value, int) and not isinstance(value, bool):
        return value

    try:
        return int(str(value).strip())
    except ValueError:
        raise ConfigError(f"Expected a whole number for {name}, got '{value}'") from None


@dataclass
class BackupConfig:
    """Everything the engine needs for one run.

    Attributes:
        client_id: OAuth client ID.
        client_secret: OAuth client secret.
        data_dir: Directory backup files are written to.
        provider: Provider preset name ("office365" or "gmail").
        auth_url: Authorization endpoint.
        token_url: Token endpoint.
        scope: OAuth scope string.
        filter: Provider query passed through to the list call.
        start_date: Lower date bound, inclusive.
        end_date: Upper date bound, inclusive.
        max_connections: Worker pool size.
        max_retries: Retries per transient failure.
        sync_deletes: Run the delete reconciliation pass.
    """

    client_id: str | None
    client_secret: str | None
    data_dir: Path | None
    provider: str = DEFAULT_PROVIDER
    auth_url: str = ""
    token_url: str = ""
    scope: str = ""
    filter: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    max_connections: int = DEFAULT_MAX_CONNECTIONS
    max_retries: int = DEFAULT_MAX_RETRIES
    sync_deletes: bool = False

    def validate(self) -> "BackupConfig":
        """Check the settings before a run starts.

        Returns:
            self, so calls can be chained.

        Raises:
            ConfigError: On the first problem found.
        """
        if not self.client_id:
            raise ConfigError("Missing OAuth client ID. Use --id or set client_id.")
        if not self.client_secret:
            raise ConfigError(
                f"Missing OAuth client secret. Use --secret or set {CLIENT_SECRET_ENV}."
            )
        if self.data_dir is None:
            raise ConfigError("Missing backup directory. Use --path or set data_dir.")
        if self.data_dir.exists() and not self.data_dir.is_dir():
            raise ConfigError(f"Backup path is not a directory: {self.data_dir}")
        if not self.auth_url or not self.token_url:
            raise ConfigError("Missing OAuth authorization or token URL.")
        if self.max_connections < 1:
            raise ConfigError(
                f"max_connections must be >= 1, got {self.max_connections}"
            )
        if self.max_retries < 0:
            raise ConfigError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ConfigError(
                f"Start date {self.start_date} is after end date {self.end_date}."
            )

        return self


def build_backup_config(
    account: AccountConfig | None = None,
    defaults: DefaultsConfig | None = None,
    **overrides,
) -> BackupConfig:
    """Build a BackupConfig from config.toml tables and CLI overrides.

    Overrides whose value is None are ignored, so CLI options that were
    not given fall through to the account and defaults tables.

    Args:
        account: The [accounts.<name>] table, if any.
        defaults: The [defaults] table, if any.
        **overrides: Any AccountConfig key, plus max_retries.

    Returns:
        An unvalidated BackupConfig. Call validate() before running.

    Raises:
        ConfigError: For an unknown provider, a malformed date, or a
            number or true/false setting that doesn't parse.
    """
    settings: dict = {}
    settings.update(defaults or {})
    settings.update(account or {})
    settings.update({key: value for key, value in overrides.items() if value is not None})

    provider_name = settings.get("provider", DEFAULT_PROVIDER)
    try:
        preset = get_provider(provider_name)
    except KeyError as e:
        raise ConfigError(str(e.args[0])) from e

    client_secret = settings.get("client_secret") or os.environ.get(CLIENT_SECRET_ENV)

    data_dir = settings.get("data_dir")
    start_date = settings.get("start_date")
    end_date = settings.get("end_date")

    return BackupConfig(
        client_id=settings.get("client_id"),
        client_secret=client_secret,
        data_dir=Path(data_dir).expanduser() if data_dir else None,
        provider=preset.name,
        auth_url=preset.auth_url,
        token_url=preset.token_url,
        scope=preset.scope,
        filter=settings.get("filter") or None,
        start_date=_as_date(start_date),
        end_date=_as_date(end_date),
        max_connections=parse_int(
            "max_connections", settings.get("max_connections", DEFAULT_MAX_CONNECTIONS)
        ),
        max_retries=parse_int("max_retries", settings.get("max_retries", DEFAULT_MAX_RETRIES)),
        sync_deletes=parse_bool("sync_deletes", settings.get("sync_deletes", False)),
    )


def _as_date(value: str | date | None) -> date | None:
    # tomllib already returns date objects for bare TOML dates
    if value is None or isinstance(value, date):
        return value

    return parse_date(value)
