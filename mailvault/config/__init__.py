"""Configuration file handling.

config.toml has a [defaults] table and one [accounts.<name>] table per
mailbox. It lives at ~/.config/mailvault/config.toml unless the
MAILVAULT_CONFIG environment variable points elsewhere.

Usage:
    from mailvault.config import load_config, get_account, build_backup_config

    config = load_config()
    account = get_account(config, "work")
    backup = build_backup_config(account, config.get("defaults")).validate()
"""

import os
import tomllib
from pathlib import Path
from typing import get_type_hints

import tomli_w

from mailvault.auth.providers import get_provider
from mailvault.errors import ConfigError

from .backup import (
    CLIENT_SECRET_ENV,
    BackupConfig,
    build_backup_config,
    parse_bool,
    parse_date,
    parse_int,
)
from .paths import CONFIG_FILE, ensure_config_dir
from .schema import AccountConfig, DefaultsConfig, MailVaultConfig
from .template import CONFIG_TEMPLATE

__all__ = [
    "load_config",
    "save_config",
    "init_config",
    "config_path",
    "get_account",
    "get_account_names",
    "set_config_value",
    "build_backup_config",
    "parse_date",
    "BackupConfig",
    "CLIENT_SECRET_ENV",
    "CONFIG_ENV",
    "CONFIG_FILE",
]

# Alternative config.toml location
CONFIG_ENV = "MAILVAULT_CONFIG"

DATE_FIELDS = frozenset({"start_date", "end_date"})

# One read per CLI invocation
_cached_config: MailVaultConfig | None = None


def config_path() -> Path:
    """Path of the config file in use."""
    override = os.environ.get(CONFIG_ENV)
    return Path(override).expanduser() if override else CONFIG_FILE


def load_config(*, force_reload: bool = False) -> MailVaultConfig:
    """Read config.toml.

    A missing file is an empty configuration, so every setting can still
    come from the command line.

    Args:
        force_reload: Bypass the cache and read from disk.

    Raises:
        ConfigError: If the file is not valid TOML.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    path = config_path()
    if not path.exists():
        _cached_config = {}
        return _cached_config

    try:
        with open(path, "rb") as f:
            _cached_config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e

    return _cached_config


def save_config(config: MailVaultConfig) -> None:
    """Write config.toml, readable by the owner only, and refresh the cache."""
    global _cached_config

    path = config_path()
    ensure_config_dir(path.parent)

    with open(path, "wb") as f:
        tomli_w.dump(config, f)
    path.chmod(0o600)

    _cached_config = config


def init_config(*, overwrite: bool = False) -> bool:
    """Write the commented template to config.toml.

    Returns:
        True if the file was written, False if one already existed.
    """
    path = config_path()
    ensure_config_dir(path.parent)

    if path.exists() and not overwrite:
        return False

    path.write_text(CONFIG_TEMPLATE)
    path.chmod(0o600)
    return True


def get_account(
    config: MailVaultConfig, name: str | None = None
) -> AccountConfig | None:
    """Look up an [accounts.<name>] table.

    Args:
        config: The loaded configuration.
        name: Account name. None selects the first account in the file.

    Returns:
        The account table, or None if there is no such account.
    """
    accounts = config.get("accounts", {})

    if name is None:
        return next(iter(accounts.values()), None)

    return accounts.get(name)


def get_account_names(config: MailVaultConfig) -> list[str]:
    return list(config.get("accounts", {}))


def set_config_value(key: str, value: str) -> None:
    """Set one setting, addressed as defaults.<field> or accounts.<name>.<field>.

    The value is converted to the field's type and checked before the file
    is written.

    Examples:
        set_config_value("defaults.max_connections", "8")
        set_config_value("accounts.work.provider", "gmail")
        set_config_value("accounts.work.start_date", "2023/09/01")

    Raises:
        ValueError: For an unknown key or a value that doesn't fit the field.
    """
    parts = key.split(".")
    field_type = _field_type(key, parts)
    converted = _convert_value(parts[-1], field_type, value)

    config = load_config(force_reload=True)

    table: dict = config
    for part in parts[:-1]:
        table = table.setdefault(part, {})
    table[parts[-1]] = converted

    save_config(config)


def _field_type(key: str, parts: list[str]) -> type:
    if len(parts) == 2 and parts[0] == "defaults":
        fields = get_type_hints(DefaultsConfig)
    elif len(parts) == 3 and parts[0] == "accounts" and parts[1]:
        fields = get_type_hints(AccountConfig)
    else:
        raise ValueError(
            f"Unknown setting '{key}'. Use defaults.<field> or accounts.<name>.<field>."
        )

    field_name = parts[-1]
    if field_name not in fields:
        known = ", ".join(sorted(fields))
        raise ValueError(f"Unknown field '{field_name}'. Known fields: {known}.")

    return fields[field_name]


def _convert_value(field_name: str, field_type: type, value: str) -> str | int | bool:
    """Convert a command line string to the type config.toml stores.

    Raises:
        ValueError: If the value doesn't fit the field.
    """
    try:
        if field_type is bool:
            return parse_bool(field_name, value)
        if field_type is int:
            return parse_int(field_name, value)
        if field_name in DATE_FIELDS:
            parse_date(value)
        elif field_name == "provider":
            get_provider(value)
    except (ConfigError, KeyError) as e:
        raise ValueError(str(e.args[0])) from e

    return value
