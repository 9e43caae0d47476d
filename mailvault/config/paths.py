"""Where mailvault keeps its configuration.

Follows the XDG Base Directory layout: ~/.config/mailvault/config.toml.
Backups themselves go wherever each account's data_dir points.
"""

from pathlib import Path

CONFIG_DIR = Path.home() / ".config" / "mailvault"
CONFIG_FILE = CONFIG_DIR / "config.toml"


def ensure_config_dir(directory: Path | None = None) -> Path:
    """Create the directory holding config.toml, readable by the owner only.

    Args:
        directory: Directory to create. Defaults to CONFIG_DIR.

    Returns:
        The directory path.
    """
    directory = directory or CONFIG_DIR
    directory.mkdir(parents=True, exist_ok=True)
    # config.toml may hold a client secret
    directory.chmod(0o700)
    return directory
