"""mailvault - back up a remote mailbox to local files over OAuth2."""

__version__ = "0.1.0"
