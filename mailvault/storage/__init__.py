"""Local backup storage."""

from .local import BackupFile, LocalStore, decode_message_id, encode_message_id

__all__ = ["BackupFile", "LocalStore", "encode_message_id", "decode_message_id"]
