"""Error taxonomy shared by the auth, remote, storage and sync layers.

Every error carries a short ``code`` string that is reported to the
event sink alongside the message, so callers can tell a throttled request
from a missing message without parsing text.

Run-fatal: AuthError, ConfigError.
Per-message: TransientError (after retries), FetchError, StorageError.
"""


class MailVaultError(Exception):
    """Base class for all mailvault errors."""

    code = "error"

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ConfigError(MailVaultError):
    """Configuration is missing or invalid. Raised before a run starts."""

    code = "config_error"


class AuthError(MailVaultError):
    """Authorization failed or the refresh token was rejected."""

    code = "auth_failed"


class TokenRejected(MailVaultError):
    """The remote API answered 401 for the bearer token that was sent.

    Only used between the transports and the retry layer, which refreshes
    the token once and converts a second rejection into AuthError.
    """

    code = "token_rejected"


class TransientError(MailVaultError):
    """Network failure, timeout, throttling or a 5xx response."""

    code = "transient"


class FetchError(MailVaultError):
    """A non-retryable remote failure."""

    code = "fetch_failed"


class PermissionDenied(FetchError):
    code = "permission_denied"


class NotFound(FetchError):
    code = "not_found"


class StorageError(MailVaultError):
    """Local filesystem failure while writing or deleting a backup file."""

    code = "storage_error"


# Statuses worth retrying: request timeout, throttling and server errors
RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


def classify_http_status(status: int, message: str) -> MailVaultError:
    """Map an HTTP error status onto the error taxonomy.

    Args:
        status: HTTP status code of the failed response.
        message: Human readable description (usually the response reason).

    Returns:
        The exception instance to raise. Never returns None.
    """
    text = f"HTTP {status}: {message}"

    if status == 401:
        return TokenRejected(text, status)
    if status == 403:
        return PermissionDenied(text, status)
    if status == 404:
        return NotFound(text, status)
    if status in RETRYABLE_STATUSES or status >= 500:
        return TransientError(text, status)

    return FetchError(text, status)
