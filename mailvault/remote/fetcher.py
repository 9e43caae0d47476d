"""Single message download."""

from mailvault.auth.tokens import TokenManager

from .models import MailApi, MessageRef
from .retry import RetryHook, RetryPolicy, call_with_token


class MessageFetcher:
    """Downloads the raw content of one message.

    Uses the same retry and token policy as listing. PermissionDenied and
    NotFound are raised on the first attempt; TransientError only after
    the retries are used up.
    """

    def __init__(
        self,
        api: MailApi,
        tokens: TokenManager,
        retry: RetryPolicy | None = None,
    ):
        self._api = api
        self._tokens = tokens
        self._retry = retry or RetryPolicy()

    def fetch(self, ref: MessageRef, on_retry: RetryHook | None = None) -> bytes:
        """Download a message.

        Args:
            ref: The message to download.
            on_retry: Called before each retry with (attempt, wait, error).

        Returns:
            Raw RFC 2822 message bytes.

        Raises:
            AuthError, TransientError, PermissionDenied, NotFound, FetchError.
        """
        return self._retry.call(
            call_with_token,
            self._tokens,
            self._api.get_raw,
            ref,
            on_retry=on_retry,
        )
