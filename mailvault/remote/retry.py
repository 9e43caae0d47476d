"""Retry policy for remote calls.

Transient failures (network errors, throttling, 5xx) are retried with
exponential backoff and full jitter via the ``backoff`` library. A 401 is
handled separately: the token is refreshed once and the call repeated once.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import backoff

from mailvault.auth.tokens import TokenManager
from mailvault.errors import AuthError, TokenRejected, TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Called before each retry with (attempt number, wait seconds, error)
RetryHook = Callable[[int, float, TransientError], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff.

    Attributes:
        max_retries: Retries after the first attempt (so max_retries + 1
            attempts in total).
        base_delay: Wait before the first retry, doubled for each further
            retry. Zero disables waiting (tests).
        max_delay: Upper bound for a single wait.
    """

    max_retries: int = 5
    base_delay: float = 1.0
    max_delay: float = 60.0

    def call(
        self,
        func: Callable[..., T],
        *args,
        on_retry: RetryHook | None = None,
        **kwargs,
    ) -> T:
        """Call func, retrying on TransientError.

        Raises:
            TransientError: The last error once retries are exhausted.
            Any other exception from func, immediately.
        """

        def _on_backoff(details: dict) -> None:
            error = details["exception"]
            logger.debug(
                "Retry %d/%d in %.1fs after: %s",
                details["tries"],
                self.max_retries,
                details["wait"],
                error,
            )
            if on_retry:
                on_retry(details["tries"], details["wait"], error)

        retrying = backoff.on_exception(
            backoff.expo,
            TransientError,
            max_tries=self.max_retries + 1,
            jitter=backoff.full_jitter,
            on_backoff=_on_backoff,
            factor=self.base_delay,
            max_value=self.max_delay,
            # Retries are logged by _on_backoff
            logger=None,
        )(func)

        return retrying(*args, **kwargs)


def call_with_token(
    tokens: TokenManager,
    func: Callable[..., T],
    *args,
) -> T:
    """Call func(token, *args) with a valid bearer token.

    On a 401 the token is refreshed once (serialized across threads by the
    TokenManager) and the call repeated once.

    Raises:
        AuthError: If the refreshed token is rejected too.
    """
    token = tokens.get_valid_token()
    try:
        return func(token, *args)
    except TokenRejected:
        logger.info("Access token rejected, refreshing")
        token = tokens.refresh(stale_token=token)

    try:
        return func(token, *args)
    except TokenRejected as e:
        raise AuthError(f"Access token rejected after refresh: {e}", e.status) from e
