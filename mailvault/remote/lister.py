"""Paginated message listing."""

import logging
from collections.abc import Iterator
from datetime import date

from mailvault.auth.tokens import TokenManager

from .models import ListQuery, MailApi, MessagePage, MessageRef
from .retry import RetryPolicy, call_with_token

logger = logging.getLogger(__name__)


class RemoteMessageLister:
    """Streams MessageRefs page by page.

    Each page is fetched with a valid bearer token, retried on transient
    errors and repeated once after a token refresh on 401. Pages are only
    requested as the consumer iterates, so a slow consumer slows listing.

    Example:
        lister = RemoteMessageLister(GraphMailApi(), tokens)
        for ref in lister.list(filter="parentFolderId eq 'Inbox'"):
            print(ref.id)
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

    def list(
        self,
        filter: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Iterator[MessageRef]:
        """Lazily list messages matching the filter and date range.

        Every call starts again from the first page.

        Raises (while iterating):
            AuthError: If the token can't be refreshed or is rejected twice.
            TransientError: If a page keeps failing after all retries.
            FetchError: On a non-retryable response.
        """
        query = ListQuery(filter=filter, start_date=start_date, end_date=end_date)
        return self._iterate(query)

    def _iterate(self, query: ListQuery) -> Iterator[MessageRef]:
        cursor = None
        page_number = 0

        while True:
            page_number += 1
            page = self._fetch_page(query, cursor, page_number)
            logger.debug("Page %d: %d messages", page_number, len(page.refs))

            yield from page.refs

            if not page.next_cursor:
                return
            cursor = page.next_cursor

    def _fetch_page(self, query: ListQuery, cursor: str | None, page_number: int) -> MessagePage:
        def _log_retry(attempt, wait, error):
            logger.warning(
                "Listing page %d failed (%s), retry %d in %.1fs",
                page_number,
                error,
                attempt,
                wait,
            )

        return self._retry.call(
            call_with_token,
            self._tokens,
            self._api.list_page,
            query,
            cursor,
            on_retry=_log_retry,
        )
