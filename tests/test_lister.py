"""Tests for RemoteMessageLister and MessageFetcher."""

from datetime import date

import pytest

from conftest import FakeMailApi, make_tokens, message_bytes
from mailvault.errors import (
    AuthError,
    FetchError,
    PermissionDenied,
    TokenRejected,
    TransientError,
)
from mailvault.remote.fetcher import MessageFetcher
from mailvault.remote.lister import RemoteMessageLister
from mailvault.remote.models import MessageRef


class TestRemoteMessageLister:
    """Tests for paginated listing."""

    def test_follows_cursors_across_pages(self, tokens, no_wait_retry):
        api = FakeMailApi(pages=[["a", "b"], ["c"], ["d", "e"]])
        lister = RemoteMessageLister(api, tokens, no_wait_retry)

        ids = [ref.id for ref in lister.list()]

        assert ids == ["a", "b", "c", "d", "e"]
        assert [cursor for _token, _query, cursor in api.list_calls] == [None, "1", "2"]

    def test_empty_mailbox(self, tokens, no_wait_retry):
        lister = RemoteMessageLister(FakeMailApi(pages=[[]]), tokens, no_wait_retry)

        assert list(lister.list()) == []

    def test_is_lazy(self, tokens, no_wait_retry):
        """Pages are fetched only as the consumer iterates."""
        api = FakeMailApi(pages=[["a"], ["b"]])
        refs = RemoteMessageLister(api, tokens, no_wait_retry).list()

        assert api.list_calls == []
        assert next(refs).id == "a"
        assert len(api.list_calls) == 1

    def test_each_call_restarts(self, tokens, no_wait_retry):
        api = FakeMailApi(pages=[["a"], ["b"]])
        lister = RemoteMessageLister(api, tokens, no_wait_retry)

        first = [ref.id for ref in lister.list()]
        second = [ref.id for ref in lister.list()]

        assert first == second == ["a", "b"]

    def test_passes_query(self, tokens, no_wait_retry):
        api = FakeMailApi(pages=[[]])
        lister = RemoteMessageLister(api, tokens, no_wait_retry)

        list(lister.list(filter="from:boss", start_date=date(2024, 3, 1), end_date=date(2024, 3, 2)))

        _token, query, _cursor = api.list_calls[0]
        assert query.filter == "from:boss"
        assert query.start_date == date(2024, 3, 1)
        assert query.end_date == date(2024, 3, 2)

    def test_single_refresh_on_401(self, no_wait_retry):
        """A rejected page is retried once with a refreshed token."""
        tokens = make_tokens(token="old", refreshed="new")
        api = FakeMailApi(pages=[["a"]])
        api.list_failures[0] = [TokenRejected("HTTP 401: Unauthorized", 401)]

        ids = [ref.id for ref in RemoteMessageLister(api, tokens, no_wait_retry).list()]

        assert ids == ["a"]
        tokens.refresh.assert_called_once_with(stale_token="old")
        assert [token for token, _query, _cursor in api.list_calls] == ["old", "new"]

    def test_second_401_raises_auth_error(self, tokens, no_wait_retry):
        api = FakeMailApi(pages=[["a"]])
        api.list_failures[0] = [TokenRejected("HTTP 401: Unauthorized", 401)] * 2

        with pytest.raises(AuthError):
            list(RemoteMessageLister(api, tokens, no_wait_retry).list())

    def test_transient_page_failure_is_retried(self, tokens, no_wait_retry):
        api = FakeMailApi(pages=[["a"], ["b"]])
        api.list_failures[1] = [TransientError("HTTP 503: Service Unavailable", 503)] * 2

        ids = [ref.id for ref in RemoteMessageLister(api, tokens, no_wait_retry).list()]

        assert ids == ["a", "b"]
        assert [cursor for _token, _query, cursor in api.list_calls] == [None, "1", "1", "1"]

    def test_transient_failures_exhaust_retries(self, tokens, no_wait_retry):
        api = FakeMailApi(pages=[["a"]])
        api.list_failures[0] = [TransientError("HTTP 503: Service Unavailable", 503)] * 6

        with pytest.raises(TransientError):
            list(RemoteMessageLister(api, tokens, no_wait_retry).list())

        assert len(api.list_calls) == 6

    def test_non_retryable_error_raises_immediately(self, tokens, no_wait_retry):
        api = FakeMailApi(pages=[["a"]])
        api.list_failures[0] = [FetchError("HTTP 400: Bad Request", 400)]

        with pytest.raises(FetchError):
            list(RemoteMessageLister(api, tokens, no_wait_retry).list())

        assert len(api.list_calls) == 1


class TestMessageFetcher:
    """Tests for single message downloads."""

    def test_returns_raw_bytes(self, tokens, no_wait_retry):
        fetcher = MessageFetcher(FakeMailApi(), tokens, no_wait_retry)

        assert fetcher.fetch(MessageRef(id="m1")) == message_bytes("m1")

    def test_reports_each_retry(self, tokens, no_wait_retry):
        api = FakeMailApi()
        api.fetch_failures["m1"] = [TransientError("timeout")] * 3
        retries = []

        data = MessageFetcher(api, tokens, no_wait_retry).fetch(
            MessageRef(id="m1"),
            on_retry=lambda attempt, wait, error: retries.append((attempt, str(error))),
        )

        assert data == message_bytes("m1")
        assert retries == [(1, "timeout"), (2, "timeout"), (3, "timeout")]

    def test_permission_denied_is_immediate(self, tokens, no_wait_retry):
        api = FakeMailApi()
        api.fetch_failures["m1"] = [PermissionDenied("HTTP 403: Forbidden", 403)]

        with pytest.raises(PermissionDenied):
            MessageFetcher(api, tokens, no_wait_retry).fetch(MessageRef(id="m1"))

        assert api.fetched_ids == ["m1"]

    def test_refreshes_token_on_401(self, no_wait_retry):
        tokens = make_tokens(token="old", refreshed="new")
        api = FakeMailApi()
        api.fetch_failures["m1"] = [TokenRejected("HTTP 401: Unauthorized", 401)]

        MessageFetcher(api, tokens, no_wait_retry).fetch(MessageRef(id="m1"))

        assert api.fetch_calls == [("old", "m1"), ("new", "m1")]
