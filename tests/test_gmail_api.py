"""Tests for the Gmail API transport.

Uses mocking to test API interactions without real credentials.
"""

import base64
from datetime import date
from unittest.mock import MagicMock, patch

import httplib2
import pytest
from googleapiclient.errors import HttpError

from mailvault.errors import NotFound, TokenRejected, TransientError
from mailvault.remote.gmail import GmailMailApi, build_query
from mailvault.remote.models import ListQuery, MessageRef


def http_error(status: int, reason: str) -> HttpError:
    resp = httplib2.Response({"status": str(status)})
    resp.reason = reason
    return HttpError(resp, b"")


@pytest.fixture
def mock_service():
    """Create a mock Gmail service."""
    return MagicMock()


@pytest.fixture
def gmail_api(mock_service):
    """Create a GmailMailApi whose service is mocked."""
    with patch("mailvault.remote.gmail.build") as mock_build:
        mock_build.return_value = mock_service
        yield GmailMailApi(page_size=100)


def list_request(mock_service):
    return mock_service.users.return_value.messages.return_value.list.return_value


def get_request(mock_service):
    return mock_service.users.return_value.messages.return_value.get.return_value


class TestBuildQuery:
    """Tests for Gmail search query rendering."""

    def test_empty_query(self):
        assert build_query(ListQuery()) is None

    def test_filter_and_dates(self):
        query = ListQuery(
            filter="in:sent",
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 31),
        )

        assert build_query(query) == "in:sent after:2024/01/01 before:2024/02/01"


class TestListPage:
    """Tests for GmailMailApi.list_page."""

    def test_returns_refs_and_next_token(self, gmail_api, mock_service):
        request = list_request(mock_service)
        request.headers = {}
        request.execute.return_value = {
            "messages": [
                {"id": "msg1", "threadId": "thread1"},
                {"id": "msg2", "threadId": "thread1"},
            ],
            "nextPageToken": "page-2",
        }

        page = gmail_api.list_page("tok", ListQuery(filter="in:inbox"), None)

        assert page.refs == [
            MessageRef(id="msg1", parent_folder_id="thread1"),
            MessageRef(id="msg2", parent_folder_id="thread1"),
        ]
        assert page.next_cursor == "page-2"
        assert request.headers["Authorization"] == "Bearer tok"
        mock_service.users.return_value.messages.return_value.list.assert_called_once_with(
            userId="me", maxResults=100, q="in:inbox"
        )

    def test_passes_page_token(self, gmail_api, mock_service):
        request = list_request(mock_service)
        request.headers = {}
        request.execute.return_value = {}

        page = gmail_api.list_page("tok", ListQuery(), "page-2")

        assert page.refs == []
        assert page.next_cursor is None
        mock_service.users.return_value.messages.return_value.list.assert_called_once_with(
            userId="me", maxResults=100, pageToken="page-2"
        )

    def test_401_is_token_rejected(self, gmail_api, mock_service):
        request = list_request(mock_service)
        request.headers = {}
        request.execute.side_effect = http_error(401, "Unauthorized")

        with pytest.raises(TokenRejected):
            gmail_api.list_page("tok", ListQuery(), None)

    def test_rate_limit_is_transient(self, gmail_api, mock_service):
        request = list_request(mock_service)
        request.headers = {}
        request.execute.side_effect = http_error(429, "Too Many Requests")

        with pytest.raises(TransientError, match="HTTP 429"):
            gmail_api.list_page("tok", ListQuery(), None)

    def test_socket_error_is_transient(self, gmail_api, mock_service):
        request = list_request(mock_service)
        request.headers = {}
        request.execute.side_effect = TimeoutError("timed out")

        with pytest.raises(TransientError):
            gmail_api.list_page("tok", ListQuery(), None)


class TestGetRaw:
    """Tests for GmailMailApi.get_raw."""

    def test_decodes_raw_message(self, gmail_api, mock_service):
        raw_email = b"From: test@example.com\r\nSubject: Test\r\n\r\nBody"
        request = get_request(mock_service)
        request.headers = {}
        # Gmail omits base64 padding
        request.execute.return_value = {
            "raw": base64.urlsafe_b64encode(raw_email).decode().rstrip("=")
        }

        data = gmail_api.get_raw("tok", MessageRef(id="msg1"))

        assert data == raw_email
        mock_service.users.return_value.messages.return_value.get.assert_called_once_with(
            userId="me", id="msg1", format="raw"
        )

    def test_missing_message(self, gmail_api, mock_service):
        request = get_request(mock_service)
        request.headers = {}
        request.execute.side_effect = http_error(404, "Not Found")

        with pytest.raises(NotFound, match="HTTP 404: Not Found"):
            gmail_api.get_raw("tok", MessageRef(id="gone"))
