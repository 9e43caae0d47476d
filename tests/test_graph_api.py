"""Tests for the Microsoft Graph transport.

requests.Session is mocked; no network calls.
"""

from datetime import date, datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from mailvault.errors import (
    FetchError,
    NotFound,
    PermissionDenied,
    TokenRejected,
    TransientError,
)
from mailvault.remote.graph import GRAPH_BASE, SELECT_FIELDS, GraphMailApi, build_filter
from mailvault.remote.models import ListQuery, MessageRef


def make_response(status_code=200, reason="OK", json_data=None, content=b""):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.reason = reason
    response.json.return_value = json_data or {}
    response.content = content
    return response


@pytest.fixture
def mock_session():
    with patch("mailvault.remote.graph.requests.Session") as session_cls:
        yield session_cls.return_value


class TestBuildFilter:
    """Tests for OData $filter rendering."""

    def test_empty_query(self):
        assert build_filter(ListQuery()) is None

    def test_filter_alone_is_verbatim(self):
        assert build_filter(ListQuery(filter="isRead eq false")) == "isRead eq false"

    def test_date_bounds_end_inclusive(self):
        query = ListQuery(start_date=date(2024, 1, 1), end_date=date(2024, 1, 31))

        assert build_filter(query) == (
            "receivedDateTime ge 2024-01-01T00:00:00Z "
            "and receivedDateTime lt 2024-02-01T00:00:00Z"
        )

    def test_filter_and_dates_are_joined(self):
        query = ListQuery(filter="isRead eq false", start_date=date(2024, 1, 1))

        assert build_filter(query) == (
            "(isRead eq false) and receivedDateTime ge 2024-01-01T00:00:00Z"
        )


class TestListPage:
    """Tests for GraphMailApi.list_page."""

    def test_first_page_request(self, mock_session):
        mock_session.get.return_value = make_response(json_data={"value": []})
        api = GraphMailApi(page_size=50)

        api.list_page("tok", ListQuery(filter="isRead eq false"), None)

        args, kwargs = mock_session.get.call_args
        assert args[0] == f"{GRAPH_BASE}/me/messages"
        assert kwargs["headers"] == {"Authorization": "Bearer tok"}
        assert kwargs["params"] == {
            "$select": SELECT_FIELDS,
            "$top": "50",
            "$filter": "isRead eq false",
        }

    def test_parses_refs_and_next_link(self, mock_session):
        next_link = f"{GRAPH_BASE}/me/messages?$skip=100"
        mock_session.get.return_value = make_response(
            json_data={
                "value": [
                    {
                        "id": "AAMk-1",
                        "parentFolderId": "inbox-id",
                        "lastModifiedDateTime": "2024-05-01T10:00:00Z",
                    },
                    {"id": "AAMk-2"},
                ],
                "@odata.nextLink": next_link,
            }
        )

        page = GraphMailApi().list_page("tok", ListQuery(), None)

        assert page.refs == [
            MessageRef(
                id="AAMk-1",
                parent_folder_id="inbox-id",
                last_modified=datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc),
            ),
            MessageRef(id="AAMk-2"),
        ]
        assert page.next_cursor == next_link

    def test_cursor_is_requested_as_is(self, mock_session):
        next_link = f"{GRAPH_BASE}/me/messages?$skip=100"
        mock_session.get.return_value = make_response(json_data={"value": []})

        page = GraphMailApi().list_page("tok", ListQuery(filter="ignored"), next_link)

        args, kwargs = mock_session.get.call_args
        assert args[0] == next_link
        assert kwargs["params"] is None
        assert page.next_cursor is None

    @pytest.mark.parametrize(
        "status, error_type",
        [
            (401, TokenRejected),
            (403, PermissionDenied),
            (404, NotFound),
            (429, TransientError),
            (503, TransientError),
            (400, FetchError),
        ],
    )
    def test_error_statuses(self, mock_session, status, error_type):
        mock_session.get.return_value = make_response(status_code=status, reason="Nope")

        with pytest.raises(error_type, match=f"HTTP {status}: Nope"):
            GraphMailApi().list_page("tok", ListQuery(), None)

    def test_connection_error_is_transient(self, mock_session):
        mock_session.get.side_effect = requests.ConnectionError("reset by peer")

        with pytest.raises(TransientError, match="reset by peer"):
            GraphMailApi().list_page("tok", ListQuery(), None)


class TestGetRaw:
    """Tests for GraphMailApi.get_raw."""

    def test_downloads_mime_content(self, mock_session):
        mock_session.get.return_value = make_response(content=b"Subject: hi\r\n\r\nbody")

        data = GraphMailApi().get_raw("tok", MessageRef(id="AAMk/abc=="))

        assert data == b"Subject: hi\r\n\r\nbody"
        url = mock_session.get.call_args.args[0]
        assert url == f"{GRAPH_BASE}/me/messages/AAMk%2Fabc%3D%3D/$value"

    def test_timeout_is_transient(self, mock_session):
        mock_session.get.side_effect = requests.Timeout("read timed out")

        with pytest.raises(TransientError):
            GraphMailApi().get_raw("tok", MessageRef(id="m1"))
