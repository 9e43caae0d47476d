"""Microsoft Graph transport for Office 365 mailboxes.

Lists messages through GET /me/messages (following @odata.nextLink) and
downloads MIME content through GET /me/messages/{id}/$value.
"""

import threading
from datetime import date, datetime, time, timedelta, timezone
from urllib.parse import quote

import requests

from mailvault.errors import TransientError, classify_http_status

from .models import ListQuery, MessagePage, MessageRef

GRAPH_BASE = "https://graph.microsoft.com/v1.0"

# Graph caps $top at 1000 for messages; 100 keeps pages reasonably small
DEFAULT_PAGE_SIZE = 100

# Only the fields a MessageRef needs
SELECT_FIELDS = "id,parentFolderId,lastModifiedDateTime"

LIST_TIMEOUT = 30
FETCH_TIMEOUT = 120


def build_filter(query: ListQuery) -> str | None:
    """Render a ListQuery into an OData $filter expression.

    The user filter is passed through untouched and joined with the
    receivedDateTime bounds. The end date is inclusive.
    """
    clauses = []

    if query.filter:
        clauses.append(f"({query.filter})")
    if query.start_date:
        clauses.append(f"receivedDateTime ge {_odata_datetime(query.start_date)}")
    if query.end_date:
        next_day = query.end_date + timedelta(days=1)
        clauses.append(f"receivedDateTime lt {_odata_datetime(next_day)}")

    if not clauses:
        return None

    # A lone user filter goes through verbatim, without the parentheses
    if len(clauses) == 1 and query.filter:
        return query.filter

    return " and ".join(clauses)


def _odata_datetime(day: date) -> str:
    return datetime.combine(day, time.min, tzinfo=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_graph_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class GraphMailApi:
    """Graph implementation of the MailApi interface.

    requests.Session is not thread-safe, so each worker thread gets its own.

    Example:
        api = GraphMailApi()
        page = api.list_page(token, ListQuery(filter="isRead eq false"), None)
        raw = api.get_raw(token, page.refs[0])
    """

    def __init__(self, base_url: str = GRAPH_BASE, page_size: int = DEFAULT_PAGE_SIZE):
        self._base_url = base_url.rstrip("/")
        self._page_size = page_size
        self._local = threading.local()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def _get(self, url: str, token: str, params: dict | None, timeout: int) -> requests.Response:
        """GET with bearer auth, mapping failures onto the error taxonomy."""
        headers = {"Authorization": f"Bearer {token}"}

        try:
            response = self._session().get(url, headers=headers, params=params, timeout=timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientError(f"Request to Graph failed: {e}") from e

        if not response.ok:
            raise classify_http_status(response.status_code, response.reason or "")

        return response

    def list_page(self, token: str, query: ListQuery, cursor: str | None) -> MessagePage:
        """Fetch one page of message refs.

        Args:
            token: Bearer token.
            query: Filter and date range (ignored when cursor is set, since
                the nextLink already encodes them).
            cursor: @odata.nextLink from the previous page, or None.
        """
        if cursor:
            response = self._get(cursor, token, None, LIST_TIMEOUT)
        else:
            params = {"$select": SELECT_FIELDS, "$top": str(self._page_size)}
            odata_filter = build_filter(query)
            if odata_filter:
                params["$filter"] = odata_filter
            response = self._get(f"{self._base_url}/me/messages", token, params, LIST_TIMEOUT)

        data = response.json()

        refs = [
            MessageRef(
                id=item["id"],
                parent_folder_id=item.get("parentFolderId"),
                last_modified=_parse_graph_datetime(item.get("lastModifiedDateTime")),
            )
            for item in data.get("value", [])
        ]

        return MessagePage(refs=refs, next_cursor=data.get("@odata.nextLink"))

    def get_raw(self, token: str, ref: MessageRef) -> bytes:
        """Download the MIME content of a message."""
        url = f"{self._base_url}/me/messages/{quote(ref.id, safe='')}/$value"
        return self._get(url, token, None, FETCH_TIMEOUT).content
