"""Gmail API transport.

Wraps the Gmail API to provide the MailApi interface used by the lister
and fetcher: one call per list page, one call per raw message.
"""

import base64
import threading
from datetime import date, timedelta

import httplib2
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from mailvault.errors import TransientError, classify_http_status

from .models import ListQuery, MessagePage, MessageRef

# API max per page is 500
DEFAULT_PAGE_SIZE = 500

REQUEST_TIMEOUT = 120


def build_query(query: ListQuery) -> str | None:
    """Render a ListQuery into a Gmail search query.

    The user filter goes first, untouched. Gmail's before: is exclusive,
    so the inclusive end date becomes before:<end + 1 day>.
    """
    terms = []

    if query.filter:
        terms.append(query.filter)
    if query.start_date:
        terms.append(f"after:{_gmail_date(query.start_date)}")
    if query.end_date:
        terms.append(f"before:{_gmail_date(query.end_date + timedelta(days=1))}")

    return " ".join(terms) or None


def _gmail_date(day: date) -> str:
    # Gmail query format: YYYY/MM/DD
    return f"{day.year}/{day.month:02d}/{day.day:02d}"


class GmailMailApi:
    """Gmail implementation of the MailApi interface.

    The bearer token is set per request rather than through a credentials
    object, so a 401 comes back as an HttpError instead of triggering
    google-auth's own refresh. httplib2 is not thread-safe, so each worker
    thread builds its own service.

    Example:
        api = GmailMailApi()
        page = api.list_page(token, ListQuery(filter="in:sent"), None)
        raw = api.get_raw(token, page.refs[0])
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE):
        self._page_size = page_size
        self._local = threading.local()

    def _service(self):
        service = getattr(self._local, "service", None)
        if service is None:
            # The service is the main entry point for all Gmail API calls
            service = build(
                "gmail",
                "v1",
                http=httplib2.Http(timeout=REQUEST_TIMEOUT),
                cache_discovery=False,
            )
            self._local.service = service
        return service

    def _execute(self, request, token: str) -> dict:
        """Execute an API request with bearer auth and map failures."""
        request.headers["Authorization"] = f"Bearer {token}"

        try:
            return request.execute()
        except HttpError as e:
            raise classify_http_status(e.resp.status, e.reason or "") from e
        except (httplib2.HttpLib2Error, OSError) as e:
            raise TransientError(f"Request to Gmail failed: {e}") from e

    def list_page(self, token: str, query: ListQuery, cursor: str | None) -> MessagePage:
        """Fetch one page of message refs.

        Args:
            token: Bearer token.
            query: Filter and date range.
            cursor: nextPageToken from the previous page, or None.
        """
        params = {
            "userId": "me",
            "maxResults": self._page_size,
        }
        q = build_query(query)
        if q:
            params["q"] = q
        if cursor:
            params["pageToken"] = cursor

        request = self._service().users().messages().list(**params)
        result = self._execute(request, token)

        # Gmail list results carry only ids; the thread stands in for the folder
        refs = [
            MessageRef(id=msg["id"], parent_folder_id=msg.get("threadId"))
            for msg in result.get("messages", [])
        ]

        return MessagePage(refs=refs, next_cursor=result.get("nextPageToken"))

    def get_raw(self, token: str, ref: MessageRef) -> bytes:
        """Download a message in RAW format (RFC 2822 bytes)."""
        request = self._service().users().messages().get(
            userId="me", id=ref.id, format="raw"
        )
        result = self._execute(request, token)

        # Gmail uses URL-safe base64 encoding, sometimes without padding
        raw_base64 = result.get("raw", "")
        padding = "=" * (-len(raw_base64) % 4)
        return base64.urlsafe_b64decode(raw_base64 + padding)
