"""Data models and the transport interface for remote mailboxes."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Protocol


@dataclass(frozen=True)
class MessageRef:
    """A message as seen in a list page.

    The id is assigned by the provider and is unique within the mailbox.
    """

    id: str
    parent_folder_id: str | None = None
    last_modified: datetime | None = None


@dataclass(frozen=True)
class ListQuery:
    """What to list. Rendered into provider syntax by the transport."""

    filter: str | None = None
    start_date: date | None = None
    end_date: date | None = None


@dataclass
class MessagePage:
    """One page of a message listing.

    next_cursor is opaque to callers (a nextLink URL for Graph, a page
    token for Gmail) and None on the last page.
    """

    refs: list[MessageRef] = field(default_factory=list)
    next_cursor: str | None = None


class MailApi(Protocol):
    """HTTP calls a provider transport must implement.

    Both methods take the bearer token explicitly so the caller controls
    refresh. Failures are raised as mailvault.errors types; a 401 must be
    raised as TokenRejected.
    """

    def list_page(self, token: str, query: ListQuery, cursor: str | None) -> MessagePage:
        ...

    def get_raw(self, token: str, ref: MessageRef) -> bytes:
        ...
