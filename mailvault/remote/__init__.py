"""Remote mailbox access: transports, listing, fetching and retries."""

from .fetcher import MessageFetcher
from .lister import RemoteMessageLister
from .models import ListQuery, MailApi, MessagePage, MessageRef
from .retry import RetryPolicy, call_with_token

__all__ = [
    "MessageFetcher",
    "RemoteMessageLister",
    "RetryPolicy",
    "call_with_token",
    "ListQuery",
    "MailApi",
    "MessagePage",
    "MessageRef",
]
