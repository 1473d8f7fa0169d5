"""Reply dispatch."""

from .dispatcher import ResponseDispatcher, recipient_for, reply_metadata
from .transports import DiscordTransport, FacebookTransport, RedditTransport, Transport, WhatsAppTransport

__all__ = [
    "DiscordTransport",
    "FacebookTransport",
    "RedditTransport",
    "ResponseDispatcher",
    "Transport",
    "WhatsAppTransport",
    "recipient_for",
    "reply_metadata",
]
