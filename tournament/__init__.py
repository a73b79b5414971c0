"""Tournament networking: dealer hub, HTTP API and notification fan-out."""

from .announcer import RoundAnnouncer
from .api import create_app
from .commands import DealerCommands, DealerContext
from .dispatcher import NotificationDispatcher, TransportRouter, WebhookTransport, WebSocketTransport
from .server import DealerHub
from .session import ClockTicker, TournamentSession

__all__ = [
    "RoundAnnouncer",
    "create_app",
    "DealerCommands",
    "DealerContext",
    "NotificationDispatcher",
    "TransportRouter",
    "WebhookTransport",
    "WebSocketTransport",
    "DealerHub",
    "ClockTicker",
    "TournamentSession",
]
