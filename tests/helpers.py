from __future__ import annotations

import json
from typing import Dict, Iterable, List, Optional, Tuple

import websockets

from tourney_core.errors import DeliveryError
from tourney_core.models import Dealer, TournamentConfig
from tourney_core.payloads import DealerAssignment
from tourney_core.store import MemoryBackend, TournamentStateStore
from tournament.dispatcher import NotificationDispatcher
from tournament.session import TournamentSession

# Three blind levels with a break before the last one; short enough to reason
# about ordinals and durations in asserts.
SHORT_STRUCTURE = [
    {"round": 1, "sb": 25, "bb": 50, "time": 10},
    {"round": 2, "sb": 50, "bb": 100, "time": 10},
    {"break": True, "time": 5},
    {"round": 3, "sb": 100, "bb": 200, "ante": 25, "time": 10},
]


class DummyWebSocket:
    """In-memory stand-in for a server connection."""

    def __init__(self, incoming: Optional[Iterable[object]] = None) -> None:
        self.sent: List[str] = []
        self.closed = False
        self.close_code: Optional[int] = None
        self._incoming = [json.dumps(item) if isinstance(item, dict) else item for item in incoming or []]

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def recv(self) -> object:
        if not self._incoming:
            raise websockets.ConnectionClosed(None, None)
        return self._incoming.pop(0)

    def __aiter__(self) -> "DummyWebSocket":
        return self

    async def __anext__(self) -> object:
        if not self._incoming:
            raise StopAsyncIteration
        return self._incoming.pop(0)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.close_code = code

    def messages(self) -> List[Dict[str, object]]:
        return [json.loads(raw) for raw in self.sent]

    def types(self) -> List[str]:
        return [str(message["type"]) for message in self.messages()]


class ClosedWebSocket(DummyWebSocket):
    async def send(self, message: str) -> None:
        raise websockets.ConnectionClosed(None, None)


class RecordingTransport:
    """Transport double: records deliveries, fails for the listed dealer ids."""

    def __init__(self, fail_for: Iterable[str] = ()) -> None:
        self.sent: List[Tuple[str, str, Dict[str, object]]] = []
        self.fail_for = set(fail_for)

    async def send(self, dealer: Dealer, message: str, extra) -> None:
        if dealer.id in self.fail_for:
            raise DeliveryError(f"Dealer {dealer.id} is not connected")
        self.sent.append((dealer.id, message, dict(extra)))

    @property
    def recipients(self) -> List[str]:
        return [dealer_id for dealer_id, _, _ in self.sent]


def make_store(document: Optional[Dict[str, object]] = None) -> TournamentStateStore:
    return TournamentStateStore(MemoryBackend(document))


def add_dealer(
    store: TournamentStateStore,
    dealer_id: str,
    table: Optional[str],
    *,
    endpoint_ref: Optional[str] = None,
    display_name: str = "",
) -> Dealer:
    return store.assign_dealer(
        DealerAssignment(
            id=dealer_id,
            endpoint_ref=endpoint_ref or dealer_id,
            table=table,
            display_name=display_name,
        )
    )


def make_session(
    *,
    structure=None,
    transport: Optional[RecordingTransport] = None,
    config: Optional[TournamentConfig] = None,
    tick_interval: float = 1.0,
    history_limit: int = 20,
) -> Tuple[TournamentSession, RecordingTransport]:
    """Session over an in-memory store and a recording transport."""
    transport = transport or RecordingTransport()
    session = TournamentSession(
        make_store(),
        NotificationDispatcher(transport),
        config=config,
        structure=SHORT_STRUCTURE if structure is None else structure,
        tick_interval=tick_interval,
        history_limit=history_limit,
    )
    return session, transport
