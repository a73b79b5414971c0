from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Protocol, Sequence

import httpx
import websockets

from tourney_core.errors import DeliveryError, TournamentError
from tourney_core.models import Dealer

from .protocol import envelope

LOGGER = logging.getLogger("tourney_clock.dispatch")

# Fan-out with isolated failures: every recipient gets its own send, all sends
# run concurrently, and the join waits for every one of them. A failed send is
# reported in the result and never raised; the state change that triggered
# the notification has already been recorded by then.


class Transport(Protocol):
    async def send(self, dealer: Dealer, message: str, extra: Mapping[str, object]) -> None:
        ...


class ConnectionLookup(Protocol):
    def connection_for(self, endpoint_ref: str):
        ...


@dataclass(frozen=True)
class DeliveryFailure:
    recipient: str
    error: str

    def to_dict(self) -> Dict[str, str]:
        return {"recipient": self.recipient, "error": self.error}


@dataclass
class NotifyResult:
    notified: List[str] = field(default_factory=list)
    failures: List[DeliveryFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "notified": list(self.notified),
            "failures": [failure.to_dict() for failure in self.failures],
        }


def describe_error(exc: BaseException) -> str:
    if isinstance(exc, TournamentError):
        return exc.msg
    return str(exc) or exc.__class__.__name__


class NotificationDispatcher:
    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    async def notify(
        self,
        recipients: Sequence[Dealer],
        message: str,
        extra: Optional[Mapping[str, object]] = None,
    ) -> NotifyResult:
        result = NotifyResult()
        if not recipients:
            return result
        payload = dict(extra or {})
        outcomes = await asyncio.gather(
            *(self.transport.send(dealer, message, payload) for dealer in recipients),
            return_exceptions=True,
        )
        for dealer, outcome in zip(recipients, outcomes):
            if isinstance(outcome, BaseException):
                error = describe_error(outcome)
                result.failures.append(DeliveryFailure(recipient=dealer.id, error=error))
                LOGGER.warning("Failed to notify dealer %s (%s): %s", dealer.id, dealer.label, error)
            else:
                result.notified.append(dealer.id)
        return result


class WebSocketTransport:
    """Delivers to the dealer's live hub connection."""

    def __init__(self, connections: ConnectionLookup) -> None:
        self.connections = connections

    async def send(self, dealer: Dealer, message: str, extra: Mapping[str, object]) -> None:
        websocket = self.connections.connection_for(dealer.endpoint_ref or dealer.id)
        if websocket is None:
            raise DeliveryError(f"Dealer {dealer.id} is not connected")
        payload: Dict[str, object] = {"message": message, "dealer": dealer.id, "table": dealer.table}
        payload.update(extra)
        try:
            await websocket.send(envelope("notify", payload))
        except websockets.ConnectionClosed as exc:
            raise DeliveryError(f"Connection to dealer {dealer.id} closed") from exc


class WebhookTransport:
    """POSTs the notification as JSON to an http(s) endpoint reference."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0) -> None:
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send(self, dealer: Dealer, message: str, extra: Mapping[str, object]) -> None:
        body: Dict[str, object] = {"dealer": dealer.id, "table": dealer.table, "message": message}
        body.update(extra)
        try:
            response = await self._get_client().post(dealer.endpoint_ref, json=body)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise DeliveryError(describe_error(exc)) from exc

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


def is_webhook_ref(endpoint_ref: str) -> bool:
    return endpoint_ref.startswith(("http://", "https://"))


class TransportRouter:
    """Picks a transport from the endpoint reference: URLs go to the webhook."""

    def __init__(self, websocket: Optional[Transport] = None, webhook: Optional[Transport] = None) -> None:
        self.websocket = websocket
        self.webhook = webhook

    async def send(self, dealer: Dealer, message: str, extra: Mapping[str, object]) -> None:
        if is_webhook_ref(dealer.endpoint_ref):
            if self.webhook is None:
                raise DeliveryError(f"No webhook transport configured for dealer {dealer.id}")
            await self.webhook.send(dealer, message, extra)
            return
        if self.websocket is None:
            raise DeliveryError(f"Dealer hub is not running; cannot reach dealer {dealer.id}")
        await self.websocket.send(dealer, message, extra)
