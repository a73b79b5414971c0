from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from http import HTTPStatus
from typing import AsyncIterator, Dict, Mapping, Optional, Set

import websockets
from websockets.asyncio.server import ServerConnection, serve
from websockets.http11 import Request, Response

from tourney_core.errors import TournamentError
from tourney_core.payloads import optional_text

from .commands import DealerCommands, DealerContext
from .protocol import decode, envelope
from .session import TournamentSession

LOGGER = logging.getLogger("tourney_clock.hub")

# DealerHub is the live side of the system: dealers keep a socket open to
# receive round/rebuy/elimination notifications and to send commands, display
# boards subscribe to clock frames. All tournament logic sits in the session.

HELLO_TIMEOUT = 5


@dataclass
class DealerConnection:
    context: DealerContext
    websocket: ServerConnection


class DealerHub:
    def __init__(self, session: TournamentSession) -> None:
        self.session = session
        self.commands = DealerCommands(session)
        # Keyed by endpoint reference; that is what a Dealer record points at.
        self.connections: Dict[str, DealerConnection] = {}
        self.displays: Set[ServerConnection] = set()

    def connection_for(self, endpoint_ref: str) -> Optional[ServerConnection]:
        connection = self.connections.get(endpoint_ref)
        return connection.websocket if connection else None

    # Server lifecycle ------------------------------------------------

    @asynccontextmanager
    async def serving(self, host: str = "0.0.0.0", port: int = 8765) -> AsyncIterator["DealerHub"]:
        async with serve(self.handle_connection, host, port, process_request=self._process_request):
            LOGGER.info("Dealer hub listening on %s:%s", host, port)
            yield self

    async def start(self, host: str = "0.0.0.0", port: int = 8765) -> None:
        async with self.serving(host, port):
            await asyncio.Future()

    def _process_request(self, connection: ServerConnection, request: Request) -> Optional[Response]:
        if request.headers.get("Upgrade", "").lower() == "websocket":
            return None
        if request.path in {"/", "/health", "/healthz"}:
            return connection.respond(HTTPStatus.OK, "dealer hub running\n")
        return connection.respond(HTTPStatus.NOT_FOUND, "not found\n")

    # Connections -----------------------------------------------------

    async def handle_connection(self, websocket: ServerConnection) -> None:
        hello = await self._read_message(websocket)
        if hello is None or hello.get("type") != "hello":
            await self._send_error(websocket, code="BAD_HELLO", msg="Expected hello")
            await websocket.close()
            return
        role_raw = hello.get("role") or "dealer"
        role = role_raw.strip().casefold() if isinstance(role_raw, str) else "dealer"
        if role == "display":
            await self._handle_display(websocket)
            return
        dealer_id = optional_text(hello.get("id"))
        if not dealer_id:
            await self._send_error(websocket, code="BAD_SCHEMA", msg="id required")
            await websocket.close()
            return
        context = DealerContext(
            id=dealer_id,
            endpoint_ref=optional_text(hello.get("endpointRef")) or dealer_id,
            display_name=optional_text(hello.get("displayName") or hello.get("name")) or "",
        )
        await self._handle_dealer(websocket, context)

    async def _handle_dealer(self, websocket: ServerConnection, context: DealerContext) -> None:
        previous = self.connections.get(context.endpoint_ref)
        if previous is not None:
            await previous.websocket.close(code=4000, reason="Replaced by new connection")
        self.connections[context.endpoint_ref] = DealerConnection(context=context, websocket=websocket)
        record = self.session.store.get_dealer(context.id)
        LOGGER.info("Dealer %s connected (table=%s)", context.id, record.table if record else None)

        await self._send_json(
            websocket,
            "welcome",
            {
                "dealer": record.to_dict() if record else None,
                "title": self.session.config.title,
                "tables": self.commands.table_choices(context.id),
            },
        )
        try:
            async for raw in websocket:
                message = decode(raw)
                if message.get("type") in ("command", "text"):
                    await self._dispatch(websocket, context, message)
                else:
                    await self._send_error(websocket, code="UNKNOWN_TYPE", msg="Unsupported message type")
        except websockets.ConnectionClosed:
            pass
        finally:
            current = self.connections.get(context.endpoint_ref)
            if current is not None and current.websocket is websocket:
                self.connections.pop(context.endpoint_ref, None)
            LOGGER.info("Dealer %s disconnected", context.id)

    async def _dispatch(
        self, websocket: ServerConnection, context: DealerContext, message: Mapping[str, object]
    ) -> None:
        try:
            replies = await self.commands.handle(context, message)
        except TournamentError as exc:
            LOGGER.warning("Rejected %s from dealer %s: %s", message.get("command") or "text", context.id, exc.msg)
            await self._send_error(websocket, code=exc.code, msg=exc.msg)
            return
        for msg_type, payload in replies:
            await self._send_json(websocket, msg_type, payload)

    async def _handle_display(self, websocket: ServerConnection) -> None:
        LOGGER.info("Display connected")
        self.displays.add(websocket)
        await self._send_json(websocket, "clock", self.session.snapshot())
        try:
            async for raw in websocket:
                message = decode(raw)
                if not message:
                    continue
                LOGGER.warning("Display sent a message; closing connection")
                await websocket.close(code=4403, reason="Displays are read-only")
                break
        except websockets.ConnectionClosed:
            pass
        finally:
            self.displays.discard(websocket)
            LOGGER.info("Display disconnected")

    # Outbound --------------------------------------------------------

    async def broadcast_clock(self, snapshot: Dict[str, object]) -> None:
        if not self.displays:
            return
        message = envelope("clock", snapshot)
        await asyncio.gather(*(socket.send(message) for socket in list(self.displays)), return_exceptions=True)

    async def _send_json(self, websocket: ServerConnection, msg_type: str, payload: Mapping[str, object]) -> None:
        try:
            await websocket.send(envelope(msg_type, payload))
        except websockets.ConnectionClosed:
            pass

    async def _send_error(self, websocket: ServerConnection, code: str, msg: str) -> None:
        await self._send_json(websocket, "error", {"code": code, "msg": msg})

    async def _read_message(self, websocket: ServerConnection) -> Optional[Dict[str, object]]:
        try:
            raw = await asyncio.wait_for(websocket.recv(), timeout=HELLO_TIMEOUT)
        except (asyncio.TimeoutError, websockets.ConnectionClosed):
            return None
        return decode(raw)
