import argparse
import asyncio
import json
import logging
import os
from typing import Any, Optional

import uvicorn

from tourney_core.models import TournamentConfig, normalize_table_choices
from tourney_core.store import JsonFileBackend, MemoryBackend, TournamentStateStore

from .api import create_app
from .dispatcher import NotificationDispatcher, TransportRouter, WebhookTransport, WebSocketTransport
from .server import DealerHub
from .session import TournamentSession

LOGGER = logging.getLogger("tourney_clock")


def _load_json(parser: argparse.ArgumentParser, path: Optional[str]) -> Any:
    if not path:
        return None
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle)
    except (OSError, ValueError) as exc:
        parser.error(f"could not read {path}: {exc}")


async def run(args: argparse.Namespace, config: TournamentConfig, structure: Any) -> None:
    backend = JsonFileBackend(args.state_file) if args.state_file else MemoryBackend()
    store = TournamentStateStore(backend)
    webhook = WebhookTransport()
    router = TransportRouter(webhook=webhook)
    session = TournamentSession(
        store,
        NotificationDispatcher(router),
        config=config,
        structure=structure,
        tick_interval=args.tick_ms / 1000,
    )
    hub = DealerHub(session)
    router.websocket = WebSocketTransport(hub)
    session.set_tick_listener(hub.broadcast_clock)

    server = uvicorn.Server(
        uvicorn.Config(create_app(session), host=args.host, port=args.port, log_level=args.log_level.lower())
    )
    try:
        async with hub.serving(args.host, args.ws_port):
            LOGGER.info("HTTP API listening on %s:%s", args.host, args.port)
            await server.serve()
    finally:
        await session.close()
        await webhook.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Poker tournament clock and dealer coordination server")
    parser.add_argument("--host", default=os.environ.get("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", 3000)), help="HTTP API port")
    parser.add_argument(
        "--ws-port",
        type=int,
        default=int(os.environ.get("WS_PORT", 8765)),
        help="Dealer hub WebSocket port",
    )
    parser.add_argument(
        "--state-file",
        default=os.environ.get("TOURNAMENT_STATE_FILE", "tournament-state.json"),
        help="JSON document holding dealers and tournament events (empty keeps state in memory)",
    )
    parser.add_argument(
        "--tables",
        default=os.environ.get("TOURNAMENT_TABLES"),
        help="Comma separated table names offered to dealers (default 1..10)",
    )
    parser.add_argument("--structure", help="JSON file with the blind structure (list of levels)")
    parser.add_argument("--config", help="JSON file with tournament settings")
    parser.add_argument("--tick-ms", type=int, default=1000, help="Clock tick interval in milliseconds")
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "INFO"))
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    if args.tick_ms <= 0:
        parser.error("--tick-ms must be positive")
    raw_config = _load_json(parser, args.config) or {}
    if not isinstance(raw_config, dict):
        parser.error("--config must hold a JSON object")
    config = TournamentConfig.from_dict(raw_config)
    if args.tables:
        config.tables = normalize_table_choices(args.tables.split(","))
    structure = _load_json(parser, args.structure)
    if isinstance(structure, dict):
        structure = structure.get("levels")
    if structure is not None and not isinstance(structure, list):
        parser.error("--structure must hold a list of levels")

    try:
        asyncio.run(run(args, config, structure))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
