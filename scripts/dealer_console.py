#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any, Dict, Optional

import websockets
from websockets.asyncio.client import ClientConnection

logging.basicConfig(level=logging.INFO)

# DealerConsole is what a dealer's chat client does, driven from a terminal:
# table pick, menu, rebuy/elimination follow-ups and round acks.

COMMANDS = {"TABLES", "ASSIGN", "UNASSIGN", "TABLE", "STATUS", "MENU", "REBUY", "ELIMINATION", "CANCEL", "RECENT", "ACK"}


class DealerConsole:
    def __init__(self, dealer_id: str, name: str, url: str) -> None:
        self.dealer_id = dealer_id
        self.name = name
        self.url = url
        self.websocket: Optional[ClientConnection] = None
        self.pending: Optional[str] = None
        self.last_round_id: Optional[str] = None

    async def run(self) -> None:
        async with websockets.connect(self.url) as ws:
            self.websocket = ws
            await self._send({"type": "hello", "v": 1, "role": "dealer", "id": self.dealer_id, "displayName": self.name})
            reader = asyncio.create_task(self._read_loop())
            try:
                await self._input_loop()
            finally:
                reader.cancel()

    async def _read_loop(self) -> None:
        assert self.websocket is not None
        async for raw in self.websocket:
            self._print_message(json.loads(raw))

    async def _input_loop(self) -> None:
        print("Commands: " + ", ".join(sorted(COMMANDS)) + " (h=help, q=quit)")
        while True:
            line = (await asyncio.to_thread(input, "> ")).strip()
            if not line:
                continue
            if line.lower() in ("q", "quit"):
                return
            if line.lower() == "h":
                self._print_help()
                continue
            if self.pending:
                text = await self._collect_text(line)
                await self._send({"type": "text", "v": 1, "text": text})
                self.pending = None
                continue
            payload = self._parse_command(line)
            if payload is None:
                print("Unknown command. Type h for help.")
                continue
            await self._send(payload)

    async def _collect_text(self, first_line: str) -> str:
        # Free text ends with an empty line.
        lines = [first_line]
        while True:
            line = (await asyncio.to_thread(input, ". ")).rstrip()
            if not line:
                return "\n".join(lines)
            lines.append(line)

    def _parse_command(self, line: str) -> Optional[Dict[str, Any]]:
        command, _, argument = line.partition(" ")
        command = command.upper()
        if command not in COMMANDS:
            return None
        payload: Dict[str, Any] = {"type": "command", "v": 1, "command": command}
        if command == "ASSIGN":
            payload["table"] = argument.strip()
        elif command == "ACK":
            payload["round_id"] = argument.strip() or self.last_round_id
        return payload

    def _print_help(self) -> None:
        print("ASSIGN <table>   claim a table")
        print("REBUY | ELIMINATION   then type player, amount/position and notes; end with an empty line")
        print("ACK [round_id]   acknowledge the last (or given) round announcement")
        print("STATUS, TABLE, TABLES, MENU, RECENT, CANCEL, UNASSIGN")

    def _print_message(self, msg: Dict[str, Any]) -> None:
        msg_type = msg.get("type")
        print(f"\n>>> {str(msg_type).upper()}")
        if msg_type == "welcome":
            print(f"{msg.get('title')} | you: {json.dumps(msg.get('dealer'))}")
            self._print_tables(msg.get("tables", []))
        elif msg_type == "tables":
            self._print_tables(msg.get("tables", []))
        elif msg_type == "notify":
            print(msg.get("message"))
            if msg.get("ack"):
                self.last_round_id = msg.get("round_id")
                print(f"(ACK to confirm round {self.last_round_id})")
        elif msg_type == "prompt":
            self.pending = msg.get("pending")
            print(msg.get("message"))
        elif msg_type == "menu":
            print(" | ".join(msg.get("options", [])))
        elif msg_type == "error":
            print(f"Error {msg.get('code')}: {msg.get('msg')}")
        elif "message" in msg:
            print(msg["message"])
        else:
            print(json.dumps({k: v for k, v in msg.items() if k not in {"type", "v", "ts"}}, indent=2))

    def _print_tables(self, tables: Any) -> None:
        print("Tables: " + ", ".join(f"{entry['table']} ({entry['status']})" for entry in tables))

    async def _send(self, payload: Dict[str, Any]) -> None:
        assert self.websocket is not None
        await self.websocket.send(json.dumps(payload))


def main() -> None:
    parser = argparse.ArgumentParser(description="Terminal dealer client for the tournament hub")
    parser.add_argument("--id", required=True, help="Dealer id")
    parser.add_argument("--name", default="", help="Display name shown to other dealers")
    parser.add_argument("--url", default="ws://localhost:8765")
    args = parser.parse_args()

    console = DealerConsole(args.id, args.name, args.url)
    try:
        asyncio.run(console.run())
    except KeyboardInterrupt:
        print("\nBye")


if __name__ == "__main__":
    main()
