from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from tourney_core.errors import ConflictError, NotFoundError, ValidationError
from tourney_core.freetext import parse_rebuy_free_text
from tourney_core.messages import build_status_message
from tourney_core.models import Dealer, normalize_table
from tourney_core.payloads import DealerAssignment, optional_text
from tourney_core.store import TournamentStateStore

from .session import PENDING_ELIMINATION, PENDING_REBUY, TournamentSession

LOGGER = logging.getLogger("tourney_clock.commands")

Reply = Tuple[str, Dict[str, object]]

MENU_OPTIONS = ["REBUY", "ELIMINATION", "RECENT"]

PROMPTS = {
    PENDING_REBUY: "Send the player name on the first line, the rebuy amount on the second and any notes below.",
    PENDING_ELIMINATION: "Send the player name on the first line, the finishing position on the second and any notes below.",
}


@dataclass(frozen=True)
class DealerContext:
    """Who is talking: the identity the hub learned from the hello frame."""

    id: str
    endpoint_ref: str
    display_name: str = ""


class DealerCommands:
    """Chat-style command layer for dealers, independent of the transport.

    Each call returns the replies to send back as (type, payload) pairs.
    Rejected commands raise TournamentError; the caller turns that into an
    error frame.
    """

    def __init__(self, session: TournamentSession) -> None:
        self.session = session

    @property
    def store(self) -> TournamentStateStore:
        return self.session.store

    async def handle(self, dealer: DealerContext, message: Mapping[str, object]) -> List[Reply]:
        if message.get("type") == "text":
            return await self.handle_text(dealer, message.get("text"))
        command = str(message.get("command") or "").strip().upper()
        handler = getattr(self, f"_cmd_{command.lower()}", None) if command else None
        if handler is None:
            raise ValidationError("UNKNOWN_COMMAND", f"Unknown command: {command or '(empty)'}")
        return await handler(dealer, message)

    # Tables ----------------------------------------------------------

    def table_choices(self, dealer_id: str) -> List[Dict[str, object]]:
        choices = []
        for table in self.session.tables:
            owner = self.store.find_dealer_by_table(table)
            if owner is None:
                status = "free"
            elif owner.id == dealer_id:
                status = "you"
            else:
                status = "taken"
            choices.append({"table": table, "status": status, "dealer": owner.label if owner else None})
        return choices

    def _resolve_table(self, raw: object) -> str:
        wanted = normalize_table(raw)
        if wanted is None:
            raise ValidationError("TABLE_REQUIRED", "Pick a table first.")
        for table in self.session.tables:
            if table.casefold() == wanted.casefold():
                return table
        raise ValidationError("UNKNOWN_TABLE", f"Table {wanted} is not one of the tournament tables.")

    def _assigned(self, dealer: DealerContext) -> Dealer:
        record = self.store.get_dealer(dealer.id)
        if record is None or not record.table:
            raise NotFoundError("NOT_ASSIGNED", "You are not assigned to a table yet.")
        return record

    async def _cmd_tables(self, dealer: DealerContext, message: Mapping[str, object]) -> List[Reply]:
        return [("tables", {"tables": self.table_choices(dealer.id)})]

    async def _cmd_assign(self, dealer: DealerContext, message: Mapping[str, object]) -> List[Reply]:
        table = self._resolve_table(message.get("table"))
        owner = self.store.find_dealer_by_table(table)
        if owner is not None and owner.id != dealer.id:
            LOGGER.warning("Dealer %s tried to take table %s from %s", dealer.id, table, owner.id)
            raise ConflictError("TABLE_TAKEN", f"Table {table} is already assigned to {owner.label}.")
        record = self.store.assign_dealer(
            DealerAssignment(
                id=dealer.id,
                endpoint_ref=dealer.endpoint_ref,
                table=table,
                display_name=dealer.display_name,
            )
        )
        return [
            ("assigned", {"dealer": record.to_dict(), "message": f"You are now assigned to table {table}."}),
            ("menu", {"options": list(MENU_OPTIONS)}),
        ]

    async def _cmd_unassign(self, dealer: DealerContext, message: Mapping[str, object]) -> List[Reply]:
        removed = self.store.unassign_dealer(dealer.id)
        self.session.pending_actions.pop(dealer.id, None)
        if removed is None:
            return [("unassigned", {"dealer": None, "message": "You are not assigned to a table."})]
        return [
            (
                "unassigned",
                {"dealer": removed.to_dict(), "message": f"You have been removed from table {removed.table}."},
            )
        ]

    async def _cmd_table(self, dealer: DealerContext, message: Mapping[str, object]) -> List[Reply]:
        record = self.store.get_dealer(dealer.id)
        if record is None or not record.table:
            return [("table", {"table": None, "message": "You are not assigned to a table."})]
        return [("table", {"table": record.table, "message": f"You are assigned to table {record.table}."})]

    # Tournament info -------------------------------------------------

    async def _cmd_status(self, dealer: DealerContext, message: Mapping[str, object]) -> List[Reply]:
        current = self.store.current_round
        clock = self.session.snapshot()
        remaining = self.session.clock.remaining_ms if self.session.clock.current_level else None
        return [
            (
                "status",
                {
                    "round": current.to_dict() if current else None,
                    "clock": clock,
                    "message": build_status_message(current, remaining),
                },
            )
        ]

    async def _cmd_menu(self, dealer: DealerContext, message: Mapping[str, object]) -> List[Reply]:
        self._assigned(dealer)
        return [("menu", {"options": list(MENU_OPTIONS)})]

    async def _cmd_recent(self, dealer: DealerContext, message: Mapping[str, object]) -> List[Reply]:
        return [("recent", self.store.recent_activity(10))]

    # Free-text follow-ups --------------------------------------------

    async def _arm(self, dealer: DealerContext, pending: str) -> List[Reply]:
        self._assigned(dealer)
        self.session.pending_actions[dealer.id] = pending
        return [("prompt", {"pending": pending, "message": PROMPTS[pending]})]

    async def _cmd_rebuy(self, dealer: DealerContext, message: Mapping[str, object]) -> List[Reply]:
        return await self._arm(dealer, PENDING_REBUY)

    async def _cmd_elimination(self, dealer: DealerContext, message: Mapping[str, object]) -> List[Reply]:
        return await self._arm(dealer, PENDING_ELIMINATION)

    async def _cmd_cancel(self, dealer: DealerContext, message: Mapping[str, object]) -> List[Reply]:
        previous = self.session.pending_actions.pop(dealer.id, None)
        return [("cancelled", {"pending": previous})]

    async def handle_text(self, dealer: DealerContext, text: object) -> List[Reply]:
        pending = self.session.pending_actions.get(dealer.id)
        if pending is None:
            raise ValidationError("NO_PENDING_ACTION", "Pick REBUY or ELIMINATION from the menu first.")
        record = self._assigned(dealer)
        entry = parse_rebuy_free_text(optional_text(text))
        self.session.pending_actions.pop(dealer.id, None)
        if pending == PENDING_REBUY:
            rebuy = await self.session.announcer.submit_rebuy(entry.to_rebuy(record.table or ""))
            return [("rebuy", rebuy.to_dict())]
        elimination = await self.session.announcer.submit_elimination(entry.to_elimination(record.table))
        return [("elimination", elimination.to_dict())]

    # Acknowledgements ------------------------------------------------

    async def _cmd_ack(self, dealer: DealerContext, message: Mapping[str, object]) -> List[Reply]:
        round_id: Optional[str] = optional_text(message.get("round_id") or message.get("roundId"))
        if not round_id:
            raise ValidationError("ROUND_REQUIRED", "round_id is required to acknowledge a round.")
        if not self.session.announcer.acknowledge(round_id, dealer.id):
            raise NotFoundError("ROUND_UNKNOWN", f"Round {round_id} is no longer tracked.")
        return [
            (
                "acknowledged",
                {"round_id": round_id, "acknowledgements": self.session.announcer.acknowledgements(round_id)},
            )
        ]
