from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional, Sequence, Union

from tourney_core.errors import NotFoundError
from tourney_core.messages import build_elimination_message, build_rebuy_message, build_round_message
from tourney_core.models import Dealer, EliminationRecord, Level, RebuyRecord, RoundRecord
from tourney_core.payloads import (
    EliminationRequest,
    RebuyRequest,
    RoundAnnouncement,
    parse_elimination_payload,
    parse_rebuy_payload,
    parse_round_payload,
)
from tourney_core.store import TournamentStateStore

from .dispatcher import NotificationDispatcher, NotifyResult

LOGGER = logging.getLogger("tourney_clock.announcer")

DEFAULT_ROUND_HISTORY = 20


@dataclass
class AnnounceResult:
    round: RoundRecord
    delivery: NotifyResult
    dealers: List[str]
    tables: List[str]

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"round": self.round.to_dict()}
        payload.update(self.delivery.to_dict())
        payload["dealers"] = list(self.dealers)
        payload["tables"] = list(self.tables)
        return payload


@dataclass
class RebuyResult:
    rebuy: RebuyRecord
    delivery: NotifyResult

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"rebuy": self.rebuy.to_dict()}
        payload.update(self.delivery.to_dict())
        return payload


@dataclass
class EliminationResult:
    elimination: EliminationRecord
    delivery: NotifyResult

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"elimination": self.elimination.to_dict()}
        payload.update(self.delivery.to_dict())
        return payload


def announcement_for_level(level: Level, index: Optional[int] = None) -> RoundAnnouncement:
    ordinal = level.ordinal if level.ordinal is not None else (index + 1 if index is not None else None)
    if level.is_break:
        return RoundAnnouncement(
            round="Break",
            name="Break",
            is_break=True,
            duration_minutes=level.duration_minutes,
        )
    return RoundAnnouncement(
        round=ordinal or 0,
        round_number=ordinal,
        name=f"Level {ordinal}" if ordinal else level.label,
        blinds=level.blinds,
        small_blind=level.small_blind,
        big_blind=level.big_blind,
        ante=level.ante,
        duration_minutes=level.duration_minutes,
    )


class RoundAnnouncer:
    """Records round/rebuy/elimination events and tells the right dealers."""

    def __init__(
        self,
        store: TournamentStateStore,
        dispatcher: NotificationDispatcher,
        history_limit: int = DEFAULT_ROUND_HISTORY,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.history_limit = max(1, history_limit)
        # round id -> dealer ids that acknowledged it, oldest round first.
        self._acks: "OrderedDict[str, List[str]]" = OrderedDict()
        self._rounds: Dict[str, RoundRecord] = {}

    # Rounds ----------------------------------------------------------

    async def announce_round(self, raw: Union[Mapping[str, object], RoundAnnouncement]) -> AnnounceResult:
        announcement = raw if isinstance(raw, RoundAnnouncement) else parse_round_payload(raw)
        return await self._announce(announcement)

    async def announce_level(
        self, level: Level, index: Optional[int] = None, *, start_time: Optional[str] = None
    ) -> AnnounceResult:
        announcement = announcement_for_level(level, index)
        if start_time:
            announcement = replace(announcement, start_time=start_time)
        return await self._announce(announcement)

    def target_dealers(self, tables: Sequence[str]) -> List[Dealer]:
        dealers = self.store.dealers()
        if not tables:
            return dealers
        wanted = {table.strip().casefold() for table in tables}
        return [dealer for dealer in dealers if dealer.table and dealer.table.strip().casefold() in wanted]

    async def _announce(self, announcement: RoundAnnouncement) -> AnnounceResult:
        targets = self.target_dealers(announcement.tables)
        record = self.store.record_round_change(announcement)
        self._remember(record)
        delivery = await self.dispatcher.notify(
            targets,
            build_round_message(record),
            {"round_id": record.id, "ack": True},
        )
        LOGGER.info(
            "Announced %s to %s dealer(s); failures=%s",
            record.title,
            len(delivery.notified),
            len(delivery.failures),
        )
        return AnnounceResult(
            round=record,
            delivery=delivery,
            dealers=[dealer.id for dealer in targets],
            tables=list(announcement.tables),
        )

    # Acknowledgements ------------------------------------------------

    def _remember(self, record: RoundRecord) -> None:
        self._acks[record.id] = []
        self._rounds[record.id] = record
        while len(self._acks) > self.history_limit:
            evicted, _ = self._acks.popitem(last=False)
            self._rounds.pop(evicted, None)

    def find_round(self, round_id: str) -> Optional[RoundRecord]:
        return self._rounds.get(round_id)

    def recent_rounds(self) -> List[RoundRecord]:
        return [self._rounds[round_id] for round_id in self._acks]

    def acknowledge(self, round_id: str, dealer_id: str) -> bool:
        acks = self._acks.get(round_id)
        if acks is None:
            return False
        if dealer_id not in acks:
            acks.append(dealer_id)
        return True

    def acknowledgements(self, round_id: str) -> List[str]:
        return list(self._acks.get(round_id, []))

    def reset(self) -> None:
        self._acks.clear()
        self._rounds.clear()

    # Rebuys and eliminations -----------------------------------------

    async def submit_rebuy(self, raw: Union[Mapping[str, object], RebuyRequest]) -> RebuyResult:
        request = raw if isinstance(raw, RebuyRequest) else parse_rebuy_payload(raw)
        dealer = self.store.find_dealer_by_table(request.table)
        if dealer is None:
            raise NotFoundError("DEALER_NOT_FOUND", f"No dealer is registered for table {request.table}.")
        # Logged under the dealer's own spelling of the table.
        record = self.store.record_rebuy(replace(request, table=dealer.table or request.table))
        delivery = await self.dispatcher.notify([dealer], build_rebuy_message(record))
        LOGGER.info("Rebuy at table %s for %s", record.table, record.player or "unknown player")
        return RebuyResult(rebuy=record, delivery=delivery)

    async def submit_elimination(
        self, raw: Union[Mapping[str, object], EliminationRequest]
    ) -> EliminationResult:
        request = raw if isinstance(raw, EliminationRequest) else parse_elimination_payload(raw)
        record = self.store.record_elimination(request)
        delivery = await self.dispatcher.notify(self.store.dealers(), build_elimination_message(record))
        LOGGER.info("Elimination recorded for %s", record.player)
        return EliminationResult(elimination=record, delivery=delivery)
