from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

from .errors import PersistenceError
from .models import (
    Dealer,
    EliminationRecord,
    RebuyRecord,
    RoundRecord,
    TournamentState,
    normalize_table,
    now_ts,
)
from .payloads import DealerAssignment, EliminationRequest, RebuyRequest, RoundAnnouncement

LOGGER = logging.getLogger("tourney_clock.store")

# The store is the single source of truth shared by the HTTP API and the
# dealer hub. Every mutation updates memory first, then rewrites the whole
# document through the backend. A crash in the middle of a write can leave a
# truncated file behind; the write rate is low and there is one writer.


class StateBackend(Protocol):
    def load(self) -> Optional[Dict[str, Any]]:
        ...

    def save(self, document: Dict[str, Any]) -> None:
        ...


class MemoryBackend:
    """Keeps the last saved document in memory (tests, --state-file '')."""

    def __init__(self, document: Optional[Dict[str, Any]] = None) -> None:
        self.document = document
        self.saves = 0

    def load(self) -> Optional[Dict[str, Any]]:
        return json.loads(json.dumps(self.document)) if self.document is not None else None

    def save(self, document: Dict[str, Any]) -> None:
        self.document = json.loads(json.dumps(document))
        self.saves += 1


class JsonFileBackend:
    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Cannot read {self.path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise PersistenceError(f"{self.path} does not hold a JSON object")
        return raw

    def save(self, document: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Cannot write {self.path}: {exc}") from exc


class TournamentStateStore:
    def __init__(self, backend: Optional[StateBackend] = None) -> None:
        self.backend: StateBackend = backend if backend is not None else MemoryBackend()
        self.state = TournamentState()
        self.last_persist_error: Optional[str] = None
        self._load()

    # Persistence -----------------------------------------------------

    def _load(self) -> None:
        try:
            document = self.backend.load()
            if document:
                self.state = TournamentState.from_dict(document)
        except (PersistenceError, KeyError, TypeError, ValueError, AttributeError) as exc:
            LOGGER.error("Failed to load persisted state, starting empty: %s", exc)
            self.state = TournamentState()
            return
        LOGGER.info(
            "Loaded state: dealers=%s rebuys=%s eliminations=%s",
            len(self.state.dealers),
            len(self.state.rebuys),
            len(self.state.eliminations),
        )

    def _save(self) -> None:
        # Memory stays authoritative when the write fails; nothing is retried.
        try:
            self.backend.save(self.state.to_dict())
        except PersistenceError as exc:
            self.last_persist_error = exc.msg
            LOGGER.exception("Failed to persist state: %s", exc.msg)
            return
        self.last_persist_error = None

    # Dealers ---------------------------------------------------------

    def dealers(self) -> List[Dealer]:
        return list(self.state.dealers.values())

    def get_dealer(self, dealer_id: object) -> Optional[Dealer]:
        return self.state.dealers.get(str(dealer_id))

    def assign_dealer(self, assignment: DealerAssignment) -> Dealer:
        # Table conflicts are checked by callers; the store only upserts.
        now = now_ts()
        dealer_id = str(assignment.id)
        existing = self.state.dealers.get(dealer_id)
        dealer = Dealer(
            id=dealer_id,
            endpoint_ref=assignment.endpoint_ref or dealer_id,
            table=normalize_table(assignment.table),
            display_name=assignment.display_name or (existing.display_name if existing else ""),
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self.state.dealers[dealer_id] = dealer
        self._save()
        LOGGER.info("Dealer %s assigned to table %s", dealer.label, dealer.table)
        return dealer

    def unassign_dealer(self, dealer_id: object) -> Optional[Dealer]:
        removed = self.state.dealers.pop(str(dealer_id), None)
        if removed is not None:
            self._save()
            LOGGER.info("Dealer %s unassigned from table %s", removed.label, removed.table)
        return removed

    def find_dealer_by_table(self, table: object) -> Optional[Dealer]:
        wanted = normalize_table(table)
        if wanted is None:
            return None
        key = wanted.casefold()
        for dealer in self.state.dealers.values():
            if dealer.table is not None and dealer.table.strip().casefold() == key:
                return dealer
        return None

    # Tournament events -----------------------------------------------

    def record_round_change(self, announcement: RoundAnnouncement) -> RoundRecord:
        record = RoundRecord(
            id=announcement.id or uuid.uuid4().hex,
            round=announcement.round,
            round_number=announcement.round_number,
            name=announcement.name,
            level_ordinal=announcement.level_ordinal,
            is_break=announcement.is_break,
            blinds=announcement.blinds,
            small_blind=announcement.small_blind,
            big_blind=announcement.big_blind,
            ante=announcement.ante,
            duration_minutes=announcement.duration_minutes,
            start_time=announcement.start_time,
            notes=announcement.notes,
            tables=list(announcement.tables),
            updated_at=now_ts(),
        )
        self.state.current_round = record
        self._save()
        return record

    def record_rebuy(self, request: RebuyRequest) -> RebuyRecord:
        record = RebuyRecord(
            table=request.table,
            player=request.player,
            amount=request.amount,
            notes=request.notes,
            created_at=now_ts(),
        )
        self.state.rebuys.append(record)
        self._save()
        return record

    def record_elimination(self, request: EliminationRequest) -> EliminationRecord:
        record = EliminationRecord(
            player=request.player,
            table=request.table,
            position=request.position,
            payout=request.payout,
            notes=request.notes,
            created_at=now_ts(),
        )
        self.state.eliminations.append(record)
        self._save()
        return record

    # Read side -------------------------------------------------------

    @property
    def current_round(self) -> Optional[RoundRecord]:
        return self.state.current_round

    def get_state(self) -> Dict[str, object]:
        current = self.state.current_round
        return {
            "dealers": [dealer.to_dict() for dealer in self.state.dealers.values()],
            "currentRound": current.to_dict() if current else None,
            "rebuys": [record.to_dict() for record in self.state.rebuys],
            "eliminations": [record.to_dict() for record in self.state.eliminations],
        }

    def recent_activity(self, limit: int = 10) -> Dict[str, List[Dict[str, object]]]:
        rebuys = self.state.rebuys[-limit:] if limit > 0 else []
        eliminations = self.state.eliminations[-limit:] if limit > 0 else []
        return {
            "rebuys": [record.to_dict() for record in reversed(rebuys)],
            "eliminations": [record.to_dict() for record in reversed(eliminations)],
        }

