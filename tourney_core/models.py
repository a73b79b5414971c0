from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import ValidationError

RoundLabel = Union[int, str]

DEFAULT_TABLES = [str(idx) for idx in range(1, 11)]


def now_ts() -> str:
    return datetime.now(timezone.utc).isoformat()


def minutes_from_clock_text(value: object) -> Optional[int]:
    """Parse "MM:SS" (or a bare number of minutes) into whole minutes.

    Seconds are rounded half-up so "14:30" counts as 15. Returns None when the
    value holds no usable number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    match = re.fullmatch(r"(\d+)(?::(\d{1,2}))?", text)
    if not match:
        return None
    minutes = int(match.group(1))
    seconds = int(match.group(2) or 0)
    return minutes + (1 if seconds >= 30 else 0)


class ClockStatus(str, Enum):
    IDLE = "idle"
    READY = "ready"
    RUNNING = "running"
    PAUSED = "paused"
    FINISHED = "finished"


@dataclass(frozen=True)
class Level:
    # ordinal is None for breaks; blind fields stay 0 on a break.
    ordinal: Optional[int]
    is_break: bool
    duration_minutes: int
    small_blind: int = 0
    big_blind: int = 0
    ante: int = 0

    @property
    def duration_ms(self) -> int:
        return self.duration_minutes * 60_000

    @property
    def label(self) -> str:
        if self.is_break:
            return "Break"
        return f"Level {self.ordinal}"

    @property
    def blinds(self) -> Optional[str]:
        if self.is_break:
            return None
        return f"{self.small_blind}/{self.big_blind}"

    def to_dict(self) -> Dict[str, object]:
        return {
            "ordinal": self.ordinal,
            "isBreak": self.is_break,
            "label": self.label,
            "smallBlind": None if self.is_break else self.small_blind,
            "bigBlind": None if self.is_break else self.big_blind,
            "ante": None if self.is_break else self.ante,
            "durationMinutes": self.duration_minutes,
        }


@dataclass(frozen=True)
class ClockState:
    current_level_index: int
    remaining_ms: int
    running: bool
    status: ClockStatus

    def to_dict(self) -> Dict[str, object]:
        return {
            "currentLevelIndex": self.current_level_index,
            "remainingMs": self.remaining_ms,
            "running": self.running,
            "status": self.status.value,
        }


@dataclass
class Dealer:
    id: str
    endpoint_ref: str
    table: Optional[str] = None
    display_name: str = ""
    created_at: str = field(default_factory=now_ts)
    updated_at: str = field(default_factory=now_ts)

    @property
    def label(self) -> str:
        return self.display_name or self.id

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "endpointRef": self.endpoint_ref,
            "table": self.table,
            "displayName": self.display_name,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Dealer":
        dealer_id = str(raw["id"])
        table = raw.get("table")
        return cls(
            id=dealer_id,
            endpoint_ref=str(raw.get("endpointRef") or raw.get("chatId") or dealer_id),
            table=None if table is None else str(table),
            display_name=str(raw.get("displayName") or ""),
            created_at=str(raw.get("createdAt") or now_ts()),
            updated_at=str(raw.get("updatedAt") or now_ts()),
        )


@dataclass
class RoundRecord:
    id: str
    round: RoundLabel
    round_number: Optional[int] = None
    name: Optional[str] = None
    level_ordinal: Optional[int] = None
    is_break: bool = False
    blinds: Optional[str] = None
    small_blind: Optional[int] = None
    big_blind: Optional[int] = None
    ante: Optional[int] = None
    duration_minutes: Optional[int] = None
    start_time: Optional[str] = None
    notes: Optional[str] = None
    tables: List[str] = field(default_factory=list)
    updated_at: str = field(default_factory=now_ts)

    @property
    def title(self) -> str:
        if self.is_break:
            return "Break"
        return str(self.name or self.round)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "round": self.round,
            "roundNumber": self.round_number,
            "name": self.name,
            "levelOrdinal": self.level_ordinal,
            "isBreak": self.is_break,
            "blinds": self.blinds,
            "smallBlind": self.small_blind,
            "bigBlind": self.big_blind,
            "ante": self.ante,
            "durationMinutes": self.duration_minutes,
            "startTime": self.start_time,
            "notes": self.notes,
            "tables": list(self.tables),
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "RoundRecord":
        return cls(
            id=str(raw.get("id") or ""),
            round=raw.get("round") or raw.get("roundNumber") or raw.get("name") or "",
            round_number=raw.get("roundNumber"),
            name=raw.get("name"),
            level_ordinal=raw.get("levelOrdinal"),
            is_break=bool(raw.get("isBreak", False)),
            blinds=raw.get("blinds"),
            small_blind=raw.get("smallBlind"),
            big_blind=raw.get("bigBlind"),
            ante=raw.get("ante"),
            duration_minutes=raw.get("durationMinutes"),
            start_time=raw.get("startTime"),
            notes=raw.get("notes"),
            tables=[str(table) for table in raw.get("tables") or []],
            updated_at=str(raw.get("updatedAt") or now_ts()),
        )


@dataclass(frozen=True)
class RebuyRecord:
    table: str
    player: Optional[str] = None
    amount: Optional[int] = None
    notes: Optional[str] = None
    created_at: str = field(default_factory=now_ts)

    def to_dict(self) -> Dict[str, object]:
        return {
            "table": self.table,
            "player": self.player,
            "amount": self.amount,
            "notes": self.notes,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "RebuyRecord":
        return cls(
            table=str(raw.get("table") or ""),
            player=raw.get("player"),
            amount=raw.get("amount"),
            notes=raw.get("notes"),
            created_at=str(raw.get("createdAt") or now_ts()),
        )


@dataclass(frozen=True)
class EliminationRecord:
    player: str
    table: Optional[str] = None
    position: Optional[int] = None
    payout: Optional[int] = None
    notes: Optional[str] = None
    created_at: str = field(default_factory=now_ts)

    def to_dict(self) -> Dict[str, object]:
        return {
            "player": self.player,
            "table": self.table,
            "position": self.position,
            "payout": self.payout,
            "notes": self.notes,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "EliminationRecord":
        return cls(
            player=str(raw.get("player") or "Unknown"),
            table=raw.get("table"),
            position=raw.get("position"),
            payout=raw.get("payout"),
            notes=raw.get("notes"),
            created_at=str(raw.get("createdAt") or now_ts()),
        )


@dataclass
class TournamentState:
    dealers: Dict[str, Dealer] = field(default_factory=dict)
    current_round: Optional[RoundRecord] = None
    rebuys: List[RebuyRecord] = field(default_factory=list)
    eliminations: List[EliminationRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        # Dealers are keyed by id on disk, listed for API callers.
        return {
            "dealers": {key: dealer.to_dict() for key, dealer in self.dealers.items()},
            "currentRound": self.current_round.to_dict() if self.current_round else None,
            "rebuys": [record.to_dict() for record in self.rebuys],
            "eliminations": [record.to_dict() for record in self.eliminations],
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TournamentState":
        raw_dealers = raw.get("dealers") or {}
        if isinstance(raw_dealers, list):
            entries = raw_dealers
        else:
            entries = list(raw_dealers.values())
        dealers = {}
        for entry in entries:
            dealer = Dealer.from_dict(entry)
            dealers[dealer.id] = dealer
        current = raw.get("currentRound")
        rebuys = raw.get("rebuys")
        eliminations = raw.get("eliminations")
        return cls(
            dealers=dealers,
            current_round=RoundRecord.from_dict(current) if current else None,
            rebuys=[RebuyRecord.from_dict(item) for item in rebuys] if isinstance(rebuys, list) else [],
            eliminations=(
                [EliminationRecord.from_dict(item) for item in eliminations]
                if isinstance(eliminations, list)
                else []
            ),
        )


@dataclass(frozen=True)
class PrizeShare:
    rank: int
    percentage: float


DEFAULT_PRIZES = [
    PrizeShare(rank=1, percentage=50),
    PrizeShare(rank=2, percentage=30),
    PrizeShare(rank=3, percentage=20),
    PrizeShare(rank=4, percentage=0),
    PrizeShare(rank=5, percentage=0),
]


@dataclass
class TournamentConfig:
    title: str = "Big Tournament!"
    currency: str = "$"
    payout_places: int = 5
    starting_chips: int = 1500
    players: List[str] = field(default_factory=list)
    buy_in_value: int = 1500
    addon_value: int = 500
    rebuy_value: int = 1000
    round_time: str = "15:00"
    break_time: str = "10:00"
    prizes: List[PrizeShare] = field(default_factory=lambda: list(DEFAULT_PRIZES))
    tables: List[str] = field(default_factory=lambda: list(DEFAULT_TABLES))

    @property
    def round_minutes(self) -> Optional[int]:
        return minutes_from_clock_text(self.round_time)

    @property
    def break_minutes(self) -> Optional[int]:
        return minutes_from_clock_text(self.break_time)

    def to_dict(self) -> Dict[str, object]:
        return {
            "title": self.title,
            "currency": self.currency,
            "payoutPlaces": self.payout_places,
            "startingChips": self.starting_chips,
            "players": list(self.players),
            "buyInValue": self.buy_in_value,
            "addonValue": self.addon_value,
            "rebuyValue": self.rebuy_value,
            "roundTime": self.round_time,
            "breakTime": self.break_time,
            "prizes": [{"rank": share.rank, "percentage": share.percentage} for share in self.prizes],
            "tables": list(self.tables),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TournamentConfig":
        defaults = cls()
        players_raw = raw.get("players", defaults.players)
        if isinstance(players_raw, str):
            players = [name.strip() for name in re.split(r"\n|,", players_raw) if name.strip()]
        elif players_raw is not None and not isinstance(players_raw, list):
            raise ValidationError("BAD_CONFIG", "players must be text or a list of names.")
        else:
            players = [str(name).strip() for name in players_raw or [] if str(name).strip()]
        payout_places = _int_or(raw.get("payoutPlaces"), defaults.payout_places)
        prizes_raw = raw.get("prizes")
        if prizes_raw is None:
            prizes = list(defaults.prizes)
        else:
            if not isinstance(prizes_raw, list) or not all(isinstance(item, Mapping) for item in prizes_raw):
                raise ValidationError("BAD_CONFIG", "prizes must be a list of {rank, percentage} objects.")
            prizes = [
                PrizeShare(rank=_int_or(item.get("rank"), idx + 1), percentage=_float_or(item.get("percentage"), 0.0))
                for idx, item in enumerate(prizes_raw)
            ]
        # The settings page keeps one prize row per payout place.
        if len(prizes) < payout_places:
            prizes.extend(PrizeShare(rank=idx + 1, percentage=0) for idx in range(len(prizes), payout_places))
        else:
            prizes = prizes[:payout_places]
        tables_raw = raw.get("tables")
        if isinstance(tables_raw, str):
            tables_raw = tables_raw.split(",")
        elif tables_raw is not None and not isinstance(tables_raw, list):
            raise ValidationError("BAD_CONFIG", "tables must be text or a list.")
        tables = normalize_table_choices(tables_raw or defaults.tables)
        return cls(
            title=str(raw.get("title") or defaults.title),
            currency=str(raw.get("currency") if raw.get("currency") is not None else defaults.currency),
            payout_places=payout_places,
            starting_chips=_int_or(raw.get("startingChips"), defaults.starting_chips),
            players=players,
            buy_in_value=_int_or(raw.get("buyInValue"), defaults.buy_in_value),
            addon_value=_int_or(raw.get("addonValue"), defaults.addon_value),
            rebuy_value=_int_or(raw.get("rebuyValue"), defaults.rebuy_value),
            round_time=str(raw.get("roundTime") or defaults.round_time),
            break_time=str(raw.get("breakTime") or defaults.break_time),
            prizes=prizes,
            tables=tables,
        )


def normalize_table(table: object) -> Optional[str]:
    if table is None:
        return None
    text = str(table).strip()
    return text or None


def normalize_table_choices(tables: List[object]) -> List[str]:
    seen: List[str] = []
    for table in tables:
        normalized = normalize_table(table)
        if normalized and normalized not in seen:
            seen.append(normalized)
    return seen or list(DEFAULT_TABLES)


def _int_or(value: object, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def _float_or(value: object, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
