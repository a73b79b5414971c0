from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from .errors import ValidationError
from .models import RoundLabel, normalize_table

# Raw request bodies arrive with several spellings per field. Everything in
# this module runs once at the boundary (HTTP handler or dealer command) and
# hands the rest of the system one canonical record per payload kind.

ROUND_ID_ALIASES = ("round", "roundNumber", "round_number", "name")
SMALL_BLIND_ALIASES = ("sb", "small_blind", "smallBlind")
BIG_BLIND_ALIASES = ("bb", "big_blind", "bigBlind")
BREAK_ALIASES = ("break", "isBreak", "is_break")
ENDPOINT_ALIASES = ("endpointRef", "endpoint_ref", "chatId", "chat_id")
DISPLAY_NAME_ALIASES = ("displayName", "display_name", "name")

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")
_NOT_NUMERIC = re.compile(r"[^0-9.\-]")


def first_present(raw: Mapping[str, Any], aliases: Sequence[str]) -> Any:
    """Return the value of the first alias present (and not None) in raw."""
    for key in aliases:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def parse_int(value: object) -> int:
    # Lenient integer read: leading digits win, anything unusable is 0.
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else 0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def minutes_from_ms(value: object) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        millis = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if not math.isfinite(millis):
        return None
    return round_half_up(millis / 60_000)


def parse_amount(value: object) -> Optional[int]:
    """Read a chip/currency figure such as 1000, "1,000" or "$1000".

    These figures are optional, so anything unreadable comes back as None
    instead of failing the whole request.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return round_half_up(value) if math.isfinite(value) else None
    text = str(value).strip()
    if not text:
        return None
    cleaned = _NOT_NUMERIC.sub("", text)
    try:
        figure = float(cleaned)
    except ValueError:
        return None
    return round_half_up(figure) if math.isfinite(figure) else None


def optional_text(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def is_truthy(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().casefold() in {"1", "true", "yes", "on"}
    return bool(value)


def _is_blank_identifier(value: object) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (int, float)):
        return value == 0
    return False


def parse_tables(raw: Mapping[str, Any]) -> List[str]:
    tables_raw = raw.get("tables")
    if tables_raw is None and raw.get("table") is not None:
        tables_raw = [raw.get("table")]
    if tables_raw is None:
        return []
    if isinstance(tables_raw, str):
        tables_raw = tables_raw.split(",")
    elif not isinstance(tables_raw, (list, tuple)):
        tables_raw = [tables_raw]
    tables: List[str] = []
    seen = set()
    for entry in tables_raw:
        table = normalize_table(entry)
        if table is None or table.casefold() in seen:
            continue
        seen.add(table.casefold())
        tables.append(table)
    return tables


@dataclass(frozen=True)
class DealerAssignment:
    id: str
    endpoint_ref: str
    table: Optional[str]
    display_name: str = ""


@dataclass(frozen=True)
class RoundAnnouncement:
    round: RoundLabel
    round_number: Optional[int] = None
    name: Optional[str] = None
    is_break: bool = False
    blinds: Optional[str] = None
    small_blind: Optional[int] = None
    big_blind: Optional[int] = None
    ante: Optional[int] = None
    duration_minutes: Optional[int] = None
    tables: List[str] = field(default_factory=list)
    start_time: Optional[str] = None
    notes: Optional[str] = None
    id: Optional[str] = None

    @property
    def level_ordinal(self) -> Optional[int]:
        return None if self.is_break else self.round_number


@dataclass(frozen=True)
class RebuyRequest:
    table: str
    player: Optional[str] = None
    amount: Optional[int] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class EliminationRequest:
    player: str
    table: Optional[str] = None
    position: Optional[int] = None
    payout: Optional[int] = None
    notes: Optional[str] = None


def _require_mapping(raw: object) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise ValidationError("BAD_SCHEMA", "Request body must be a JSON object.")
    return raw


def _dealer_display_name(raw: Mapping[str, Any]) -> str:
    explicit = optional_text(first_present(raw, DISPLAY_NAME_ALIASES))
    if explicit:
        return explicit
    parts = [optional_text(raw.get("firstName")), optional_text(raw.get("lastName"))]
    joined = " ".join(part for part in parts if part)
    if joined:
        return joined
    username = optional_text(raw.get("username"))
    return f"@{username}" if username else ""


def parse_dealer_payload(raw: object, *, require_table: bool = True) -> DealerAssignment:
    body = _require_mapping(raw)
    dealer_id = optional_text(body.get("id"))
    table = normalize_table(body.get("table"))
    if not dealer_id or (require_table and not table):
        raise ValidationError("DEALER_FIELDS_REQUIRED", "Both id and table are required to assign a dealer.")
    endpoint = optional_text(first_present(body, ENDPOINT_ALIASES)) or dealer_id
    return DealerAssignment(
        id=dealer_id,
        endpoint_ref=endpoint,
        table=table,
        display_name=_dealer_display_name(body),
    )


def _round_number(raw: Mapping[str, Any], label: RoundLabel, is_break: bool) -> Optional[int]:
    explicit = first_present(raw, ("roundNumber", "round_number"))
    if explicit is not None and not isinstance(explicit, bool):
        number = parse_int(explicit)
        return number or None
    if is_break:
        return None
    if isinstance(label, int) and not isinstance(label, bool):
        return label
    if isinstance(label, str) and label.strip().isdigit():
        return int(label.strip())
    return None


def parse_round_payload(raw: object) -> RoundAnnouncement:
    body = _require_mapping(raw)
    identifier = first_present(body, ROUND_ID_ALIASES)
    if _is_blank_identifier(identifier):
        raise ValidationError(
            "ROUND_REQUIRED",
            "A round identifier (round, roundNumber, or name) is required.",
        )
    label: RoundLabel = identifier if isinstance(identifier, int) else str(identifier).strip()
    is_break = is_truthy(first_present(body, BREAK_ALIASES))

    small_raw = first_present(body, SMALL_BLIND_ALIASES)
    big_raw = first_present(body, BIG_BLIND_ALIASES)
    small_blind = None if small_raw is None else parse_int(small_raw)
    big_blind = None if big_raw is None else parse_int(big_raw)
    # A combined "blinds" string beats the separate fields.
    blinds = optional_text(body.get("blinds"))
    if blinds is None and not is_break and (small_blind is not None or big_blind is not None):
        blinds = f"{small_blind or 0}/{big_blind or 0}"

    ante_raw = body.get("ante")
    ante = None if ante_raw is None else parse_int(ante_raw)

    duration_raw = first_present(body, ("durationMinutes", "duration_minutes"))
    if duration_raw is not None:
        duration_minutes: Optional[int] = parse_int(duration_raw)
    else:
        duration_minutes = minutes_from_ms(first_present(body, ("durationMs", "duration_ms")))

    return RoundAnnouncement(
        round=label,
        round_number=_round_number(body, label, is_break),
        name=optional_text(body.get("name")),
        is_break=is_break,
        blinds=blinds,
        small_blind=small_blind,
        big_blind=big_blind,
        ante=ante,
        duration_minutes=duration_minutes,
        tables=parse_tables(body),
        start_time=optional_text(first_present(body, ("startTime", "start_time"))),
        notes=optional_text(body.get("notes")),
        id=optional_text(body.get("id")),
    )


def parse_rebuy_payload(raw: object) -> RebuyRequest:
    body = _require_mapping(raw)
    table = normalize_table(body.get("table"))
    if not table:
        raise ValidationError("TABLE_REQUIRED", "Table is required for a rebuy request.")
    return RebuyRequest(
        table=table,
        player=optional_text(body.get("player")),
        amount=parse_amount(body.get("amount")),
        notes=optional_text(body.get("notes")),
    )


def parse_elimination_payload(raw: object) -> EliminationRequest:
    body = _require_mapping(raw)
    player = optional_text(body.get("player"))
    if not player:
        raise ValidationError("PLAYER_REQUIRED", "Player name is required for eliminations.")
    return EliminationRequest(
        player=player,
        table=normalize_table(body.get("table")),
        position=parse_amount(body.get("position")),
        payout=parse_amount(body.get("payout")),
        notes=optional_text(body.get("notes")),
    )
