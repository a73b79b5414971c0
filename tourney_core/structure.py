from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import ValidationError
from .models import Level
from .payloads import (
    BIG_BLIND_ALIASES,
    BREAK_ALIASES,
    SMALL_BLIND_ALIASES,
    first_present,
    is_truthy,
    minutes_from_ms,
    parse_int,
)

# Structure definitions come from the settings page (or a JSON file) and are
# loose: aliased keys, stale round numbers, breaks mixed in. normalize() turns
# them into the ordered Level list the clock runs on.

DURATION_MINUTE_ALIASES = ("time", "durationMinutes", "duration_minutes", "duration")
DURATION_MS_ALIASES = ("durationMs", "duration_ms")

RawLevelEntry = Mapping[str, Any]

DEFAULT_STRUCTURE: List[Dict[str, Any]] = [
    {"round": 1, "ante": 0, "sb": 100, "bb": 100, "time": 15},
    {"round": 2, "ante": 0, "sb": 100, "bb": 200, "time": 15},
    {"round": 3, "ante": 0, "sb": 100, "bb": 300, "time": 15},
    {"round": 4, "ante": 0, "sb": 200, "bb": 400, "time": 15},
    {"round": 5, "ante": 0, "sb": 200, "bb": 500, "time": 15},
    {"round": 6, "ante": 0, "sb": 300, "bb": 600, "time": 15},
    {"round": 7, "ante": 0, "sb": 400, "bb": 800, "time": 15},
    {"break": True, "time": 10},
    {"round": 8, "ante": 1000, "sb": 500, "bb": 1000, "time": 15},
    {"round": 9, "ante": 1200, "sb": 600, "bb": 1200, "time": 15},
    {"round": 10, "ante": 1600, "sb": 800, "bb": 1600, "time": 15},
    {"round": 11, "ante": 2000, "sb": 1000, "bb": 2000, "time": 15},
    {"round": 12, "ante": 2400, "sb": 1200, "bb": 2400, "time": 15},
    {"round": 13, "ante": 3000, "sb": 1500, "bb": 3000, "time": 15},
    {"round": 14, "ante": 4000, "sb": 2000, "bb": 4000, "time": 15},
    {"round": 15, "ante": 5000, "sb": 2500, "bb": 5000, "time": 15},
    {"round": 16, "ante": 6000, "sb": 3000, "bb": 6000, "time": 15},
    {"round": 17, "ante": 8000, "sb": 4000, "bb": 8000, "time": 15},
    {"round": 18, "ante": 10000, "sb": 5000, "bb": 10000, "time": 15},
]


def _duration_minutes(entry: RawLevelEntry) -> Optional[int]:
    minutes = first_present(entry, DURATION_MINUTE_ALIASES)
    if minutes is not None:
        return parse_int(minutes)
    return minutes_from_ms(first_present(entry, DURATION_MS_ALIASES))


def normalize(
    raw_levels: Optional[Sequence[RawLevelEntry]],
    *,
    default_level_minutes: Optional[int] = None,
    default_break_minutes: Optional[int] = None,
) -> List[Level]:
    """Convert raw level definitions into the canonical Level sequence.

    Blind levels are renumbered 1..k by position; any ordinal supplied in the
    input is ignored. Breaks get no ordinal and no blinds. A missing duration
    falls back to the matching default when one is given, otherwise it is a
    ValidationError: there is no safe default for how long a level lasts.
    """
    levels: List[Level] = []
    ordinal = 0
    for position, entry in enumerate(raw_levels or []):
        if not isinstance(entry, Mapping):
            raise ValidationError("BAD_LEVEL", f"Level entry {position + 1} must be an object.")
        is_break = is_truthy(first_present(entry, BREAK_ALIASES))
        duration = _duration_minutes(entry)
        if duration is None:
            duration = default_break_minutes if is_break else default_level_minutes
        if duration is None:
            raise ValidationError(
                "DURATION_REQUIRED",
                f"Level entry {position + 1} has no duration.",
            )
        duration = max(0, duration)
        if is_break:
            levels.append(Level(ordinal=None, is_break=True, duration_minutes=duration))
            continue
        ordinal += 1
        levels.append(
            Level(
                ordinal=ordinal,
                is_break=False,
                duration_minutes=duration,
                small_blind=parse_int(first_present(entry, SMALL_BLIND_ALIASES)),
                big_blind=parse_int(first_present(entry, BIG_BLIND_ALIASES)),
                ante=parse_int(entry.get("ante")),
            )
        )
    return levels


def levels_to_raw(levels: Sequence[Level]) -> List[Dict[str, Any]]:
    # Inverse used when echoing the active structure back to the settings page.
    raw: List[Dict[str, Any]] = []
    for level in levels:
        if level.is_break:
            raw.append({"break": True, "time": level.duration_minutes})
        else:
            raw.append(
                {
                    "round": level.ordinal,
                    "ante": level.ante,
                    "sb": level.small_blind,
                    "bb": level.big_blind,
                    "time": level.duration_minutes,
                }
            )
    return raw
