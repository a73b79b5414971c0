from __future__ import annotations

from typing import Dict, List, Sequence

from .models import EliminationRecord, RebuyRecord, TournamentConfig
from .payloads import round_half_up

# Figures shown on the display board next to the clock: pool, chips in play,
# payouts and who rebought how often.


def prize_pool(config: TournamentConfig, rebuy_count: int, addon_count: int = 0) -> int:
    return (
        len(config.players) * config.buy_in_value
        + rebuy_count * config.rebuy_value
        + addon_count * config.addon_value
    )


def total_chips(config: TournamentConfig, rebuy_count: int, addon_count: int = 0) -> int:
    return (len(config.players) + rebuy_count + addon_count) * config.starting_chips


def payouts(config: TournamentConfig, pool: int) -> List[Dict[str, object]]:
    return [
        {
            "rank": share.rank,
            "percentage": share.percentage,
            "amount": round_half_up(pool * share.percentage / 100),
        }
        for share in config.prizes
    ]


def rebuy_overview(config: TournamentConfig, rebuys: Sequence[RebuyRecord]) -> List[Dict[str, object]]:
    """Per-player rebuy counts and cash in (entry + rebuys), busiest first."""
    rows: Dict[str, Dict[str, object]] = {}

    def register(raw_name: object) -> str:
        name = str(raw_name or "Unknown").strip() or "Unknown"
        key = name.casefold()
        if key not in rows:
            rows[key] = {"name": name, "count": 0}
        return key

    for player in config.players:
        register(player)
    for record in rebuys:
        key = register(record.player)
        rows[key]["count"] = int(rows[key]["count"]) + 1  # type: ignore[call-overload]

    result = []
    for row in rows.values():
        count = int(row["count"])  # type: ignore[call-overload]
        result.append({**row, "total": config.buy_in_value + config.rebuy_value * count})
    result.sort(key=lambda item: (-int(item["count"]), str(item["name"]).casefold()))  # type: ignore[call-overload]
    return result


def summarize(
    config: TournamentConfig,
    rebuys: Sequence[RebuyRecord],
    eliminations: Sequence[EliminationRecord],
    addon_count: int = 0,
) -> Dict[str, object]:
    rebuy_count = len(rebuys)
    pool = prize_pool(config, rebuy_count, addon_count)
    chips = total_chips(config, rebuy_count, addon_count)
    remaining = max(0, len(config.players) - len(eliminations))
    return {
        "title": config.title,
        "currency": config.currency,
        "players": len(config.players),
        "playersRemaining": remaining,
        "buyIns": len(config.players) + rebuy_count,
        "rebuys": rebuy_count,
        "addons": addon_count,
        "prizePool": pool,
        "totalChips": chips,
        "averageStack": chips // remaining if remaining else None,
        "payouts": payouts(config, pool),
        "rebuyOverview": rebuy_overview(config, rebuys),
    }
