from __future__ import annotations

from typing import List, Optional, Sequence

from .models import EliminationRecord, RebuyRecord, RoundRecord


def format_clock(ms: Optional[int]) -> str:
    """Render milliseconds as m:ss (minutes unpadded)."""
    total = max(0, int(ms or 0) // 1000)
    return f"{total // 60}:{total % 60:02d}"


def format_countdown(ms: Optional[int]) -> str:
    total = max(0, int(ms or 0) // 1000)
    return f"{total // 60:02d}:{total % 60:02d}"


def format_tables(tables: Sequence[str]) -> str:
    if not tables:
        return "All tables"
    return ", ".join(tables)


def build_round_message(record: RoundRecord) -> str:
    parts: List[str] = [f"\U0001F3B4 Round update: {record.title}".strip()]
    if record.blinds:
        parts.append(f"Blinds: {record.blinds}")
    if record.ante:
        parts.append(f"Ante: {record.ante}")
    if record.duration_minutes:
        parts.append(f"Duration: {record.duration_minutes} min")
    if record.start_time:
        parts.append(f"Start time: {record.start_time}")
    if record.notes:
        parts.append(record.notes)
    return "\n".join(parts)


def build_rebuy_message(record: RebuyRecord) -> str:
    parts: List[str] = [f"♻️ Rebuy requested at table {record.table}"]
    if record.player:
        parts.append(f"Player: {record.player}")
    if record.amount:
        parts.append(f"Amount: {record.amount}")
    if record.notes:
        parts.append(record.notes)
    return "\n".join(parts)


def build_elimination_message(record: EliminationRecord) -> str:
    parts: List[str] = [f"❌ Player eliminated: {record.player or 'Unknown'}"]
    if record.table:
        parts.append(f"Table: {record.table}")
    if record.position:
        parts.append(f"Position: {record.position}")
    if record.payout:
        parts.append(f"Payout: {record.payout}")
    if record.notes:
        parts.append(record.notes)
    return "\n".join(parts)


def build_status_message(record: Optional[RoundRecord], remaining_ms: Optional[int] = None) -> str:
    if record is None:
        return "The tournament round has not been announced yet."
    lines = [f"Current round: {record.title}", f"Blinds: {record.blinds or 'n/a'}"]
    if remaining_ms is not None:
        lines.append(f"Time left: {format_clock(remaining_ms)}")
    return "\n".join(lines)
