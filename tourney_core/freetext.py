"""Best-effort parsing of dealer free text into rebuy/elimination entries.

Dealers type something like::

    Alice
    1000
    second bullet, paid cash

The first non-empty line is the player, an optional numeric-looking second
line is the figure (rebuy amount or finishing position) and whatever follows
is kept as notes. This is a heuristic, not a grammar: a note that happens to
look like a number on line two is read as the figure.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from .errors import ValidationError
from .payloads import EliminationRequest, RebuyRequest, parse_amount

_NUMERIC_LINE = re.compile(r"^[#$€£]?\s*[+-]?\d[\d,.\s]*$")


@dataclass(frozen=True)
class FreeTextEntry:
    player: str
    figure: Optional[int] = None
    notes: Optional[str] = None

    def to_rebuy(self, table: str) -> RebuyRequest:
        return RebuyRequest(table=table, player=self.player, amount=self.figure, notes=self.notes)

    def to_elimination(self, table: Optional[str]) -> EliminationRequest:
        return EliminationRequest(player=self.player, table=table, position=self.figure, notes=self.notes)


def looks_numeric(line: str) -> bool:
    return bool(_NUMERIC_LINE.match(line.strip()))


def parse_rebuy_free_text(text: Optional[str]) -> FreeTextEntry:
    lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
    if not lines:
        raise ValidationError("PLAYER_REQUIRED", "Send the player name on the first line.")
    player, rest = lines[0], lines[1:]
    figure: Optional[int] = None
    if rest and looks_numeric(rest[0]):
        figure = parse_amount(rest[0].replace(" ", ""))
        if figure is not None:
            rest = rest[1:]
    notes = "\n".join(rest) or None
    return FreeTextEntry(player=player, figure=figure, notes=notes)
