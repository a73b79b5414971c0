"""Tournament clock primitives shared by the HTTP API and the dealer hub."""

from .clock import LevelClock
from .errors import (
    ConflictError,
    DeliveryError,
    NotFoundError,
    PersistenceError,
    TournamentError,
    ValidationError,
)
from .freetext import FreeTextEntry, parse_rebuy_free_text
from .models import (
    ClockState,
    ClockStatus,
    Dealer,
    EliminationRecord,
    Level,
    RebuyRecord,
    RoundRecord,
    TournamentConfig,
    TournamentState,
)
from .store import JsonFileBackend, MemoryBackend, TournamentStateStore
from .structure import DEFAULT_STRUCTURE, normalize

__all__ = [
    "LevelClock",
    "ConflictError",
    "DeliveryError",
    "NotFoundError",
    "PersistenceError",
    "TournamentError",
    "ValidationError",
    "FreeTextEntry",
    "parse_rebuy_free_text",
    "ClockState",
    "ClockStatus",
    "Dealer",
    "EliminationRecord",
    "Level",
    "RebuyRecord",
    "RoundRecord",
    "TournamentConfig",
    "TournamentState",
    "JsonFileBackend",
    "MemoryBackend",
    "TournamentStateStore",
    "DEFAULT_STRUCTURE",
    "normalize",
]
