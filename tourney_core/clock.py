from __future__ import annotations

from typing import Dict, Optional, Sequence, Tuple

from .messages import format_countdown
from .models import ClockState, ClockStatus, Level

# LevelClock is pure state: it never sleeps and never schedules anything. The
# session's ticker feeds it elapsed time; humans (or the API) move levels.


class LevelClock:
    """Blind-level clock for one tournament session."""

    def __init__(self, levels: Sequence[Level]) -> None:
        self._levels: Tuple[Level, ...] = tuple(levels)
        self._index = 0
        self._remaining_ms = self._levels[0].duration_ms if self._levels else 0
        self._running = False
        self._paused = False
        self._finished = False

    # Read side -------------------------------------------------------

    @property
    def levels(self) -> Tuple[Level, ...]:
        return self._levels

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def remaining_ms(self) -> int:
        return self._remaining_ms

    @property
    def running(self) -> bool:
        return self._running

    @property
    def status(self) -> ClockStatus:
        if not self._levels:
            return ClockStatus.IDLE
        if self._finished:
            return ClockStatus.FINISHED
        if self._running:
            return ClockStatus.RUNNING
        if self._paused:
            return ClockStatus.PAUSED
        return ClockStatus.READY

    @property
    def current_level(self) -> Optional[Level]:
        if not self._levels or self._finished:
            return None
        return self._levels[self._index]

    @property
    def next_level(self) -> Optional[Level]:
        if self._finished or self._index + 1 >= len(self._levels):
            return None
        return self._levels[self._index + 1]

    @property
    def expired(self) -> bool:
        return self.current_level is not None and self._remaining_ms == 0

    @property
    def state(self) -> ClockState:
        return ClockState(
            current_level_index=self._index,
            remaining_ms=self._remaining_ms,
            running=self._running,
            status=self.status,
        )

    def next_break_eta_ms(self) -> Optional[int]:
        """Milliseconds until the next break starts, or None if none is ahead."""
        current = self.current_level
        if current is None:
            return None
        if current.is_break:
            return 0
        eta = self._remaining_ms
        for level in self._levels[self._index + 1:]:
            if level.is_break:
                return eta
            eta += level.duration_ms
        return None

    def snapshot(self) -> Dict[str, object]:
        current = self.current_level
        upcoming = self.next_level
        payload: Dict[str, object] = self.state.to_dict()
        payload.update(
            {
                "levelCount": len(self._levels),
                "level": current.to_dict() if current else None,
                "nextLevel": upcoming.to_dict() if upcoming else None,
                "countdown": format_countdown(self._remaining_ms),
                "nextBreakEtaMs": self.next_break_eta_ms(),
            }
        )
        return payload

    # Commands --------------------------------------------------------

    def start(self) -> bool:
        if self.status not in (ClockStatus.READY, ClockStatus.PAUSED):
            return False
        self._running = True
        self._paused = False
        return True

    def pause(self) -> bool:
        if not self._running:
            return False
        self._running = False
        self._paused = True
        return True

    def tick(self, elapsed_ms: int) -> int:
        # Hitting zero does not move the level; advance() is a separate call.
        if self._running and elapsed_ms > 0:
            self._remaining_ms = max(0, self._remaining_ms - int(elapsed_ms))
        return self._remaining_ms

    def advance(self) -> Optional[Level]:
        if not self._levels or self._finished:
            return None
        if self._index + 1 < len(self._levels):
            self._index += 1
            self._remaining_ms = self._levels[self._index].duration_ms
            return self._levels[self._index]
        self._finished = True
        self._index = len(self._levels)
        self._remaining_ms = 0
        self._running = False
        self._paused = False
        return None

    def retreat(self) -> Optional[Level]:
        if not self._levels:
            return None
        if self._finished:
            self._finished = False
            self._index = len(self._levels) - 1
        else:
            self._index = max(0, self._index - 1)
        self._remaining_ms = self._levels[self._index].duration_ms
        return self._levels[self._index]

    def reset_current(self) -> Optional[Level]:
        level = self.current_level
        if level is None:
            return None
        self._remaining_ms = level.duration_ms
        return level

    def restart(self) -> Optional[Level]:
        if not self._levels:
            return None
        self._index = 0
        self._finished = False
        self._remaining_ms = self._levels[0].duration_ms
        self._running = True
        self._paused = False
        return self._levels[0]
