from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from tourney_core.clock import LevelClock
from tourney_core.models import Level, TournamentConfig
from tourney_core.prizes import summarize
from tourney_core.store import TournamentStateStore
from tourney_core.structure import DEFAULT_STRUCTURE, levels_to_raw, normalize

from .announcer import AnnounceResult, RoundAnnouncer
from .dispatcher import NotificationDispatcher

LOGGER = logging.getLogger("tourney_clock.session")

TickListener = Callable[[Dict[str, object]], Awaitable[None]]

# Pending chat follow-ups: which free-text answer a dealer owes us next.
PENDING_REBUY = "rebuy"
PENDING_ELIMINATION = "elimination"


class ClockTicker:
    """Feeds wall-clock time into a LevelClock from one asyncio task."""

    def __init__(
        self,
        clock: LevelClock,
        interval: float = 1.0,
        on_tick: Optional[TickListener] = None,
    ) -> None:
        self.clock = clock
        self.interval = interval
        self.on_tick = on_tick
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.active:
            raise RuntimeError("Clock ticker is already running")
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        last = time.monotonic()
        carry = 0.0
        while True:
            await asyncio.sleep(self.interval)
            now = time.monotonic()
            elapsed = (now - last) * 1000 + carry
            last = now
            whole = int(elapsed)
            carry = elapsed - whole
            was_expired = self.clock.expired
            self.clock.tick(whole)
            if self.clock.expired and not was_expired:
                level = self.clock.current_level
                LOGGER.info("%s countdown reached zero", level.label if level else "Clock")
            if self.on_tick is not None:
                try:
                    await self.on_tick(self.clock.snapshot())
                except Exception:
                    LOGGER.exception("Clock tick listener failed")


class TournamentSession:
    """Everything one running tournament needs, passed around explicitly."""

    def __init__(
        self,
        store: TournamentStateStore,
        dispatcher: NotificationDispatcher,
        *,
        config: Optional[TournamentConfig] = None,
        structure: Optional[Sequence[Mapping[str, Any]]] = None,
        tick_interval: float = 1.0,
        history_limit: int = 20,
    ) -> None:
        self.config = config or TournamentConfig()
        self.store = store
        self.dispatcher = dispatcher
        self.announcer = RoundAnnouncer(store, dispatcher, history_limit=history_limit)
        self.levels: List[Level] = self._normalize(DEFAULT_STRUCTURE if structure is None else structure)
        self.clock = LevelClock(self.levels)
        self.ticker = ClockTicker(self.clock, interval=tick_interval)
        self.pending_actions: Dict[str, str] = {}

    def _normalize(self, raw: Sequence[Mapping[str, Any]]) -> List[Level]:
        return normalize(
            raw,
            default_level_minutes=self.config.round_minutes,
            default_break_minutes=self.config.break_minutes,
        )

    def set_tick_listener(self, listener: Optional[TickListener]) -> None:
        self.ticker.on_tick = listener

    # Configuration ---------------------------------------------------

    @property
    def tables(self) -> List[str]:
        return list(self.config.tables)

    def update_config(self, raw: Mapping[str, Any]) -> TournamentConfig:
        self.config = TournamentConfig.from_dict(raw)
        LOGGER.info("Tournament settings updated: %s", self.config.title)
        return self.config

    async def load_structure(self, raw: Sequence[Mapping[str, Any]]) -> Dict[str, object]:
        levels = self._normalize(raw)
        await self.ticker.stop()
        self.levels = levels
        self.clock = LevelClock(levels)
        self.ticker.clock = self.clock
        LOGGER.info("Loaded structure with %s entries", len(levels))
        return self.snapshot()

    def structure(self) -> List[Dict[str, Any]]:
        return levels_to_raw(self.levels)

    # Clock commands --------------------------------------------------

    def snapshot(self) -> Dict[str, object]:
        return self.clock.snapshot()

    def _result(self, announcement: Optional[AnnounceResult] = None) -> Dict[str, object]:
        return {
            "clock": self.snapshot(),
            "announcement": announcement.to_dict() if announcement else None,
        }

    async def start(self) -> Dict[str, object]:
        if self.clock.start():
            LOGGER.info("Clock started at index %s", self.clock.current_index)
        if self.clock.running and not self.ticker.active:
            self.ticker.start()
        return self._result()

    async def pause(self) -> Dict[str, object]:
        if self.clock.pause():
            LOGGER.info("Clock paused with %sms left", self.clock.remaining_ms)
        await self.ticker.stop()
        return self._result()

    async def advance(self) -> Dict[str, object]:
        level = self.clock.advance()
        if level is None:
            await self.ticker.stop()
            LOGGER.info("Clock finished after the last level")
            return self._result()
        LOGGER.info("Advanced to %s", level.label)
        announcement = await self.announcer.announce_level(level, self.clock.current_index)
        return self._result(announcement)

    async def retreat(self) -> Dict[str, object]:
        level = self.clock.retreat()
        if level is not None:
            LOGGER.info("Went back to %s", level.label)
        return self._result()

    async def reset_level(self) -> Dict[str, object]:
        self.clock.reset_current()
        return self._result()

    async def restart(self) -> Dict[str, object]:
        await self.ticker.stop()
        level = self.clock.restart()
        self.pending_actions.clear()
        self.announcer.reset()
        if level is None:
            return self._result()
        self.ticker.start()
        LOGGER.info("Tournament restarted from %s", level.label)
        announcement = await self.announcer.announce_level(level, 0)
        return self._result(announcement)

    # Read side -------------------------------------------------------

    def summary(self, addon_count: int = 0) -> Dict[str, object]:
        state = self.store.state
        return summarize(self.config, state.rebuys, state.eliminations, addon_count=addon_count)

    async def close(self) -> None:
        await self.ticker.stop()
        self.pending_actions.clear()
