"""Read-side adapter exposing warming statistics to a status display."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from sitewarm.coordinator import ManualWarmResult, WarmingCoordinator, WarmingStatus
from sitewarm.models import PingStatistics
from sitewarm.pinger import KeepAlivePinger

logger = logging.getLogger(__name__)


class ObserverState(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_warming_active: bool = False
    stats: PingStatistics | None = None
    last_ping_time: datetime | None = None
    success_rate: float = 0.0


class WarmingObserver:
    """Follows pinger statistics by subscription plus a slow poll.

    Holds a read-only view only; it never mutates warming state.
    """

    def __init__(
        self,
        coordinator: WarmingCoordinator,
        pinger: KeepAlivePinger,
        poll_interval: float = 30.0,
        development: bool = False,
    ) -> None:
        self.coordinator = coordinator
        self.pinger = pinger
        self.poll_interval = poll_interval
        self.development = development
        self._state = ObserverState()
        self._unsubscribe: Callable[[], None] | None = None
        self._poller: asyncio.Task[None] | None = None

    @property
    def state(self) -> ObserverState:
        return self._state

    def refresh(self, stats: PingStatistics | None = None) -> ObserverState:
        """Recompute the observed state from the pinger's latest statistics."""
        if stats is None:
            stats = self.pinger.get_stats()
        self._state = ObserverState(
            is_warming_active=self.pinger.is_active,
            stats=stats,
            last_ping_time=stats.last_ping_time,
            success_rate=stats.success_rate,
        )
        return self._state

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            self.refresh()

    def start(self) -> None:
        """Subscribe to statistics updates and begin polling."""
        if self._unsubscribe is not None:
            return
        self.refresh()
        self._unsubscribe = self.pinger.add_listener(self.refresh)
        self._poller = asyncio.create_task(self._poll())

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._poller is not None:
            self._poller.cancel()
            self._poller = None

    async def trigger_manual_warm(self) -> ManualWarmResult:
        result = await self.coordinator.warm_now()
        self.refresh()
        return result

    def get_warming_status(self) -> WarmingStatus:
        return self.coordinator.get_status()

    def render_status(self) -> str:
        """Development-only status panel; empty in every other environment."""
        if not self.development:
            return ""

        state = self._state
        stats = state.stats or PingStatistics()
        lines = [
            "Server Warming",
            f"Active: {'Yes' if state.is_warming_active else 'No'}",
            f"Success Rate: {state.success_rate:.1f}%",
            f"Total Pings: {stats.total_pings}",
            f"Current Streak: {stats.current_streak}",
        ]
        if state.last_ping_time:
            lines.append(f"Last: {state.last_ping_time.astimezone().strftime('%H:%M:%S')}")
        return "\n".join(lines)
