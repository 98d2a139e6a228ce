"""Lifecycle coordination of the keep-alive pinger and the content warmer."""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from sitewarm.config import CoordinatorConfig
from sitewarm.content import ContentCacheWarmer
from sitewarm.events import Visibility, VisibilityMonitor
from sitewarm.models import PingStatistics, SnapshotMetadata
from sitewarm.pinger import KeepAlivePinger

logger = logging.getLogger(__name__)


class CoordinatorState(Enum):
    """Lifecycle states of the coordinator."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    RUNNING = "running"
    SHUTDOWN = "shutdown"


class KeepAliveStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool
    active: bool
    stats: PingStatistics


class ContentStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool
    active: bool
    cached: bool
    fresh: bool
    metadata: SnapshotMetadata | None = None


class WarmingStatus(BaseModel):
    """Diagnostic view of the warming services. Never used for control."""

    model_config = ConfigDict(frozen=True)

    initialized: bool
    state: CoordinatorState
    keep_alive: KeepAliveStatus
    content: ContentStatus


class ManualWarmResult(BaseModel):
    """Settled outcome of a manual warm; None marks a disabled service."""

    model_config = ConfigDict(frozen=True)

    keep_alive: bool | None = None
    content: bool | None = None


class WarmingCoordinator:
    """Starts, stops and observes both warmers as a unit.

    The coordinator is the only component that starts or stops the pinger
    and the content warmer; neither starts itself.
    """

    def __init__(
        self,
        config: CoordinatorConfig,
        pinger: KeepAlivePinger,
        warmer: ContentCacheWarmer,
        visibility: VisibilityMonitor | None = None,
    ) -> None:
        self.config = config
        self.pinger = pinger
        self.warmer = warmer
        self.visibility = visibility
        self.state = CoordinatorState.UNINITIALIZED
        self._last_visibility = visibility.state if visibility else Visibility.VISIBLE
        self._unsubscribe_visibility: Callable[[], None] | None = None
        self._preload_task: asyncio.Task[Any] | None = None
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def is_initialized(self) -> bool:
        return self.state == CoordinatorState.RUNNING

    @property
    def keep_alive_enabled(self) -> bool:
        """Keep-alive runs only when both this coordinator and the pinger allow it."""
        return self.config.enable_keep_alive and self.pinger.enabled

    async def initialize(self) -> None:
        """Start the enabled warmers after the start delay. Idempotent."""
        if self.state in (CoordinatorState.INITIALIZING, CoordinatorState.RUNNING):
            logger.info("Warming coordinator already initialized")
            return

        logger.info("Initializing warming services")
        self.state = CoordinatorState.INITIALIZING

        # Stay out of the way of initial page rendering
        await asyncio.sleep(self.config.start_delay)
        if self.state != CoordinatorState.INITIALIZING:
            logger.info("Warming initialization abandoned by shutdown")
            return

        if self.keep_alive_enabled:
            await self.pinger.start()

        if self.config.enable_content_warming:
            await self.warmer.start_periodic()
            if self.config.enable_image_preloading:
                self._preload_task = asyncio.create_task(self._preload_later())

        self._setup_visibility_handling()
        self.state = CoordinatorState.RUNNING
        logger.info("Warming services initialized successfully")

    async def _preload_later(self) -> None:
        await asyncio.sleep(self.config.preload_delay)
        await self.warmer.preload_images()

    def _setup_visibility_handling(self) -> None:
        if self.visibility is None or self._unsubscribe_visibility is not None:
            return
        self._last_visibility = self.visibility.state
        self._unsubscribe_visibility = self.visibility.add_listener(self._on_visibility_change)

    def _on_visibility_change(self, state: Visibility) -> None:
        task = asyncio.create_task(self.handle_visibility_change(state))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def handle_visibility_change(self, state: Visibility) -> None:
        """Restart the pinger when the host comes back from being hidden.

        Hosts may suspend timers of a hidden context, so the pinger can be
        found idle even though the coordinator is running.
        """
        previous = self._last_visibility
        self._last_visibility = state

        if state == Visibility.HIDDEN:
            logger.debug("Host hidden, warming continues in background")
            return

        if previous != Visibility.HIDDEN or self.state != CoordinatorState.RUNNING:
            return

        if self.keep_alive_enabled and not self.pinger.is_active:
            logger.info("Host visible, restarting server warming")
            await self.pinger.start()

    async def shutdown(self) -> None:
        """Stop both warmers and return to the uninitialized state."""
        if self.state == CoordinatorState.UNINITIALIZED:
            return

        logger.info("Shutting down warming services")
        self.state = CoordinatorState.SHUTDOWN

        if self._unsubscribe_visibility is not None:
            self._unsubscribe_visibility()
            self._unsubscribe_visibility = None

        if self._preload_task is not None:
            self._preload_task.cancel()
            self._preload_task = None

        if self.keep_alive_enabled:
            await self.pinger.stop()

        if self.config.enable_content_warming:
            await self.warmer.stop_periodic()

        self.state = CoordinatorState.UNINITIALIZED
        logger.info("Warming services shut down")

    def get_status(self) -> WarmingStatus:
        """Return a read-only composite status for diagnostics."""
        snapshot = self.warmer.get_cached()
        return WarmingStatus(
            initialized=self.is_initialized,
            state=self.state,
            keep_alive=KeepAliveStatus(
                enabled=self.keep_alive_enabled,
                active=self.pinger.is_active,
                stats=self.pinger.get_stats(),
            ),
            content=ContentStatus(
                enabled=self.config.enable_content_warming,
                active=self.warmer.is_active,
                cached=snapshot is not None,
                fresh=self.warmer.is_fresh(),
                metadata=snapshot.metadata if snapshot else None,
            ),
        )

    async def warm_now(self) -> ManualWarmResult:
        """Run one manual cycle of every enabled service and wait for all to settle."""
        logger.info("Manual warming triggered")

        jobs: dict[str, Any] = {}
        if self.keep_alive_enabled:
            jobs["keep_alive"] = self.pinger.ping_once()
        if self.config.enable_content_warming:
            jobs["content"] = self.warmer.warm()

        results = await asyncio.gather(*jobs.values(), return_exceptions=True)

        outcome: dict[str, bool] = {}
        for name, result in zip(jobs, results, strict=True):
            if isinstance(result, Exception):
                logger.warning("Manual %s warming failed: %s", name, result)
                outcome[name] = False
            elif name == "content":
                outcome[name] = result is not None
            else:
                outcome[name] = bool(result)

        logger.info("Manual warming complete")
        return ManualWarmResult(**outcome)

    @asynccontextmanager
    async def running(self) -> AsyncIterator["WarmingCoordinator"]:
        """Keep the warming services running for the duration of the block."""
        await self.initialize()
        try:
            yield self
        finally:
            await self.shutdown()
