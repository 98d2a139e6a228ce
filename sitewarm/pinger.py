"""Keep-alive pinger that stops an idle-suspended backend from going cold."""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime

import httpx
from pydantic import ValidationError

from sitewarm.config import KeepAliveConfig
from sitewarm.errors import ErrorCategory, ProbeFailedError, log_failure
from sitewarm.events import ListenerRegistry
from sitewarm.http import warming_headers
from sitewarm.models import PingStatistics
from sitewarm.storage import StateStore

logger = logging.getLogger(__name__)


class KeepAlivePinger:
    """Periodically probes the backend health endpoint with bounded retries.

    Statistics are owned by the pinger, persisted after every cycle and
    broadcast to listeners as immutable snapshots.
    """

    def __init__(
        self,
        config: KeepAliveConfig,
        client: httpx.AsyncClient,
        store: StateStore,
        stats_key: str = "server-warming-stats",
    ) -> None:
        """Initialize the pinger without touching persisted state.

        Use ``create()`` to also hydrate statistics from the store.

        Args:
            config: Keep-alive configuration
            client: HTTP client whose base URL points at the backend
            store: Persisted state store
            stats_key: Store key holding serialized statistics
        """
        self.config = config
        self.client = client
        self.store = store
        self.stats_key = stats_key
        self._stats = PingStatistics()
        self._listeners: ListenerRegistry[PingStatistics] = ListenerRegistry()
        self._timer: asyncio.Task[None] | None = None
        self._cycles: set[asyncio.Task[bool]] = set()

    @classmethod
    async def create(
        cls,
        config: KeepAliveConfig,
        client: httpx.AsyncClient,
        store: StateStore,
        stats_key: str = "server-warming-stats",
    ) -> "KeepAlivePinger":
        """Build a pinger and hydrate its statistics from the store."""
        pinger = cls(config, client, store, stats_key)
        await pinger._load_stats()
        return pinger

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def is_active(self) -> bool:
        return self._stats.is_active

    @property
    def health_url(self) -> str:
        """Absolute probe URL, keeping any path prefix of the base URL."""
        base = str(self.client.base_url).rstrip("/")
        return f"{base}/{self.config.health_path.lstrip('/')}"

    async def _load_stats(self) -> None:
        raw = await self.store.get(self.stats_key)
        if not raw:
            return

        try:
            loaded = PingStatistics.model_validate_json(raw)
        except ValidationError as e:
            log_failure(
                logger, e, ErrorCategory.PERSISTENCE, "Failed to load warming stats", key=self.stats_key
            )
            return

        # A restarted process has no running timer, whatever was persisted
        self._stats = loaded.model_copy(update={"is_active": False})
        logger.debug("Loaded warming stats: %d pings", loaded.total_pings)

    async def _save_stats(self) -> None:
        try:
            payload = self._stats.model_dump_json(exclude={"is_active"})
        except ValueError as e:
            log_failure(logger, e, ErrorCategory.PERSISTENCE, "Failed to serialize warming stats")
            return

        if not await self.store.set(self.stats_key, payload):
            logger.warning("Failed to save warming stats")

    def _update(self, **changes) -> None:
        self._stats = self._stats.model_copy(update=changes)
        self._listeners.notify(self._stats)

    def add_listener(self, listener: Callable[[PingStatistics], None]) -> Callable[[], None]:
        """Register a callback invoked with fresh statistics after every update.

        Returns:
            A function that unregisters the listener
        """
        return self._listeners.add(listener)

    def get_stats(self) -> PingStatistics:
        """Return an immutable snapshot of the current statistics."""
        return self._stats

    async def _probe(self, attempt: int) -> bool:
        """Issue one health request; any failure is reported as False."""
        started = asyncio.get_running_loop().time()
        try:
            response = await self.client.get(
                self.config.health_path,
                headers=warming_headers(self.config.source_tag),
                timeout=self.config.request_timeout,
            )
            if not response.is_success:
                raise ProbeFailedError(self.health_url, response.status_code, response.reason_phrase)
        except (httpx.HTTPError, ProbeFailedError) as e:
            log_failure(
                logger,
                e,
                ErrorCategory.NETWORK,
                f"Server warming failed (attempt {attempt})",
                url=self.health_url,
            )
            return False

        try:
            body = response.json()
        except ValueError:
            body = {}

        logger.info(
            "Server warming successful: status=%d timestamp=%s response_time_ms=%d",
            response.status_code,
            body.get("timestamp") if isinstance(body, dict) else None,
            (asyncio.get_running_loop().time() - started) * 1000,
        )
        return True

    async def _probe_with_retries(self) -> bool:
        attempts = self.config.max_retries + 1
        for attempt in range(1, attempts + 1):
            if await self._probe(attempt):
                return True
            if attempt < attempts:
                await asyncio.sleep(self.config.retry_delay)
        return False

    async def _perform_cycle(self) -> bool:
        """Run one cycle and commit its outcome to the statistics once."""
        started_at = datetime.now(UTC)

        success = await self._probe_with_retries()

        stats = self._stats
        changes = {
            "total_pings": stats.total_pings + 1,
            "last_ping_time": started_at,
        }
        if success:
            changes["successful_pings"] = stats.successful_pings + 1
            changes["current_streak"] = stats.current_streak + 1
            changes["last_success_time"] = datetime.now(UTC)
        else:
            changes["current_streak"] = 0
        self._stats = self._stats.model_copy(update=changes)

        await self._save_stats()
        self._listeners.notify(self._stats)

        if success:
            logger.info("Server warming cycle complete. Streak: %d", self._stats.current_streak)
        else:
            logger.warning("Server warming cycle failed after all retries")
        return success

    def _spawn_cycle(self) -> asyncio.Task[bool]:
        task = asyncio.create_task(self._perform_cycle())
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)
        return task

    async def _run_schedule(self) -> None:
        # Cycles are spawned rather than awaited so starts stay interval-spaced
        while True:
            await asyncio.sleep(self.config.interval)
            self._spawn_cycle()

    async def start(self) -> None:
        """Start pinging; calling it while already running is a no-op."""
        if not self.config.enabled:
            logger.info("Server warming disabled")
            return

        if self._timer is not None:
            logger.info("Server warming already active")
            return

        logger.info("Starting server warming service (interval: %.1f minutes)", self.config.interval / 60)

        self._timer = asyncio.create_task(self._run_schedule())
        self._update(is_active=True)

        if self.config.warm_on_load:
            self._spawn_cycle()

    async def stop(self) -> None:
        """Stop scheduling cycles. A cycle already in flight runs to completion."""
        if self._timer is None:
            return

        self._timer.cancel()
        self._timer = None
        self._stats = self._stats.model_copy(update={"is_active": False})
        await self._save_stats()
        self._listeners.notify(self._stats)
        logger.info("Server warming service stopped")

    async def ping_once(self) -> bool:
        """Run one cycle outside the schedule; the recurring timer is untouched."""
        if not self.config.enabled:
            logger.info("Server warming disabled, manual ping skipped")
            return False

        logger.info("Manual server warming triggered")
        return await self._perform_cycle()

    async def close(self) -> None:
        """Stop the schedule and wait for in-flight cycles to settle."""
        await self.stop()
        if self._cycles:
            await asyncio.gather(*self._cycles, return_exceptions=True)
