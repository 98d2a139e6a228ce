"""Top-content cache warmer with stale fallback."""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import httpx
from pydantic import ValidationError

from sitewarm.config import ContentWarmingConfig
from sitewarm.errors import (
    ErrorCategory,
    ErrorSeverity,
    MalformedResponseError,
    ProbeFailedError,
    log_failure,
)
from sitewarm.http import warming_headers
from sitewarm.models import CachedContentSnapshot, ContentItem, ContentSource, SnapshotMetadata
from sitewarm.storage import StateStore

logger = logging.getLogger(__name__)


def parse_listing(payload: Any) -> tuple[list[dict[str, Any]], int | None]:
    """Extract items and the reported total from a content listing.

    Accepts ``{"data": {"blogs": [...], "pagination": {"total": N}}}`` and
    falls back to top-level ``blogs`` / ``total``.

    Raises:
        MalformedResponseError: If no item list can be found
    """
    if not isinstance(payload, dict):
        raise MalformedResponseError(f"Expected a JSON object, got {type(payload).__name__}")

    data = payload.get("data")
    items = None
    total = None
    if isinstance(data, dict):
        items = data.get("blogs")
        pagination = data.get("pagination")
        if isinstance(pagination, dict):
            total = pagination.get("total")
    if items is None:
        items = payload.get("blogs")
    if total is None:
        total = payload.get("total")

    if not isinstance(items, list):
        raise MalformedResponseError("Content listing has no item list")
    if not all(isinstance(item, dict) for item in items):
        raise MalformedResponseError("Content listing items must be objects")
    if total is not None and (not isinstance(total, int) or isinstance(total, bool) or total < 0):
        raise MalformedResponseError(f"Invalid total: {total!r}")

    return items, total


class ContentCacheWarmer:
    """Keeps a time-boxed, persisted snapshot of the top-content listing."""

    def __init__(
        self,
        config: ContentWarmingConfig,
        client: httpx.AsyncClient,
        store: StateStore,
        cache_key: str = "blog-warming-cache",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the warmer without touching persisted state.

        Args:
            config: Content warming configuration
            client: HTTP client whose base URL points at the backend
            store: Persisted state store
            cache_key: Store key holding the serialized snapshot
            clock: Returns the current UTC time; injectable for tests
        """
        self.config = config
        self.client = client
        self.store = store
        self.cache_key = cache_key
        self._now = clock or (lambda: datetime.now(UTC))
        self._cache: CachedContentSnapshot | None = None
        self._in_flight: asyncio.Task[CachedContentSnapshot | None] | None = None
        self._timer: asyncio.Task[None] | None = None
        self._cycles: set[asyncio.Task[Any]] = set()

    @classmethod
    async def create(
        cls,
        config: ContentWarmingConfig,
        client: httpx.AsyncClient,
        store: StateStore,
        cache_key: str = "blog-warming-cache",
        clock: Callable[[], datetime] | None = None,
    ) -> "ContentCacheWarmer":
        """Build a warmer and hydrate its snapshot from the store."""
        warmer = cls(config, client, store, cache_key, clock)
        await warmer._load_cache()
        return warmer

    @property
    def is_active(self) -> bool:
        return self._timer is not None

    async def _load_cache(self) -> None:
        raw = await self.store.get(self.cache_key)
        if not raw:
            return

        try:
            snapshot = CachedContentSnapshot.model_validate_json(raw)
        except ValidationError as e:
            log_failure(
                logger, e, ErrorCategory.PERSISTENCE, "Failed to load content cache", key=self.cache_key
            )
            return

        # Expired snapshots are kept for stale fallback until replaced
        metadata = snapshot.metadata.model_copy(update={"source": ContentSource.CACHE})
        self._cache = snapshot.model_copy(update={"metadata": metadata})
        if self._is_fresh(self._cache):
            logger.info("Loaded %d items from cache", len(snapshot.items))
        else:
            logger.info("Content cache expired, will refresh")

    async def _save_cache(self, snapshot: CachedContentSnapshot) -> None:
        try:
            payload = snapshot.model_dump_json()
        except ValueError as e:
            log_failure(logger, e, ErrorCategory.PERSISTENCE, "Failed to serialize content cache")
            return

        if not await self.store.set(self.cache_key, payload):
            logger.warning("Failed to save content cache")

    def _is_fresh(self, snapshot: CachedContentSnapshot) -> bool:
        return snapshot.is_fresh(self.config.cache_timeout, self._now())

    def get_cached(self) -> CachedContentSnapshot | None:
        """Return the current snapshot, fresh or stale, without fetching."""
        return self._cache

    def is_fresh(self) -> bool:
        """Whether a snapshot is held and still within the cache timeout."""
        return self._cache is not None and self._is_fresh(self._cache)

    async def warm(self) -> CachedContentSnapshot | None:
        """Return fresh content, fetching it when the cache has expired.

        Concurrent callers share a single in-flight fetch. On failure the
        previous snapshot is returned even if expired; None means no data.
        """
        if not self.config.enabled:
            logger.info("Content warming disabled")
            return None

        if self.is_fresh():
            logger.debug("Using cached content")
            return self._cache

        if self._in_flight is None:
            self._in_flight = asyncio.create_task(self._refresh())
            self._in_flight.add_done_callback(self._clear_in_flight)
        else:
            logger.debug("Content warming already in progress")

        # Shielded so one cancelled caller does not cancel the shared fetch
        return await asyncio.shield(self._in_flight)

    def _clear_in_flight(self, task: asyncio.Task[Any]) -> None:
        if self._in_flight is task:
            self._in_flight = None

    async def _get(self, path: str, **params: Any) -> httpx.Response:
        response = await self.client.get(
            path,
            params=params or None,
            headers=warming_headers(self.config.source_tag),
            timeout=self.config.request_timeout,
        )
        if not response.is_success:
            raise ProbeFailedError(str(response.url), response.status_code, response.reason_phrase)
        return response

    async def _refresh(self) -> CachedContentSnapshot | None:
        started = asyncio.get_running_loop().time()

        content_result, health_result = await asyncio.gather(
            self._get(self.config.content_path, limit=self.config.limit, sort=self.config.sort),
            self._get(self.config.health_path),
            return_exceptions=True,
        )
        response_time_ms = (asyncio.get_running_loop().time() - started) * 1000

        try:
            if isinstance(content_result, BaseException):
                raise content_result
            items, total = parse_listing(content_result.json())
            snapshot = CachedContentSnapshot(
                items=[ContentItem.model_validate(item) for item in items],
                timestamp=self._now(),
                metadata=SnapshotMetadata(
                    total_available=total if total is not None else len(items),
                    fetched_count=len(items),
                    source=ContentSource.API,
                ),
            )
        except (httpx.HTTPError, ProbeFailedError) as e:
            return self._fall_back(e, ErrorCategory.NETWORK)
        except (ValueError, MalformedResponseError) as e:
            # ValueError covers invalid JSON and item validation errors
            return self._fall_back(e, ErrorCategory.MALFORMED_RESPONSE)

        self._cache = snapshot
        await self._save_cache(snapshot)

        logger.info(
            "Content warming successful: items=%d total=%d response_time_ms=%d health=%s",
            snapshot.metadata.fetched_count,
            snapshot.metadata.total_available,
            response_time_ms,
            "failed" if isinstance(health_result, BaseException) else "ok",
        )
        return snapshot

    def _fall_back(self, error: BaseException, category: ErrorCategory) -> CachedContentSnapshot | None:
        log_failure(
            logger,
            error,
            category,
            "Content warming failed",
            severity=ErrorSeverity.ERROR,
            url=self.config.content_path,
        )
        if self._cache is not None:
            logger.warning("Using stale content cache due to warming failure")
        return self._cache

    def _spawn(self, coro) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)
        return task

    async def _run_schedule(self) -> None:
        while True:
            await asyncio.sleep(self.config.interval)
            self._spawn(self.warm())

    async def start_periodic(self) -> None:
        """Start periodic warming; a no-op when disabled or already running."""
        if not self.config.enabled:
            return

        if self._timer is not None:
            logger.info("Content warming already active")
            return

        self._timer = asyncio.create_task(self._run_schedule())
        if self.config.warm_on_load:
            self._spawn(self.warm())

        logger.info("Content warming service started (interval: %.1f minutes)", self.config.interval / 60)

    async def stop_periodic(self) -> None:
        """Stop scheduling warm cycles. An in-flight fetch runs to completion."""
        if self._timer is None:
            return

        self._timer.cancel()
        self._timer = None
        logger.info("Content warming service stopped")

    async def clear_cache(self) -> None:
        """Drop the in-memory snapshot and erase the persisted copy."""
        self._cache = None
        await self.store.delete(self.cache_key)
        logger.info("Content cache cleared")

    async def _preload(self, url: str) -> str | None:
        try:
            response = await self.client.get(
                url,
                headers=warming_headers(self.config.source_tag),
                timeout=self.config.request_timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.debug("Failed to preload %s: %s", url, e)
            return None
        return url

    async def preload_images(self) -> list[str]:
        """Fetch the first few item media URLs so they are warm at the origin.

        Returns:
            The URLs that loaded successfully
        """
        if self._cache is None or self.config.preload_count == 0:
            return []

        urls = [item.media_url for item in self._cache.items if item.media_url]
        urls = urls[: self.config.preload_count]
        if not urls:
            return []

        logger.info("Preloading %d content images", len(urls))
        results = await asyncio.gather(*(self._preload(url) for url in urls))
        loaded = [url for url in results if url is not None]
        logger.info("Content images preloaded: %d/%d", len(loaded), len(urls))
        return loaded

    async def close(self) -> None:
        """Stop the schedule and wait for in-flight work to settle."""
        await self.stop_periodic()
        pending = list(self._cycles)
        if self._in_flight is not None:
            pending.append(self._in_flight)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
