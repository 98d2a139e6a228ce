"""CLI commands for running and inspecting the warming services."""

import asyncio
import json
import signal
import sys
from dataclasses import dataclass
from typing import Any

import httpx

from sitewarm.config import Settings, get_settings
from sitewarm.content import ContentCacheWarmer
from sitewarm.coordinator import WarmingCoordinator
from sitewarm.errors import configure_logging
from sitewarm.events import VisibilityMonitor
from sitewarm.http import create_client
from sitewarm.observer import WarmingObserver
from sitewarm.pinger import KeepAlivePinger
from sitewarm.storage import FileSystemStore, StateStore


@dataclass
class Services:
    """Every warming object of a process, built once and passed around."""

    settings: Settings
    client: httpx.AsyncClient
    store: StateStore
    pinger: KeepAlivePinger
    warmer: ContentCacheWarmer
    visibility: VisibilityMonitor
    coordinator: WarmingCoordinator
    observer: WarmingObserver

    async def close(self) -> None:
        self.observer.stop()
        await self.coordinator.shutdown()
        await self.pinger.close()
        await self.warmer.close()
        await self.client.aclose()


async def build_services(
    settings: Settings | None = None,
    client: httpx.AsyncClient | None = None,
    store: StateStore | None = None,
) -> Services:
    """Construct the store, client, warmers and coordinator.

    Args:
        settings: Settings to use. Defaults to environment-derived settings
        client: HTTP client override, mainly for tests
        store: State store override. Defaults to a FileSystemStore
    """
    settings = settings or get_settings()
    client = client or create_client(settings)
    store = store or FileSystemStore(settings.storage.state_dir)

    pinger = await KeepAlivePinger.create(
        settings.keep_alive, client, store, stats_key=settings.storage.stats_key
    )
    warmer = await ContentCacheWarmer.create(
        settings.content, client, store, cache_key=settings.storage.cache_key
    )
    visibility = VisibilityMonitor()
    coordinator = WarmingCoordinator(settings.coordinator, pinger, warmer, visibility)
    observer = WarmingObserver(coordinator, pinger, development=settings.is_development)

    return Services(
        settings=settings,
        client=client,
        store=store,
        pinger=pinger,
        warmer=warmer,
        visibility=visibility,
        coordinator=coordinator,
        observer=observer,
    )


async def run_forever(settings: Settings | None = None) -> None:
    """Run the warming services until SIGINT/SIGTERM."""
    services = await build_services(settings)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Signal handlers are unavailable on Windows event loops
            pass

    try:
        await services.coordinator.initialize()
        services.observer.start()
        await stop.wait()
    finally:
        await services.close()


async def warm_once(settings: Settings | None = None) -> dict[str, Any]:
    """Run one manual warm of every enabled service.

    Returns:
        Dictionary with the outcome per service
    """
    services = await build_services(settings)
    try:
        result = await services.coordinator.warm_now()
        return result.model_dump()
    finally:
        await services.close()


async def warming_status(settings: Settings | None = None) -> dict[str, Any]:
    """Get the persisted statistics and cache metadata.

    Returns:
        Dictionary with status information
    """
    services = await build_services(settings)
    try:
        status = services.observer.get_warming_status()
        return status.model_dump(mode="json")
    finally:
        await services.close()


async def clear_cache(confirm: bool = False, settings: Settings | None = None) -> bool:
    """Clear the persisted content cache.

    Args:
        confirm: Must be True to actually clear the cache

    Returns:
        True if cache was cleared
    """
    if not confirm:
        print("Cache clear cancelled. Pass --confirm to clear.")
        return False

    services = await build_services(settings)
    try:
        await services.warmer.clear_cache()
    finally:
        await services.close()

    print("Cache cleared successfully")
    return True


def main() -> None:
    """CLI entry point for the warming services."""
    if len(sys.argv) < 2:
        print("Usage: python -m sitewarm.cli [run|warm|status|clear]")
        sys.exit(1)

    command = sys.argv[1]
    settings = get_settings()
    configure_logging(settings)

    if command == "run":
        asyncio.run(run_forever(settings))

    elif command == "warm":
        result = asyncio.run(warm_once(settings))
        print(json.dumps(result, indent=2))

    elif command == "status":
        result = asyncio.run(warming_status(settings))
        print(json.dumps(result, indent=2))

    elif command == "clear":
        confirm = "--confirm" in sys.argv
        asyncio.run(clear_cache(confirm, settings))

    else:
        print(f"Unknown command: {command}")
        print("Available commands: run, warm, status, clear")
        sys.exit(1)


if __name__ == "__main__":
    main()
