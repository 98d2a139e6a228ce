"""HTTP client construction for warming requests."""

import httpx

from sitewarm.config import Settings, get_settings

WARMING_REQUEST_HEADER = "X-Warming-Request"
WARMING_SOURCE_HEADER = "X-Warming-Source"


def warming_headers(source: str) -> dict[str, str]:
    """Marker headers that set synthetic warming traffic apart from real usage."""
    return {
        WARMING_REQUEST_HEADER: "true",
        WARMING_SOURCE_HEADER: source,
    }


def create_client(config: Settings | None = None, **kwargs) -> httpx.AsyncClient:
    """Create the shared client used by the pinger and the content warmer.

    Args:
        config: Settings providing the API base URL
        **kwargs: Extra ``httpx.AsyncClient`` arguments (e.g. ``transport``)
    """
    from sitewarm import __version__

    config = config or get_settings()
    return httpx.AsyncClient(
        base_url=config.clean_api_base,
        headers={"User-Agent": f"sitewarm/{__version__}"},
        follow_redirects=True,
        timeout=30.0,
        **kwargs,
    )
