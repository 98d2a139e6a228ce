"""Exceptions raised inside the warming services.

None of these cross a public entry point: they are caught where the
failure is absorbed and reported through statistics, cache metadata
and logs.
"""


class WarmingError(Exception):
    """Base class for warming failures."""


class ProbeFailedError(WarmingError):
    """The backend answered with a non-2xx status."""

    def __init__(self, url: str, status_code: int, reason: str = "") -> None:
        self.url = url
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"HTTP {status_code}: {reason}".rstrip(": "))


class MalformedResponseError(WarmingError):
    """The content endpoint returned JSON of an unexpected shape."""
