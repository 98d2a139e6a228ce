"""In-memory state store."""

from sitewarm.storage.base import StateStore


class MemoryStore(StateStore):
    """Dict-backed store for ephemeral runs and tests."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> bool:
        self._data[key] = value
        return True

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def exists(self, key: str) -> bool:
        return key in self._data

    async def clear(self) -> bool:
        self._data.clear()
        return True
