"""State stores for persisting warming state across restarts."""

from sitewarm.storage.base import StateStore
from sitewarm.storage.filesystem import FileSystemStore
from sitewarm.storage.memory import MemoryStore

__all__ = ["StateStore", "FileSystemStore", "MemoryStore"]
