"""Abstract base class for persisted state stores."""

from abc import ABC, abstractmethod


class StateStore(ABC):
    """Page-scoped key-value store holding serialized warming state.

    Implementations report failures through their return values and never
    raise; callers treat a missing or unreadable value as "no prior state".
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Retrieve a stored value.

        Args:
            key: The key to retrieve

        Returns:
            The stored string, or None if missing or unreadable
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> bool:
        """Store a value, replacing any previous one.

        Args:
            key: The key to write
            value: The serialized value

        Returns:
            True if successful, False otherwise
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a stored value.

        Args:
            key: The key to delete

        Returns:
            True if deleted, False if not found or on error
        """
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if a key holds a value."""
        pass

    @abstractmethod
    async def clear(self) -> bool:
        """Remove every stored value.

        Returns:
            True if successful, False otherwise
        """
        pass
