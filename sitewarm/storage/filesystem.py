"""File system backed state store."""

import asyncio
import logging
import shutil
from pathlib import Path

from sitewarm.errors import ErrorCategory, log_failure
from sitewarm.storage.base import StateStore

logger = logging.getLogger(__name__)


class FileSystemStore(StateStore):
    """Stores each key as a small UTF-8 file under a state directory."""

    def __init__(self, state_dir: Path | None = None):
        """Initialize filesystem store.

        Args:
            state_dir: Directory for state files. Defaults to .cache/warming
        """
        self.state_dir = state_dir or Path.cwd() / ".cache" / "warming"

    def _get_file_path(self, key: str) -> Path:
        """Get the file path for a key."""
        safe_key = key.replace(":", "_").replace("/", "_")
        return self.state_dir / f"{safe_key}.json"

    def _write(self, file_path: Path, value: str) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = file_path.with_suffix(".tmp")
        tmp_path.write_text(value, encoding="utf-8")
        tmp_path.replace(file_path)

    async def get(self, key: str) -> str | None:
        """Retrieve a stored value."""
        file_path = self._get_file_path(key)

        if not file_path.exists():
            return None

        try:
            return await asyncio.to_thread(file_path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            log_failure(logger, e, ErrorCategory.PERSISTENCE, "Failed to read state", key=key)
            return None

    async def set(self, key: str, value: str) -> bool:
        """Store a value, replacing any previous one."""
        file_path = self._get_file_path(key)

        try:
            await asyncio.to_thread(self._write, file_path, value)
            return True
        except OSError as e:
            log_failure(logger, e, ErrorCategory.PERSISTENCE, "Failed to write state", key=key)
            return False

    async def delete(self, key: str) -> bool:
        """Delete a stored value."""
        file_path = self._get_file_path(key)

        if not file_path.exists():
            return False

        try:
            await asyncio.to_thread(file_path.unlink)
            return True
        except OSError as e:
            log_failure(logger, e, ErrorCategory.PERSISTENCE, "Failed to delete state", key=key)
            return False

    async def exists(self, key: str) -> bool:
        """Check if a key holds a value."""
        return self._get_file_path(key).exists()

    async def clear(self) -> bool:
        """Remove every stored value."""
        try:
            if self.state_dir.exists():
                await asyncio.to_thread(shutil.rmtree, self.state_dir)
            return True
        except OSError as e:
            log_failure(logger, e, ErrorCategory.PERSISTENCE, "Failed to clear state")
            return False
