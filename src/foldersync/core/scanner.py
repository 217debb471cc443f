"""Local tree scanning."""

import asyncio
from dataclasses import replace
from functools import partial
from pathlib import Path
from typing import List, Optional, Union

from .filesystem import FileSystemProvider
from .hasher import ContentHasher
from .models import LocalEntry
from ..utils.logging import get_logger


class LocalTreeScanner:
    """Enumerates a local root and hashes every file found."""

    def __init__(self, filesystem: FileSystemProvider, hasher: Optional[ContentHasher] = None):
        self.filesystem = filesystem
        self.hasher = hasher or ContentHasher()
        self.logger = get_logger(self.__class__.__name__)

    async def scan(self, root: Union[str, Path]) -> List[LocalEntry]:
        """Scan root and return every file and folder below it.

        Args:
            root: Local sync root

        Returns:
            LocalEntry objects with content hashes filled in for files
        """
        loop = asyncio.get_running_loop()
        entries = await loop.run_in_executor(None, self._scan_blocking, root)

        files = sum(1 for entry in entries if not entry.is_directory)
        self.logger.info(
            "Scanned local folder",
            root=str(root),
            files=files,
            folders=len(entries) - files
        )
        return entries

    def _scan_blocking(self, root: Union[str, Path]) -> List[LocalEntry]:
        entries: List[LocalEntry] = []
        for entry in self.filesystem.scan(root):
            if not entry.is_directory and entry.content_hash is None:
                opener = partial(self.filesystem.open, root, entry.relative_path)
                try:
                    entry = replace(entry, content_hash=self.hasher.hash_opened(opener))
                except OSError as e:
                    # Unreadable files are still listed; the planner falls back to timestamps.
                    self.logger.warning(
                        "Failed to hash local file",
                        path=entry.relative_path,
                        error=str(e)
                    )
            entries.append(entry)
        return entries
