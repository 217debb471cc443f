"""Filesystem provider interface and the local-disk implementation."""

import mimetypes
import os
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterator, Optional, Union

from .models import LocalEntry
from ..utils.logging import get_logger

PARTIAL_SUFFIX = ".foldersync-partial"

PathLike = Union[str, Path]


class FileSystemProvider(ABC):
    """Access to the local side of a sync pair.

    Paths passed to every method except ``scan`` are relative to ``root``
    and use forward slashes.
    """

    @abstractmethod
    def scan(self, root: PathLike) -> Iterator[LocalEntry]:
        """Yield every file and folder under root, without content hashes."""
        pass

    @abstractmethod
    def open(self, root: PathLike, relative_path: str) -> BinaryIO:
        """Open a file for reading."""
        pass

    @abstractmethod
    def create(
        self,
        root: PathLike,
        relative_path: str,
        mime_type: Optional[str] = None,
        append: bool = False
    ) -> BinaryIO:
        """Open a file for writing, creating missing parent folders."""
        pass

    @abstractmethod
    def delete(self, root: PathLike, relative_path: str) -> bool:
        """Delete a file or an empty folder; False when nothing was removed."""
        pass

    @abstractmethod
    def ensure_path(self, root: PathLike, relative_path: str) -> Path:
        """Create a folder and its parents if missing."""
        pass

    @abstractmethod
    def size(self, root: PathLike, relative_path: str) -> Optional[int]:
        """Size of a file, or None when it does not exist."""
        pass

    @abstractmethod
    def move(self, root: PathLike, source: str, destination: str) -> None:
        """Atomically replace destination with source."""
        pass

    @abstractmethod
    def stat(self, root: PathLike, relative_path: str) -> Optional[LocalEntry]:
        """Current metadata for one path, or None when it does not exist."""
        pass


class LocalFileSystem(FileSystemProvider):
    """Filesystem provider backed by the local disk."""

    def __init__(self, follow_symlinks: bool = False):
        self.follow_symlinks = follow_symlinks
        self.logger = get_logger(self.__class__.__name__)

    def resolve(self, root: PathLike, relative_path: str) -> Path:
        """Absolute path for a relative path, refusing to escape the root."""
        root_path = Path(root)
        relative = PurePosixPath(relative_path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Path escapes sync root: {relative_path}")
        return root_path.joinpath(*relative.parts)

    def scan(self, root: PathLike) -> Iterator[LocalEntry]:
        root_path = Path(root)
        if not root_path.is_dir():
            raise FileNotFoundError(f"Sync root does not exist: {root_path}")

        for dirpath, dirnames, filenames in os.walk(root_path, followlinks=self.follow_symlinks):
            dirnames.sort()
            current = Path(dirpath)
            for name in dirnames:
                path = current / name
                if path.is_symlink() and not self.follow_symlinks:
                    continue
                yield self._build_entry(path, root_path)
            for name in sorted(filenames):
                if name.endswith(PARTIAL_SUFFIX):
                    continue
                path = current / name
                if path.is_symlink() and not self.follow_symlinks:
                    continue
                yield self._build_entry(path, root_path)

    def open(self, root: PathLike, relative_path: str) -> BinaryIO:
        return open(self.resolve(root, relative_path), "rb")

    def create(
        self,
        root: PathLike,
        relative_path: str,
        mime_type: Optional[str] = None,
        append: bool = False
    ) -> BinaryIO:
        path = self.resolve(root, relative_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        return open(path, "ab" if append else "wb")

    def delete(self, root: PathLike, relative_path: str) -> bool:
        path = self.resolve(root, relative_path)
        if not path.exists() and not path.is_symlink():
            return False
        if path.is_dir() and not path.is_symlink():
            if any(path.iterdir()):
                self.logger.warning(
                    "Folder not empty, leaving it in place",
                    path=relative_path
                )
                return False
            path.rmdir()
        else:
            path.unlink()
        return True

    def ensure_path(self, root: PathLike, relative_path: str) -> Path:
        path = self.resolve(root, relative_path)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def size(self, root: PathLike, relative_path: str) -> Optional[int]:
        path = self.resolve(root, relative_path)
        if not path.is_file():
            return None
        return path.stat().st_size

    def move(self, root: PathLike, source: str, destination: str) -> None:
        target = self.resolve(root, destination)
        target.parent.mkdir(parents=True, exist_ok=True)
        os.replace(self.resolve(root, source), target)

    def stat(self, root: PathLike, relative_path: str) -> Optional[LocalEntry]:
        path = self.resolve(root, relative_path)
        if not path.exists():
            return None
        return self._build_entry(path, Path(root))

    def _build_entry(self, path: Path, root: Path) -> LocalEntry:
        stat = path.stat()
        is_directory = path.is_dir()
        mime_type = None
        if not is_directory:
            mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return LocalEntry(
            relative_path=path.relative_to(root).as_posix(),
            name=path.name,
            is_directory=is_directory,
            size=0 if is_directory else stat.st_size,
            modified_time=stat.st_mtime,
            mime_type=mime_type,
        )
