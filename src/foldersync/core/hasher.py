"""Streaming content hashing."""

import asyncio
import hashlib
from pathlib import Path
from typing import BinaryIO, Callable, Union

DEFAULT_CHUNK_SIZE = 8 * 1024


class ContentHasher:
    """Computes content hashes without loading whole files into memory.

    MD5 is the default because it is what Drive reports as ``md5Checksum``.
    """

    def __init__(self, algorithm: str = "md5", chunk_size: int = DEFAULT_CHUNK_SIZE):
        hashlib.new(algorithm)  # fail early on unknown algorithms
        self.algorithm = algorithm
        self.chunk_size = chunk_size

    def hash_stream(self, stream: BinaryIO) -> str:
        """Hash a readable binary stream from its current position to EOF."""
        digest = hashlib.new(self.algorithm)
        while True:
            chunk = stream.read(self.chunk_size)
            if not chunk:
                break
            digest.update(chunk)
        return digest.hexdigest()

    def hash_bytes(self, data: bytes) -> str:
        return hashlib.new(self.algorithm, data).hexdigest()

    def hash_file(self, path: Union[str, Path]) -> str:
        with open(path, "rb") as stream:
            return self.hash_stream(stream)

    def hash_opened(self, opener: Callable[[], BinaryIO]) -> str:
        """Hash a stream obtained from ``opener`` and close it afterwards."""
        with opener() as stream:
            return self.hash_stream(stream)

    async def hash_file_async(self, path: Union[str, Path]) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.hash_file, path)

    async def hash_opened_async(self, opener: Callable[[], BinaryIO]) -> str:
        """Hash in the default executor so the event loop is not blocked."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.hash_opened, opener)
