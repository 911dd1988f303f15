"""A disk whose blocks live in memory."""

from __future__ import annotations

import os
from pathlib import Path

from .layout import BSIZE

__all__ = ["DiskError", "MemoryDisk"]


class DiskError(Exception):
    """A block request the disk cannot serve."""


class MemoryDisk:
    """A disk image held in memory, addressed in blocks of BSIZE bytes."""

    def __init__(self, image: bytes = b"", *, nblocks: int = 0, dev: int = 1) -> None:
        self._image = bytearray(image) if image else bytearray(nblocks * BSIZE)
        self.dev = dev

    @classmethod
    def from_file(cls, path: str | os.PathLike) -> MemoryDisk:
        return cls(Path(path).read_bytes())

    @property
    def nblocks(self) -> int:
        return len(self._image) // BSIZE

    def _offset(self, blockno: int) -> int:
        if not 0 <= blockno < self.nblocks:
            raise DiskError(f"block {blockno} out of range")
        return blockno * BSIZE

    def read_block(self, blockno: int) -> bytes:
        off = self._offset(blockno)
        return bytes(self._image[off : off + BSIZE])

    def write_block(self, blockno: int, data: bytes) -> None:
        if len(data) != BSIZE:
            raise DiskError(f"a block is {BSIZE} bytes, got {len(data)}")
        off = self._offset(blockno)
        self._image[off : off + BSIZE] = data

    def save(self, path: str | os.PathLike) -> None:
        Path(path).write_bytes(bytes(self._image))