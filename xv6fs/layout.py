"""On-disk layout of the file system: block geometry and packed records.

Disk layout:
[ boot block | super block | log | inode blocks | free bit map | data blocks ]
"""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field
from typing import ClassVar

ROOTINO = 1
BSIZE = 512
NDIRECT = 12
NINDIRECT = BSIZE // 4
MAXFILE = NDIRECT + NINDIRECT
DIRSIZ = 14
BPB = BSIZE * 8

__all__ = [
    "BPB",
    "BSIZE",
    "DIRSIZ",
    "IPB",
    "MAXFILE",
    "NDIRECT",
    "NINDIRECT",
    "ROOTINO",
    "Dirent",
    "DiskInode",
    "InodeType",
    "Superblock",
    "bblock",
    "iblock",
]


class InodeType(enum.IntEnum):
    """Kind of object an inode describes; FREE marks an unallocated inode."""

    FREE = 0
    DIR = 1
    FILE = 2
    DEV = 3


def _unpack(fmt: struct.Struct, data: bytes, what: str) -> tuple:
    if len(data) < fmt.size:
        raise ValueError(f"{what} needs {fmt.size} bytes, got {len(data)}")
    return fmt.unpack_from(data)


@dataclass
class Superblock:
    """Describes where each region of the disk starts and how large it is."""

    size: int = 0
    nblocks: int = 0
    ninodes: int = 0
    nlog: int = 0
    logstart: int = 0
    inodestart: int = 0
    bmapstart: int = 0

    _FORMAT: ClassVar[struct.Struct] = struct.Struct("<7I")
    SIZE: ClassVar[int] = _FORMAT.size

    def pack(self) -> bytes:
        return self._FORMAT.pack(
            self.size,
            self.nblocks,
            self.ninodes,
            self.nlog,
            self.logstart,
            self.inodestart,
            self.bmapstart,
        )

    @classmethod
    def unpack(cls, data: bytes) -> Superblock:
        return cls(*_unpack(cls._FORMAT, data, "superblock"))


@dataclass
class DiskInode:
    """The on-disk form of an inode."""

    type: int = InodeType.FREE
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))

    _FORMAT: ClassVar[struct.Struct] = struct.Struct(f"<4hI{NDIRECT + 1}I")
    SIZE: ClassVar[int] = _FORMAT.size

    def pack(self) -> bytes:
        if len(self.addrs) != NDIRECT + 1:
            raise ValueError(f"an inode holds {NDIRECT + 1} block addresses")
        return self._FORMAT.pack(
            self.type, self.major, self.minor, self.nlink, self.size, *self.addrs
        )

    @classmethod
    def unpack(cls, data: bytes) -> DiskInode:
        values = _unpack(cls._FORMAT, data, "inode")
        type_, major, minor, nlink, size = values[:5]
        return cls(type_, major, minor, nlink, size, list(values[5:]))


@dataclass
class Dirent:
    """A directory entry; an inum of zero marks a free slot."""

    inum: int = 0
    name: str = ""

    _FORMAT: ClassVar[struct.Struct] = struct.Struct(f"<H{DIRSIZ}s")
    SIZE: ClassVar[int] = _FORMAT.size

    def pack(self) -> bytes:
        # Names of DIRSIZ bytes or more are cut and stored without a terminator.
        return self._FORMAT.pack(self.inum, self.name.encode("latin-1")[:DIRSIZ])

    @classmethod
    def unpack(cls, data: bytes) -> Dirent:
        inum, raw = _unpack(cls._FORMAT, data, "directory entry")
        return cls(inum, raw.split(b"\0", 1)[0].decode("latin-1"))


IPB = BSIZE // DiskInode.SIZE


def iblock(inum: int, sb: Superblock) -> int:
    """Block holding inode ``inum``."""
    return inum // IPB + sb.inodestart


def bblock(b: int, sb: Superblock) -> int:
    """Bitmap block holding the bit for block ``b``."""
    return b // BPB + sb.bmapstart