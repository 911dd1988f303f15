"""Build a file-system image holding a root directory and a set of files."""

from __future__ import annotations

import struct
import sys
from collections.abc import Iterable, Mapping
from pathlib import Path

from .layout import (
    BPB,
    BSIZE,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    Dirent,
    DiskInode,
    InodeType,
    Superblock,
    iblock,
)
from .log import LOGSIZE

FSSIZE = 1000
NINODES = 200

__all__ = ["FSSIZE", "NINODES", "ImageBuilder", "main", "make_image"]

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out a fresh image: boot, superblock, log, inodes, bitmap, data."""

    def __init__(
        self, fssize: int = FSSIZE, ninodes: int = NINODES, nlog: int = LOGSIZE
    ) -> None:
        self.nbitmap = fssize // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nlog = nlog
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = fssize - self.nmeta
        if self.nblocks <= 0:
            raise ValueError(f"{fssize} blocks leave no room for data")
        self.sb = Superblock(
            size=fssize,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        self._image = bytearray(fssize * BSIZE)
        self._wsect(1, self.sb.pack().ljust(BSIZE, b"\0"))
        self.freeinode = 1
        self.freeblock = self.nmeta
        self._finished = False

        self.rootino = self.ialloc(InodeType.DIR)
        if self.rootino != ROOTINO:
            raise RuntimeError("root directory did not get the root inode")
        self.iappend(self.rootino, Dirent(self.rootino, ".").pack())
        self.iappend(self.rootino, Dirent(self.rootino, "..").pack())

    def _rsect(self, sec: int) -> bytes:
        if not 0 <= sec < self.sb.size:
            raise ValueError(f"sector {sec} outside the image")
        return bytes(self._image[sec * BSIZE : (sec + 1) * BSIZE])

    def _wsect(self, sec: int, data: bytes) -> None:
        if not 0 <= sec < self.sb.size:
            raise ValueError(f"sector {sec} outside the image")
        self._image[sec * BSIZE : (sec + 1) * BSIZE] = data

    def _inode_slot(self, inum: int) -> tuple[int, int]:
        return iblock(inum, self.sb), (inum % IPB) * DiskInode.SIZE

    def _rinode(self, inum: int) -> DiskInode:
        bn, off = self._inode_slot(inum)
        return DiskInode.unpack(self._rsect(bn)[off : off + DiskInode.SIZE])

    def _winode(self, inum: int, din: DiskInode) -> None:
        bn, off = self._inode_slot(inum)
        block = bytearray(self._rsect(bn))
        block[off : off + DiskInode.SIZE] = din.pack()
        self._wsect(bn, block)

    def _take_block(self) -> int:
        blockno = self.freeblock
        if blockno >= self.sb.size:
            raise ValueError("image is out of data blocks")
        self.freeblock += 1
        return blockno

    def _check_open(self) -> None:
        if self._finished:
            raise RuntimeError("image already finished")

    def ialloc(self, type: int) -> int:
        """Allocate the next inode with one link and no content."""
        self._check_open()
        inum = self.freeinode
        self.freeinode += 1
        self._winode(inum, DiskInode(type=int(type), nlink=1, size=0))
        return inum

    def iappend(self, inum: int, data: bytes) -> None:
        """Append bytes to an inode's content, allocating blocks as needed."""
        self._check_open()
        din = self._rinode(inum)
        off = din.size
        pos, n = 0, len(data)
        while pos < n:
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._take_block()
                x = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._take_block()
                indirect = list(_INDIRECT.unpack(self._rsect(din.addrs[NDIRECT])))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._take_block()
                    self._wsect(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
                x = indirect[fbn - NDIRECT]
            n1 = min(n - pos, (fbn + 1) * BSIZE - off)
            block = bytearray(self._rsect(x))
            start = off - fbn * BSIZE
            block[start : start + n1] = data[pos : pos + n1]
            self._wsect(x, block)
            pos += n1
            off += n1
        din.size = off
        self._winode(inum, din)

    def add_file(self, name: str, data: bytes) -> int:
        """Add a file to the root directory; a leading '_' is dropped from its name."""
        if "/" in name:
            raise ValueError(f"file name {name!r} contains '/'")
        if name.startswith("_"):
            name = name[1:]
        inum = self.ialloc(InodeType.FILE)
        self.iappend(self.rootino, Dirent(inum, name).pack())
        self.iappend(inum, data)
        return inum

    def finish(self) -> bytes:
        """Round the root directory size up, write the bitmap, return the image."""
        if not self._finished:
            din = self._rinode(self.rootino)
            din.size = (din.size // BSIZE + 1) * BSIZE
            self._winode(self.rootino, din)
            self._balloc(self.freeblock)
            self._finished = True
        return bytes(self._image)

    def _balloc(self, used: int) -> None:
        if used >= BPB:
            raise ValueError(f"{used} used blocks do not fit one bitmap block")
        bitmap = bytearray(BSIZE)
        for i in range(used):
            bitmap[i // 8] |= 1 << (i % 8)
        self._wsect(self.sb.bmapstart, bitmap)


def make_image(
    files: Mapping[str, bytes] | Iterable[tuple[str, bytes]] = (),
    fssize: int = FSSIZE,
    ninodes: int = NINODES,
    nlog: int = LOGSIZE,
) -> bytes:
    """Build an image holding the given (name, content) files in its root."""
    builder = ImageBuilder(fssize, ninodes, nlog)
    items = files.items() if isinstance(files, Mapping) else files
    for name, data in items:
        builder.add_file(name, data)
    return builder.finish()


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    image_path, names = args[0], args[1:]

    builder = ImageBuilder()
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.sb.size}"
    )
    for name in names:
        try:
            data = Path(name).read_bytes() if "/" not in name else None
        except OSError as exc:
            print(f"{name}: {exc.strerror}", file=sys.stderr)
            return 1
        try:
            if data is None:
                raise ValueError(f"file name {name!r} contains '/'")
            builder.add_file(name, data)
        except ValueError as exc:
            print(f"mkfs: {exc}", file=sys.stderr)
            return 1

    image = builder.finish()
    print(f"balloc: first {builder.freeblock} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")
    try:
        Path(image_path).write_bytes(image)
    except OSError as exc:
        print(f"{image_path}: {exc.strerror}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())