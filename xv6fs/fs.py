"""File system over the log: block allocation, inodes, directories and path names.

Inodes move through these states:

* allocated: the on-disk type is non-zero (``ialloc`` allocates, ``iput``
  frees once both links and references are gone);
* referenced: the cache entry has ``ref > 0`` (``iget``/``idup``/``iput``);
* valid: ``ilock`` has read the on-disk copy into the cache entry;
* locked: only the holder may examine or modify the inode's fields.

Every call that may write to disk must run inside ``log.transaction()``.
"""

from __future__ import annotations

import struct
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from .buffercache import NBUF, Buffer, BufferCache
from .disk import MemoryDisk
from .layout import (
    BPB,
    BSIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    Dirent,
    DiskInode,
    InodeType,
    Superblock,
    bblock,
    iblock,
)
from .log import LOGSIZE, MAXOPBLOCKS, Log

NINODE = 50
NDEV = 10

__all__ = [
    "NDEV",
    "NINODE",
    "FileSystem",
    "FileSystemError",
    "Inode",
    "Stat",
    "skipelem",
]

_ADDR = struct.Struct("<I")


class FileSystemError(Exception):
    """A file-system operation that cannot be carried out."""


@dataclass(frozen=True)
class Stat:
    """Metadata about an inode."""

    dev: int
    ino: int
    type: int
    nlink: int
    size: int


@dataclass(eq=False)
class Inode:
    """The in-memory copy of an inode; the lock guards every field but ref."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = InodeType.FREE
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _owner: int | None = field(default=None, init=False, repr=False)

    @property
    def held(self) -> bool:
        """True when the calling thread holds this inode's lock."""
        return self._owner == threading.get_ident()

    def _acquire(self) -> None:
        self._lock.acquire()
        self._owner = threading.get_ident()

    def _release(self) -> None:
        self._owner = None
        self._lock.release()


def skipelem(path: str) -> tuple[str, str] | None:
    """Split off the first path element.

    Returns ``(name, rest)`` where ``rest`` has no leading slashes and ``name``
    is cut to DIRSIZ characters, or None when there is no element left.
    """
    path = path.lstrip("/")
    if not path:
        return None
    name, _, rest = path.partition("/")
    return name[:DIRSIZ], rest.lstrip("/")


def _namecmp(s: str, t: str) -> bool:
    return s[:DIRSIZ] == t[:DIRSIZ]


class FileSystem:
    """The file system on one disk, with its buffer cache, log and inode cache.

    ``devsw`` maps a major device number to an object with ``read(ip, n)``
    returning bytes and ``write(ip, data)`` returning the count written.
    """

    def __init__(
        self,
        disk: MemoryDisk,
        *,
        nbuf: int = NBUF,
        ninode: int = NINODE,
        logsize: int = LOGSIZE,
        maxopblocks: int = MAXOPBLOCKS,
    ) -> None:
        self.dev = disk.dev
        self.cache = BufferCache(disk, nbuf)
        self.sb = self._readsb()
        self.log = Log(
            self.cache, self.dev, self.sb, logsize=logsize, maxopblocks=maxopblocks
        )
        self.devsw: dict[int, object] = {}
        self._icache_lock = threading.Lock()
        self._icache = [Inode() for _ in range(ninode)]

    # Blocks.

    @contextmanager
    def _block(self, blockno: int) -> Iterator[Buffer]:
        buf = self.cache.bread(self.dev, blockno)
        try:
            yield buf
        finally:
            self.cache.brelse(buf)

    def _readsb(self) -> Superblock:
        with self._block(1) as bp:
            return Superblock.unpack(bytes(bp.data[: Superblock.SIZE]))

    def _bzero(self, blockno: int) -> None:
        with self._block(blockno) as bp:
            bp.data[:] = bytes(BSIZE)
            self.log.log_write(bp)

    def _balloc(self) -> int:
        """Allocate a zeroed disk block."""
        for b in range(0, self.sb.size, BPB):
            found = None
            with self._block(bblock(b, self.sb)) as bp:
                for bi in range(min(BPB, self.sb.size - b)):
                    m = 1 << (bi % 8)
                    if not bp.data[bi // 8] & m:
                        bp.data[bi // 8] |= m
                        self.log.log_write(bp)
                        found = b + bi
                        break
            if found is not None:
                self._bzero(found)
                return found
        raise FileSystemError("balloc: out of blocks")

    def _bfree(self, b: int) -> None:
        with self._block(bblock(b, self.sb)) as bp:
            bi = b % BPB
            m = 1 << (bi % 8)
            if not bp.data[bi // 8] & m:
                raise FileSystemError("freeing free block")
            bp.data[bi // 8] &= ~m & 0xFF
            self.log.log_write(bp)

    # Inodes.

    def _dinode_slot(self, inum: int) -> tuple[int, int]:
        return iblock(inum, self.sb), (inum % IPB) * DiskInode.SIZE

    def ialloc(self, type: int) -> Inode:
        """Allocate an inode of the given type; returned referenced, unlocked."""
        for inum in range(1, self.sb.ninodes):
            bn, off = self._dinode_slot(inum)
            with self._block(bn) as bp:
                dip = DiskInode.unpack(bytes(bp.data[off : off + DiskInode.SIZE]))
                if dip.type != InodeType.FREE:
                    continue
                bp.data[off : off + DiskInode.SIZE] = DiskInode(type=int(type)).pack()
                self.log.log_write(bp)
            return self.iget(inum)
        raise FileSystemError("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy a modified in-memory inode to disk; the caller holds its lock."""
        bn, off = self._dinode_slot(ip.inum)
        with self._block(bn) as bp:
            din = DiskInode(
                int(ip.type), ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs)
            )
            bp.data[off : off + DiskInode.SIZE] = din.pack()
            self.log.log_write(bp)

    def iget(self, inum: int) -> Inode:
        """Find or make the cache entry for an inode; neither locks nor reads it."""
        with self._icache_lock:
            empty = None
            for ip in self._icache:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise FileSystemError("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        """Take another reference to ip."""
        with self._icache_lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode) -> None:
        """Lock the inode, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise FileSystemError("ilock")
        ip._acquire()
        if not ip.valid:
            bn, off = self._dinode_slot(ip.inum)
            with self._block(bn) as bp:
                din = DiskInode.unpack(bytes(bp.data[off : off + DiskInode.SIZE]))
            ip.type = din.type
            ip.major = din.major
            ip.minor = din.minor
            ip.nlink = din.nlink
            ip.size = din.size
            ip.addrs = list(din.addrs)
            ip.valid = True
            if ip.type == InodeType.FREE:
                ip._release()
                raise FileSystemError("ilock: no type")

    def iunlock(self, ip: Inode) -> None:
        if ip is None or not ip.held or ip.ref < 1:
            raise FileSystemError("iunlock")
        ip._release()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last and unlinked."""
        ip._acquire()
        try:
            if ip.valid and ip.nlink == 0:
                with self._icache_lock:
                    r = ip.ref
                if r == 1:
                    self._itrunc(ip)
                    ip.type = InodeType.FREE
                    self.iupdate(ip)
                    ip.valid = False
        finally:
            ip._release()
        with self._icache_lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        self.iunlock(ip)
        self.iput(ip)

    # Inode content.

    def _bmap(self, ip: Inode, bn: int) -> int:
        """Disk block of the bn-th block of ip, allocated if missing."""
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self._balloc()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self._balloc()
            with self._block(ip.addrs[NDIRECT]) as bp:
                (addr,) = _ADDR.unpack_from(bp.data, 4 * bn)
                if addr == 0:
                    addr = self._balloc()
                    _ADDR.pack_into(bp.data, 4 * bn, addr)
                    self.log.log_write(bp)
            return addr
        raise FileSystemError("bmap: out of range")

    def _itrunc(self, ip: Inode) -> None:
        for i in range(NDIRECT):
            if ip.addrs[i]:
                self._bfree(ip.addrs[i])
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            with self._block(ip.addrs[NDIRECT]) as bp:
                for (addr,) in _ADDR.iter_unpack(bytes(bp.data)):
                    if addr:
                        self._bfree(addr)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        return Stat(ip.dev, ip.inum, int(ip.type), ip.nlink, ip.size)

    def _device(self, ip: Inode, op: str):
        dev = self.devsw.get(ip.major) if 0 <= ip.major < NDEV else None
        handler = getattr(dev, op, None)
        if handler is None:
            raise FileSystemError(f"no {op} handler for device {ip.major}")
        return handler

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to n bytes at off; the caller holds ip's lock."""
        if ip.type == InodeType.DEV:
            return self._device(ip, "read")(ip, n)
        if off < 0 or n < 0 or off > ip.size:
            raise FileSystemError(f"read of {n} bytes at {off} out of range")
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            start = off % BSIZE
            m = min(n - len(out), BSIZE - start)
            with self._block(self._bmap(ip, off // BSIZE)) as bp:
                out += bp.data[start : start + m]
            off += m
        return bytes(out)

    def writei(self, ip: Inode, data: bytes, off: int) -> int:
        """Write data at off, growing the file; the caller holds ip's lock."""
        if ip.type == InodeType.DEV:
            return self._device(ip, "write")(ip, data)
        n = len(data)
        if off < 0 or off > ip.size:
            raise FileSystemError(f"write at {off} past end of file")
        if off + n > MAXFILE * BSIZE:
            raise FileSystemError("write past maximum file size")
        tot = 0
        while tot < n:
            start = off % BSIZE
            m = min(n - tot, BSIZE - start)
            with self._block(self._bmap(ip, off // BSIZE)) as bp:
                bp.data[start : start + m] = data[tot : tot + m]
                self.log.log_write(bp)
            tot += m
            off += m
        if n > 0 and off > ip.size:
            ip.size = off
            self.iupdate(ip)
        return n

    # Directories.

    def _entries(self, dp: Inode) -> Iterator[tuple[int, Dirent]]:
        for off in range(0, dp.size, Dirent.SIZE):
            raw = self.readi(dp, off, Dirent.SIZE)
            if len(raw) != Dirent.SIZE:
                raise FileSystemError("directory read")
            yield off, Dirent.unpack(raw)

    def dirlookup(self, dp: Inode, name: str) -> tuple[Inode, int] | None:
        """Find name in directory dp; return its referenced inode and entry offset."""
        if dp.type != InodeType.DIR:
            raise FileSystemError("dirlookup not DIR")
        for off, de in self._entries(dp):
            if de.inum != 0 and _namecmp(name, de.name):
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry (name, inum) to directory dp; the name must be new."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FileSystemError(f"{name!r} already exists")
        off = next(
            (off for off, de in self._entries(dp) if de.inum == 0), dp.size
        )
        entry = Dirent(inum, name).pack()
        if self.writei(dp, entry, off) != len(entry):
            raise FileSystemError("dirlink")

    # Paths.

    def _namex(
        self, path: str, parent: bool, cwd: Inode | None
    ) -> tuple[Inode, str] | None:
        if path.startswith("/") or cwd is None:
            ip = self.iget(ROOTINO)
        else:
            ip = self.idup(cwd)
        name = ""
        while (elem := skipelem(path)) is not None:
            name, path = elem
            self.ilock(ip)
            if ip.type != InodeType.DIR:
                self.iunlockput(ip)
                return None
            if parent and path == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            self.iunlockput(ip)
            if found is None:
                return None
            ip = found[0]
        if parent:
            self.iput(ip)
            return None
        return ip, name

    def namei(self, path: str, cwd: Inode | None = None) -> Inode | None:
        """Referenced inode for path, or None; relative paths start at cwd."""
        found = self._namex(path, False, cwd)
        return None if found is None else found[0]

    def nameiparent(
        self, path: str, cwd: Inode | None = None
    ) -> tuple[Inode, str] | None:
        """Referenced inode of the parent of path and the final element, or None."""
        return self._namex(path, True, cwd)