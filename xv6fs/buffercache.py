"""Buffer cache: in-memory copies of disk blocks, recycled least recently used first.

A buffer returned by ``bread`` is held by the calling thread until ``brelse``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from .disk import MemoryDisk
from .layout import BSIZE

NBUF = 30

__all__ = ["NBUF", "Buffer", "BufferCache", "CacheError"]


class CacheError(Exception):
    """Misuse of the buffer cache, or no buffer free to recycle."""


@dataclass(eq=False)
class Buffer:
    """A cached block. ``valid``: read from disk; ``dirty``: must be written."""

    dev: int = 0
    blockno: int = 0
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _owner: int | None = field(default=None, init=False, repr=False)

    @property
    def held(self) -> bool:
        """True when the calling thread holds this buffer."""
        return self._owner == threading.get_ident()

    def _acquire(self) -> None:
        self._lock.acquire()
        self._owner = threading.get_ident()

    def _release(self) -> None:
        self._owner = None
        self._lock.release()


class BufferCache:
    """A fixed pool of buffers in front of a disk."""

    def __init__(self, disk: MemoryDisk, nbuf: int = NBUF) -> None:
        if nbuf < 1:
            raise ValueError("the cache needs at least one buffer")
        self._disk = disk
        self._lock = threading.Lock()
        # Most recently used first.
        self._mru = [Buffer() for _ in range(nbuf)]

    def _get(self, dev: int, blockno: int) -> Buffer:
        with self._lock:
            buf = next(
                (b for b in self._mru if b.dev == dev and b.blockno == blockno), None
            )
            if buf is not None:
                if buf.held:
                    raise CacheError(f"block {blockno} is already held by this thread")
                buf.refcnt += 1
            else:
                # A dirty buffer with no references is still pinned by the log.
                buf = next(
                    (b for b in reversed(self._mru) if b.refcnt == 0 and not b.dirty),
                    None,
                )
                if buf is None:
                    raise CacheError("bget: no buffers")
                buf.dev, buf.blockno = dev, blockno
                buf.valid = buf.dirty = False
                buf.refcnt = 1
        buf._acquire()
        return buf

    def _sync(self, buf: Buffer) -> None:
        if not buf.held:
            raise CacheError("iderw: buf not locked")
        if buf.valid and not buf.dirty:
            raise CacheError("iderw: nothing to do")
        if buf.dev != self._disk.dev:
            raise CacheError(f"iderw: request not for disk {self._disk.dev}")
        if buf.dirty:
            self._disk.write_block(buf.blockno, bytes(buf.data))
            buf.dirty = False
        else:
            buf.data[:] = self._disk.read_block(buf.blockno)
        buf.valid = True

    def bread(self, dev: int, blockno: int) -> Buffer:
        """Return a held buffer with the contents of the block."""
        buf = self._get(dev, blockno)
        if not buf.valid:
            try:
                self._sync(buf)
            except Exception:
                self.brelse(buf)
                raise
        return buf

    def bwrite(self, buf: Buffer) -> None:
        """Write the buffer's contents to disk; the caller must hold it."""
        if not buf.held:
            raise CacheError("bwrite")
        buf.dirty = True
        self._sync(buf)

    def brelse(self, buf: Buffer) -> None:
        """Release a held buffer and mark it most recently used."""
        if not buf.held:
            raise CacheError("brelse")
        buf._release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._mru.remove(buf)
                self._mru.insert(0, buf)