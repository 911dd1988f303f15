"""Write-ahead redo log that makes multi-block updates atomic.

On disk: a header block listing the home block numbers, followed by the
logged copies of those blocks in the same order.
"""

from __future__ import annotations

import struct
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from .buffercache import Buffer, BufferCache
from .layout import BSIZE, Superblock

LOGSIZE = 30
MAXOPBLOCKS = 10

__all__ = ["LOGSIZE", "MAXOPBLOCKS", "Log", "LogError"]


class LogError(Exception):
    """A transaction broke the rules of the log."""


class Log:
    """Groups file-system operations into transactions committed together."""

    def __init__(
        self,
        cache: BufferCache,
        dev: int,
        sb: Superblock,
        *,
        logsize: int = LOGSIZE,
        maxopblocks: int = MAXOPBLOCKS,
    ) -> None:
        if 4 * (1 + logsize) >= BSIZE:
            raise LogError("initlog: too big logheader")
        self._cache = cache
        self.dev = dev
        self.start = sb.logstart
        self.size = sb.nlog
        self.logsize = logsize
        self.maxopblocks = maxopblocks
        self.outstanding = 0
        self.committing = False
        self._blocks: list[int] = []
        self._cond = threading.Condition()
        self.recover()

    def _read_head(self) -> None:
        buf = self._cache.bread(self.dev, self.start)
        try:
            (n,) = struct.unpack_from("<i", buf.data)
            if not 0 <= n <= self.logsize:
                raise LogError(f"corrupt log header: {n} blocks")
            self._blocks = list(struct.unpack_from(f"<{n}i", buf.data, 4))
        finally:
            self._cache.brelse(buf)

    def _write_head(self) -> None:
        buf = self._cache.bread(self.dev, self.start)
        n = len(self._blocks)
        struct.pack_into(f"<{n + 1}i", buf.data, 0, n, *self._blocks)
        self._cache.bwrite(buf)
        self._cache.brelse(buf)

    def _install_trans(self) -> None:
        for tail, blockno in enumerate(self._blocks):
            lbuf = self._cache.bread(self.dev, self.start + tail + 1)
            dbuf = self._cache.bread(self.dev, blockno)
            dbuf.data[:] = lbuf.data
            self._cache.bwrite(dbuf)
            self._cache.brelse(lbuf)
            self._cache.brelse(dbuf)

    def _write_log(self) -> None:
        for tail, blockno in enumerate(self._blocks):
            to = self._cache.bread(self.dev, self.start + tail + 1)
            src = self._cache.bread(self.dev, blockno)
            to.data[:] = src.data
            self._cache.bwrite(to)
            self._cache.brelse(src)
            self._cache.brelse(to)

    def _commit(self) -> None:
        if self._blocks:
            self._write_log()
            self._write_head()  # the real commit point
            self._install_trans()
            self._blocks = []
            self._write_head()

    def recover(self) -> None:
        """Install any committed transaction found on disk, then clear the log."""
        self._read_head()
        self._install_trans()
        self._blocks = []
        self._write_head()

    def begin_op(self) -> None:
        """Start an operation, waiting while a commit runs or space is short."""
        with self._cond:
            while self.committing or (
                len(self._blocks) + (self.outstanding + 1) * self.maxopblocks
                > self.logsize
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation; the last one out commits."""
        do_commit = False
        with self._cond:
            self.outstanding -= 1
            if self.committing:
                raise LogError("log.committing")
            if self.outstanding == 0:
                do_commit = True
                self.committing = True
            else:
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    @contextmanager
    def transaction(self) -> Iterator[Log]:
        """Run the body between begin_op and end_op."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()

    def log_write(self, buf: Buffer) -> None:
        """Record a modified buffer in the current transaction and pin it."""
        if len(self._blocks) >= self.logsize or len(self._blocks) >= self.size - 1:
            raise LogError("too big a transaction")
        if self.outstanding < 1:
            raise LogError("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self._blocks:
                self._blocks.append(buf.blockno)
            buf.dirty = True