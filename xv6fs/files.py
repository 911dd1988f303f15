"""Open files and pipes: reference-counted handles on inodes and pipe buffers."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass

from .fs import FileSystem, FileSystemError, Inode, Stat
from .layout import BSIZE

PIPESIZE = 512

__all__ = ["PIPESIZE", "FileKind", "OpenFile", "Pipe"]

# Guards the reference counts of every open file.
_ftable_lock = threading.Lock()


class FileKind(enum.Enum):
    """What an open file refers to."""

    NONE = 0
    PIPE = 1
    INODE = 2


class Pipe:
    """A bounded byte channel between a reading end and a writing end."""

    def __init__(self) -> None:
        self._data = bytearray(PIPESIZE)
        self.nread = 0
        self.nwrite = 0
        self.readopen = True
        self.writeopen = True
        self._cond = threading.Condition()

    def _put(self, chunk: bytes) -> None:
        start = self.nwrite % PIPESIZE
        first = chunk[: PIPESIZE - start]
        self._data[start : start + len(first)] = first
        rest = chunk[len(first) :]
        self._data[: len(rest)] = rest
        self.nwrite += len(chunk)

    def _take(self, count: int) -> bytes:
        start = self.nread % PIPESIZE
        first = bytes(self._data[start : min(start + count, PIPESIZE)])
        rest = bytes(self._data[: count - len(first)])
        self.nread += count
        return first + rest

    def write(self, data: bytes) -> int:
        """Write all of data, waiting while the pipe is full.

        Raises BrokenPipeError if the pipe is full and the reader has gone.
        """
        data = bytes(data)
        pos = 0
        with self._cond:
            while pos < len(data):
                while self.nwrite == self.nread + PIPESIZE:
                    if not self.readopen:
                        raise BrokenPipeError("pipe has no reader")
                    self._cond.notify_all()
                    self._cond.wait()
                space = PIPESIZE - (self.nwrite - self.nread)
                chunk = data[pos : pos + space]
                self._put(chunk)
                pos += len(chunk)
            self._cond.notify_all()
        return len(data)

    def read(self, n: int) -> bytes:
        """Read up to n bytes, waiting until data arrives or the writer closes."""
        with self._cond:
            while self.nread == self.nwrite and self.writeopen:
                self._cond.wait()
            out = self._take(max(0, min(n, self.nwrite - self.nread)))
            self._cond.notify_all()
        return out

    def close(self, writable: bool) -> None:
        """Close the writing end if writable, otherwise the reading end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        """True once both ends are closed."""
        return not self.readopen and not self.writeopen


@dataclass(eq=False)
class OpenFile:
    """An open file: a pipe end or an inode with a read/write offset."""

    kind: FileKind = FileKind.NONE
    readable: bool = False
    writable: bool = False
    pipe: Pipe | None = None
    ip: Inode | None = None
    fs: FileSystem | None = None
    off: int = 0
    ref: int = 1

    def read(self, n: int) -> bytes:
        if not self.readable:
            raise FileSystemError("file not open for reading")
        if self.kind is FileKind.PIPE:
            return self.pipe.read(n)
        if self.kind is FileKind.INODE:
            self.fs.ilock(self.ip)
            try:
                data = self.fs.readi(self.ip, self.off, n)
                self.off += len(data)
            finally:
                self.fs.iunlock(self.ip)
            return data
        raise FileSystemError("fileread")

    def write(self, data: bytes) -> int:
        if not self.writable:
            raise FileSystemError("file not open for writing")
        if self.kind is FileKind.PIPE:
            return self.pipe.write(data)
        if self.kind is FileKind.INODE:
            # A few blocks per transaction: inode, indirect block, bitmap
            # and two blocks of slop for unaligned writes.
            limit = ((self.fs.log.maxopblocks - 1 - 1 - 2) // 2) * BSIZE
            data = bytes(data)
            pos = 0
            while pos < len(data):
                chunk = data[pos : pos + limit]
                with self.fs.log.transaction():
                    self.fs.ilock(self.ip)
                    try:
                        r = self.fs.writei(self.ip, chunk, self.off)
                        self.off += r
                    finally:
                        self.fs.iunlock(self.ip)
                if r != len(chunk):
                    raise FileSystemError("short filewrite")
                pos += r
            return len(data)
        raise FileSystemError("filewrite")

    def stat(self) -> Stat:
        if self.kind is not FileKind.INODE:
            raise FileSystemError("only inode files have metadata")
        self.fs.ilock(self.ip)
        try:
            return self.fs.stati(self.ip)
        finally:
            self.fs.iunlock(self.ip)

    def dup(self) -> OpenFile:
        """Take another reference to this file."""
        with _ftable_lock:
            if self.ref < 1:
                raise FileSystemError("filedup")
            self.ref += 1
        return self

    def close(self) -> None:
        """Drop a reference; the last one releases the pipe end or inode."""
        with _ftable_lock:
            if self.ref < 1:
                raise FileSystemError("fileclose")
            self.ref -= 1
            if self.ref > 0:
                return
            kind, pipe, ip, fs = self.kind, self.pipe, self.ip, self.fs
            self.kind = FileKind.NONE
        if kind is FileKind.PIPE:
            pipe.close(self.writable)
        elif kind is FileKind.INODE:
            with fs.log.transaction():
                fs.iput(ip)