"""File-system system calls for one process: descriptors, paths, pipes."""

from __future__ import annotations

import enum

from .files import FileKind, OpenFile, Pipe
from .fs import FileSystem, FileSystemError, Inode, Stat
from .layout import ROOTINO, Dirent, InodeType

NOFILE = 16

__all__ = ["NOFILE", "FileSystemCalls", "OpenMode", "SyscallError"]


class OpenMode(enum.IntFlag):
    """Flags for open()."""

    RDONLY = 0x000
    WRONLY = 0x001
    RDWR = 0x002
    CREATE = 0x200


class SyscallError(Exception):
    """A system call that failed."""


class FileSystemCalls:
    """The file-system calls of a single process with its own descriptor table."""

    def __init__(self, fs: FileSystem, nofile: int = NOFILE) -> None:
        self.fs = fs
        self.ofile: list[OpenFile | None] = [None] * nofile
        self.cwd: Inode = fs.iget(ROOTINO)

    def _argfd(self, fd: int) -> OpenFile:
        if not 0 <= fd < len(self.ofile) or self.ofile[fd] is None:
            raise SyscallError(f"bad file descriptor {fd}")
        return self.ofile[fd]

    def _fdalloc(self, f: OpenFile) -> int:
        for fd, slot in enumerate(self.ofile):
            if slot is None:
                self.ofile[fd] = f
                return fd
        raise SyscallError("too many open files")

    def open(self, path: str, mode: int = OpenMode.RDONLY) -> int:
        fs = self.fs
        with fs.log.transaction():
            if mode & OpenMode.CREATE:
                ip = self._create(path, InodeType.FILE, 0, 0)
            else:
                ip = fs.namei(path, self.cwd)
                if ip is None:
                    raise SyscallError(f"open {path}: no such file")
                fs.ilock(ip)
                if ip.type == InodeType.DIR and mode != OpenMode.RDONLY:
                    fs.iunlockput(ip)
                    raise SyscallError(f"open {path}: is a directory")
            f = OpenFile()
            try:
                fd = self._fdalloc(f)
            except SyscallError:
                fs.iunlockput(ip)
                raise
            fs.iunlock(ip)
        f.kind = FileKind.INODE
        f.fs = fs
        f.ip = ip
        f.off = 0
        f.readable = not mode & OpenMode.WRONLY
        f.writable = bool(mode & (OpenMode.WRONLY | OpenMode.RDWR))
        return fd

    def read(self, fd: int, n: int) -> bytes:
        f = self._argfd(fd)
        if n < 0:
            raise SyscallError("negative read size")
        try:
            return f.read(n)
        except FileSystemError as exc:
            raise SyscallError(str(exc)) from exc

    def write(self, fd: int, data: bytes) -> int:
        f = self._argfd(fd)
        try:
            return f.write(data)
        except (FileSystemError, BrokenPipeError) as exc:
            raise SyscallError(str(exc)) from exc

    def close(self, fd: int) -> None:
        f = self._argfd(fd)
        self.ofile[fd] = None
        f.close()

    def dup(self, fd: int) -> int:
        f = self._argfd(fd)
        newfd = self._fdalloc(f)
        f.dup()
        return newfd

    def fstat(self, fd: int) -> Stat:
        f = self._argfd(fd)
        try:
            return f.stat()
        except FileSystemError as exc:
            raise SyscallError(str(exc)) from exc

    def link(self, old: str, new: str) -> None:
        """Make new a name for the same inode as old."""
        fs = self.fs
        with fs.log.transaction():
            ip = fs.namei(old, self.cwd)
            if ip is None:
                raise SyscallError(f"link {old}: no such file")
            fs.ilock(ip)
            if ip.type == InodeType.DIR:
                fs.iunlockput(ip)
                raise SyscallError(f"link {old}: is a directory")
            ip.nlink += 1
            fs.iupdate(ip)
            fs.iunlock(ip)

            if self._link_into_parent(new, ip):
                fs.iput(ip)
                return

            fs.ilock(ip)
            ip.nlink -= 1
            fs.iupdate(ip)
            fs.iunlockput(ip)
        raise SyscallError(f"link {old} {new}: failed")

    def _link_into_parent(self, new: str, ip: Inode) -> bool:
        fs = self.fs
        found = fs.nameiparent(new, self.cwd)
        if found is None:
            return False
        dp, name = found
        fs.ilock(dp)
        try:
            if dp.dev != ip.dev:
                return False
            fs.dirlink(dp, name, ip.inum)
            return True
        except FileSystemError:
            return False
        finally:
            fs.iunlockput(dp)

    def _isdirempty(self, dp: Inode) -> bool:
        for off in range(2 * Dirent.SIZE, dp.size, Dirent.SIZE):
            raw = self.fs.readi(dp, off, Dirent.SIZE)
            if len(raw) != Dirent.SIZE:
                raise FileSystemError("isdirempty: readi")
            if Dirent.unpack(raw).inum != 0:
                return False
        return True

    def unlink(self, path: str) -> None:
        fs = self.fs
        with fs.log.transaction():
            found = fs.nameiparent(path, self.cwd)
            if found is None:
                raise SyscallError(f"unlink {path}: no such directory")
            dp, name = found
            fs.ilock(dp)
            if name in (".", ".."):
                fs.iunlockput(dp)
                raise SyscallError(f"unlink {path}: cannot unlink {name}")
            entry = fs.dirlookup(dp, name)
            if entry is None:
                fs.iunlockput(dp)
                raise SyscallError(f"unlink {path}: no such file")
            ip, off = entry
            fs.ilock(ip)
            if ip.nlink < 1:
                raise FileSystemError("unlink: nlink < 1")
            if ip.type == InodeType.DIR and not self._isdirempty(ip):
                fs.iunlockput(ip)
                fs.iunlockput(dp)
                raise SyscallError(f"unlink {path}: directory not empty")

            empty = Dirent().pack()
            if fs.writei(dp, empty, off) != len(empty):
                raise FileSystemError("unlink: writei")
            if ip.type == InodeType.DIR:
                dp.nlink -= 1
                fs.iupdate(dp)
            fs.iunlockput(dp)

            ip.nlink -= 1
            fs.iupdate(ip)
            fs.iunlockput(ip)

    def _create(self, path: str, type: int, major: int, minor: int) -> Inode:
        """Create path, or open it if it is an existing file; returned locked."""
        fs = self.fs
        found = fs.nameiparent(path, self.cwd)
        if found is None:
            raise SyscallError(f"create {path}: no such directory")
        dp, name = found
        fs.ilock(dp)

        existing = fs.dirlookup(dp, name)
        if existing is not None:
            ip = existing[0]
            fs.iunlockput(dp)
            fs.ilock(ip)
            if type == InodeType.FILE and ip.type == InodeType.FILE:
                return ip
            fs.iunlockput(ip)
            raise SyscallError(f"create {path}: already exists")

        ip = fs.ialloc(type)
        fs.ilock(ip)
        ip.major = major
        ip.minor = minor
        ip.nlink = 1
        fs.iupdate(ip)

        if type == InodeType.DIR:
            dp.nlink += 1  # for ".."
            fs.iupdate(dp)
            # No nlink for ".": that would make a cycle of references.
            fs.dirlink(ip, ".", ip.inum)
            fs.dirlink(ip, "..", dp.inum)

        fs.dirlink(dp, name, ip.inum)
        fs.iunlockput(dp)
        return ip

    def mkdir(self, path: str) -> None:
        with self.fs.log.transaction():
            ip = self._create(path, InodeType.DIR, 0, 0)
            self.fs.iunlockput(ip)

    def mknod(self, path: str, major: int, minor: int) -> None:
        with self.fs.log.transaction():
            ip = self._create(path, InodeType.DEV, major, minor)
            self.fs.iunlockput(ip)

    def chdir(self, path: str) -> None:
        fs = self.fs
        with fs.log.transaction():
            ip = fs.namei(path, self.cwd)
            if ip is None:
                raise SyscallError(f"chdir {path}: no such directory")
            fs.ilock(ip)
            if ip.type != InodeType.DIR:
                fs.iunlockput(ip)
                raise SyscallError(f"chdir {path}: not a directory")
            fs.iunlock(ip)
            fs.iput(self.cwd)
        self.cwd = ip

    def pipe(self) -> tuple[int, int]:
        """Return (read descriptor, write descriptor) of a new pipe."""
        p = Pipe()
        rf = OpenFile(FileKind.PIPE, readable=True, pipe=p)
        wf = OpenFile(FileKind.PIPE, writable=True, pipe=p)
        fd0 = None
        try:
            fd0 = self._fdalloc(rf)
            fd1 = self._fdalloc(wf)
        except SyscallError:
            if fd0 is not None:
                self.ofile[fd0] = None
            rf.close()
            wf.close()
            raise
        return fd0, fd1