"""User commands over a file-system image: ls, cat and echo."""

from __future__ import annotations

import sys

from .disk import MemoryDisk
from .fs import FileSystem, Stat
from .layout import DIRSIZ, Dirent, InodeType
from .syscalls import FileSystemCalls, OpenMode, SyscallError

_READ_SIZE = 512
_PATH_BUF = 512

__all__ = ["cat", "echo", "fmtname", "ls", "main"]


def fmtname(path: str) -> str:
    """Last path element, padded with blanks to DIRSIZ characters."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _stat(calls: FileSystemCalls, path: str) -> Stat:
    fd = calls.open(path, OpenMode.RDONLY)
    try:
        return calls.fstat(fd)
    finally:
        calls.close(fd)


def _line(path: str, st: Stat) -> str:
    return f"{fmtname(path)} {st.type} {st.ino} {st.size}"


def ls(calls: FileSystemCalls, path: str) -> list[str]:
    """Listing lines for path: one for a file, one per entry of a directory.

    Raises SyscallError if path cannot be opened.
    """
    fd = calls.open(path, OpenMode.RDONLY)
    lines: list[str] = []
    try:
        st = calls.fstat(fd)
        if st.type == InodeType.FILE:
            lines.append(_line(path, st))
        elif st.type == InodeType.DIR:
            if len(path) + 1 + DIRSIZ + 1 > _PATH_BUF:
                lines.append("ls: path too long")
                return lines
            while len(raw := calls.read(fd, Dirent.SIZE)) == Dirent.SIZE:
                de = Dirent.unpack(raw)
                if de.inum == 0:
                    continue
                entry = f"{path}/{de.name}"
                try:
                    lines.append(_line(entry, _stat(calls, entry)))
                except SyscallError:
                    lines.append(f"ls: cannot stat {entry}")
    finally:
        calls.close(fd)
    return lines


def cat(calls: FileSystemCalls, path: str) -> bytes:
    """Whole contents of the file at path."""
    fd = calls.open(path, OpenMode.RDONLY)
    chunks = []
    try:
        while chunk := calls.read(fd, _READ_SIZE):
            chunks.append(chunk)
    finally:
        calls.close(fd)
    return b"".join(chunks)


def echo(args: list[str]) -> str:
    """The arguments separated by blanks and ended by a newline; empty if none."""
    return " ".join(args) + "\n" if args else ""


_USAGE = "usage: cli echo [args...] | ls image [path...] | cat image [file...]"


def _open_image(path: str) -> FileSystemCalls:
    return FileSystemCalls(FileSystem(MemoryDisk.from_file(path)))


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print(_USAGE, file=sys.stderr)
        return 1
    command, rest = args[0], args[1:]
    if command == "echo":
        sys.stdout.write(echo(rest))
        return 0
    if command not in ("ls", "cat") or not rest:
        print(_USAGE, file=sys.stderr)
        return 1
    calls = _open_image(rest[0])
    paths = rest[1:]
    if command == "ls":
        for path in paths or ["."]:
            try:
                for line in ls(calls, path):
                    print(line)
            except SyscallError:
                print(f"ls: cannot open {path}", file=sys.stderr)
        return 0
    if not paths:
        sys.stdout.write(sys.stdin.read())
        return 0
    for path in paths:
        try:
            data = cat(calls, path)
        except SyscallError:
            print(f"cat: cannot open {path}")
            return 1
        sys.stdout.write(data.decode("latin-1"))
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())