import pytest

from xv6fs.cli import cat, echo, fmtname, ls, main
from xv6fs.disk import MemoryDisk
from xv6fs.fs import FileSystem
from xv6fs.layout import (
    BSIZE,
    DIRSIZ,
    IPB,
    ROOTINO,
    Dirent,
    DiskInode,
    InodeType,
    Superblock,
)
from xv6fs.syscalls import FileSystemCalls, OpenMode, SyscallError

FSSIZE = 1000
NINODES = 200
NLOG = 30


def _blank_image() -> bytes:
    ninodeblocks = NINODES // IPB + 1
    nmeta = 2 + NLOG + ninodeblocks + 1
    sb = Superblock(
        size=FSSIZE,
        nblocks=FSSIZE - nmeta,
        ninodes=NINODES,
        nlog=NLOG,
        logstart=2,
        inodestart=2 + NLOG,
        bmapstart=2 + NLOG + ninodeblocks,
    )
    image = bytearray(FSSIZE * BSIZE)
    image[BSIZE : BSIZE + Superblock.SIZE] = sb.pack()
    rootblock = nmeta
    entries = Dirent(ROOTINO, ".").pack() + Dirent(ROOTINO, "..").pack()
    image[rootblock * BSIZE : rootblock * BSIZE + len(entries)] = entries
    root = DiskInode(type=InodeType.DIR, nlink=1, size=len(entries))
    root.addrs[0] = rootblock
    off = (sb.inodestart + ROOTINO // IPB) * BSIZE + (ROOTINO % IPB) * DiskInode.SIZE
    image[off : off + DiskInode.SIZE] = root.pack()
    used = nmeta + 1
    bmap = sb.bmapstart * BSIZE
    for b in range(used):
        image[bmap + b // 8] |= 1 << (b % 8)
    return bytes(image)


@pytest.fixture
def calls():
    return FileSystemCalls(FileSystem(MemoryDisk(_blank_image())))


def _write(calls, path, data):
    fd = calls.open(path, OpenMode.CREATE | OpenMode.RDWR)
    calls.write(fd, data)
    calls.close(fd)


def test_fmtname_pads_short_names():
    assert fmtname("a/b/c") == "c" + " " * (DIRSIZ - 1)
    assert len(fmtname("plain")) == DIRSIZ


def test_fmtname_keeps_long_names():
    long = "a" * 15
    assert fmtname("x/" + long) == long


def test_echo():
    assert echo(["a", "b"]) == "a b\n"
    assert echo([]) == ""


def test_cat_returns_contents(calls):
    data = bytes(range(256)) * 5
    _write(calls, "data", data)
    assert cat(calls, "data") == data


def test_cat_missing_file(calls):
    with pytest.raises(SyscallError):
        cat(calls, "nope")


def test_ls_file(calls):
    _write(calls, "hello", b"hi")
    fd = calls.open("hello")
    st = calls.fstat(fd)
    calls.close(fd)
    (line,) = ls(calls, "hello")
    assert line.split() == ["hello", str(int(InodeType.FILE)), str(st.ino), "2"]


def test_ls_directory(calls):
    _write(calls, "f1", b"abc")
    calls.mkdir("sub")
    lines = ls(calls, "/")
    names = [line.split()[0] for line in lines]
    assert names == [".", "..", "f1", "sub"]
    sub = next(line for line in lines if line.startswith("sub"))
    assert sub.split()[1] == str(int(InodeType.DIR))


def test_ls_missing(calls):
    with pytest.raises(SyscallError):
        ls(calls, "missing")


def test_main_echo(capsys):
    assert main(["echo", "hi", "there"]) == 0
    assert capsys.readouterr().out == "hi there\n"


def test_main_ls_and_cat(tmp_path, capsys):
    disk = MemoryDisk(_blank_image())
    c = FileSystemCalls(FileSystem(disk))
    _write(c, "note", b"text\n")
    image = tmp_path / "fs.img"
    disk.save(image)
    assert main(["ls", str(image), "/"]) == 0
    out = capsys.readouterr().out
    assert "note" in [line.split()[0] for line in out.splitlines()]
    assert main(["cat", str(image), "note"]) == 0
    assert capsys.readouterr().out == "text\n"
    assert main(["cat", str(image), "absent"]) == 1
    assert "cat: cannot open absent" in capsys.readouterr().out


def test_main_usage(capsys):
    assert main([]) == 1
    assert "usage" in capsys.readouterr().err