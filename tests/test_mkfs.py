import struct

import pytest

from xv6fs.buffercache import BufferCache
from xv6fs.disk import MemoryDisk
from xv6fs.layout import (
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
from xv6fs.log import Log
from xv6fs.mkfs import FSSIZE, ImageBuilder, main, make_image


def _block(image, n):
    return image[n * BSIZE : (n + 1) * BSIZE]


def _sb(image):
    return Superblock.unpack(_block(image, 1))


def _inode(image, inum):
    blk = _block(image, iblock(inum, _sb(image)))
    off = (inum % IPB) * DiskInode.SIZE
    return DiskInode.unpack(blk[off : off + DiskInode.SIZE])


def _content(image, din):
    count = -(-din.size // BSIZE)
    addrs = list(din.addrs[:NDIRECT])
    if count > NDIRECT:
        addrs += struct.unpack(f"<{NINDIRECT}I", _block(image, din.addrs[NDIRECT]))
    return b"".join(_block(image, a) for a in addrs[:count])[: din.size]


def _entries(image, inum):
    data = _content(image, _inode(image, inum))
    ents = (Dirent.unpack(data[i : i + Dirent.SIZE]) for i in range(0, len(data), Dirent.SIZE))
    return [e for e in ents if e.inum != 0]


def test_image_size_and_superblock():
    image = make_image({}, fssize=FSSIZE, ninodes=200, nlog=30)
    assert len(image) == FSSIZE * BSIZE
    sb = _sb(image)
    assert sb.size == FSSIZE
    assert sb.ninodes == 200
    assert sb.logstart == 2
    assert sb.inodestart == 2 + sb.nlog
    assert sb.bmapstart > sb.inodestart


def test_root_directory():
    image = make_image({})
    root = _inode(image, ROOTINO)
    assert root.type == InodeType.DIR
    assert root.nlink == 1
    assert root.size % BSIZE == 0 and root.size > 0
    assert [(e.inum, e.name) for e in _entries(image, ROOTINO)] == [
        (ROOTINO, "."),
        (ROOTINO, ".."),
    ]


def test_files_listed_with_underscore_stripped():
    image = make_image([("_cat", b"meow"), ("README", b"read me\n")])
    names = {e.name: e.inum for e in _entries(image, ROOTINO)}
    assert "cat" in names and "_cat" not in names
    assert _content(image, _inode(image, names["cat"])) == b"meow"
    readme = _inode(image, names["README"])
    assert readme.type == InodeType.FILE
    assert _content(image, readme) == b"read me\n"


def test_large_file_uses_indirect_block():
    data = bytes(range(256)) * ((NDIRECT + 3) * BSIZE // 256)
    builder = ImageBuilder()
    inum = builder.add_file("big", data)
    image = builder.finish()
    din = _inode(image, inum)
    assert din.addrs[NDIRECT] != 0
    assert din.size == len(data)
    assert _content(image, din) == data


def test_bitmap_marks_used_blocks():
    builder = ImageBuilder()
    builder.add_file("x", b"y" * 1000)
    image = builder.finish()
    bitmap = _block(image, builder.sb.bmapstart)

    def bit(i):
        return (bitmap[i // 8] >> (i % 8)) & 1

    assert all(bit(i) for i in range(builder.freeblock))
    assert bit(builder.freeblock) == 0
    assert builder.freeblock > builder.nmeta


def test_name_with_slash_rejected():
    with pytest.raises(ValueError):
        ImageBuilder().add_file("a/b", b"")


def test_file_too_large():
    with pytest.raises(ValueError):
        ImageBuilder().add_file("huge", bytes(MAXFILE * BSIZE + 1))


def test_finish_is_stable():
    builder = ImageBuilder()
    first = builder.finish()
    assert builder.finish() == first
    with pytest.raises(RuntimeError):
        builder.add_file("late", b"")


def test_image_has_empty_log():
    image = make_image({"f": b"data"})
    disk = MemoryDisk(image)
    Log(BufferCache(disk), 1, _sb(image))
    assert disk.read_block(_sb(image).logstart) == _block(image, _sb(image).logstart)


def test_main_writes_image(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "_echo").write_bytes(b"echo body")
    assert main(["fs.img", "_echo"]) == 0
    image = (tmp_path / "fs.img").read_bytes()
    names = [e.name for e in _entries(image, ROOTINO)]
    assert "echo" in names
    assert "balloc: first" in capsys.readouterr().out


def test_main_usage(capsys):
    assert main([]) == 1
    assert "Usage: mkfs fs.img files..." in capsys.readouterr().err


def test_main_missing_input(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main(["fs.img", "nosuchfile"]) == 1
    assert not (tmp_path / "fs.img").exists()