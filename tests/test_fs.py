import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from xv6fs.disk import MemoryDisk
from xv6fs.fs import FileSystem, FileSystemError, skipelem
from xv6fs.layout import BSIZE, DIRSIZ, NDIRECT, ROOTINO, Dirent, InodeType
from xv6fs.log import LogError
from xv6fs.mkfs import make_image


def _fresh(files=None):
    disk = MemoryDisk(make_image(files or {"README": b"hello"}))
    return disk, FileSystem(disk)


@pytest.fixture
def fs():
    return _fresh()[1]


def _read_all(fs, ip):
    fs.ilock(ip)
    try:
        return fs.readi(ip, 0, ip.size)
    finally:
        fs.iunlock(ip)


@pytest.mark.parametrize(
    "path, expected",
    [
        ("a/bb/c", ("a", "bb/c")),
        ("///a//bb", ("a", "bb")),
        ("a", ("a", "")),
        ("", None),
        ("////", None),
        ("123456789012345/x", ("12345678901234", "x")),
    ],
)
def test_skipelem(path, expected):
    assert skipelem(path) == expected


def test_root_is_directory(fs):
    root = fs.namei("/")
    fs.ilock(root)
    assert root.inum == ROOTINO
    assert root.type == InodeType.DIR
    fs.iunlock(root)
    fs.iput(root)


def test_read_file_from_image(fs):
    ip = fs.namei("/README")
    assert _read_all(fs, ip) == b"hello"
    fs.ilock(ip)
    assert fs.readi(ip, 1, 100) == b"ello"
    fs.iunlock(ip)


def test_relative_path_uses_cwd(fs):
    root = fs.namei("/")
    ip = fs.namei("README", root)
    assert _read_all(fs, ip) == b"hello"


def test_missing_paths(fs):
    assert fs.namei("/nothing") is None
    assert fs.namei("/README/x") is None


def test_nameiparent(fs):
    parent, name = fs.nameiparent("/README")
    assert parent.inum == ROOTINO
    assert name == "README"
    assert fs.nameiparent("/") is None
    assert fs.nameiparent("/missing/x") is None


def test_iget_shares_entry(fs):
    a = fs.iget(ROOTINO)
    b = fs.iget(ROOTINO)
    assert a is b
    assert a.ref == 2
    fs.idup(a)
    assert a.ref == 3


def test_stati(fs):
    ip = fs.namei("/README")
    fs.ilock(ip)
    st = fs.stati(ip)
    fs.iunlock(ip)
    assert st.type == InodeType.FILE
    assert st.size == 5
    assert st.nlink == 1
    assert st.ino == ip.inum


def test_write_and_read_back(fs):
    with fs.log.transaction():
        ip = fs.ialloc(InodeType.FILE)
        fs.ilock(ip)
        assert fs.writei(ip, b"abc", 0) == 3
        assert fs.writei(ip, b"defg", 3) == 4
        assert fs.readi(ip, 0, 100) == b"abcdefg"
        assert ip.size == 7
        fs.iunlock(ip)


def test_write_outside_transaction_fails(fs):
    with fs.log.transaction():
        ip = fs.ialloc(InodeType.FILE)
    fs.ilock(ip)
    with pytest.raises(LogError):
        fs.writei(ip, b"x", 0)


def test_offsets_out_of_range(fs):
    ip = fs.namei("/README")
    fs.ilock(ip)
    with pytest.raises(FileSystemError):
        fs.readi(ip, 6, 1)
    with fs.log.transaction():
        with pytest.raises(FileSystemError):
            fs.writei(ip, b"x", 10)
    fs.iunlock(ip)


def test_large_file_uses_indirect_block(fs):
    data = bytes(range(256)) * ((NDIRECT + 2) * BSIZE // 256)
    with fs.log.transaction():
        ip = fs.ialloc(InodeType.FILE)
    fs.ilock(ip)
    chunk = 2 * BSIZE
    for off in range(0, len(data), chunk):
        with fs.log.transaction():
            fs.writei(ip, data[off : off + chunk], off)
    assert fs.readi(ip, 0, len(data)) == data
    assert ip.size == len(data)
    assert ip.addrs[NDIRECT] > 0
    fs.iunlock(ip)


def test_dirlink_and_lookup(fs):
    root = fs.iget(ROOTINO)
    fs.ilock(root)
    readme_inum = fs.dirlookup(root, "README")[0].inum
    with fs.log.transaction():
        fs.dirlink(root, "extra", readme_inum)
    found, off = fs.dirlookup(root, "extra")
    assert found.inum == readme_inum
    assert off == 3 * Dirent.SIZE
    with fs.log.transaction():
        with pytest.raises(FileSystemError):
            fs.dirlink(root, "extra", readme_inum)
    assert fs.dirlookup(root, "absent") is None
    fs.iunlock(root)


def test_long_names_compare_on_dirsiz(fs):
    root = fs.iget(ROOTINO)
    fs.ilock(root)
    long_name = "x" * (DIRSIZ + 3)
    with fs.log.transaction():
        fs.dirlink(root, long_name, ROOTINO)
    found, _ = fs.dirlookup(root, "x" * DIRSIZ)
    assert found.inum == ROOTINO
    fs.iunlock(root)


def test_dirlookup_on_file_fails(fs):
    ip = fs.namei("/README")
    fs.ilock(ip)
    with pytest.raises(FileSystemError):
        fs.dirlookup(ip, "x")
    fs.iunlock(ip)


def test_iput_frees_unlinked_inode(fs):
    with fs.log.transaction():
        ip = fs.ialloc(InodeType.FILE)
        inum = ip.inum
        fs.ilock(ip)
        fs.writei(ip, b"x" * 1000, 0)
        fs.iunlock(ip)
        fs.iput(ip)
    with fs.log.transaction():
        again = fs.ialloc(InodeType.FILE)
    assert again.inum == inum
    fs.ilock(again)
    assert again.size == 0
    assert again.addrs == [0] * (NDIRECT + 1)
    fs.iunlock(again)


def test_ilock_free_inode_fails(fs):
    ip = fs.iget(150)
    with pytest.raises(FileSystemError):
        fs.ilock(ip)


def test_iunlock_without_lock_fails(fs):
    ip = fs.iget(ROOTINO)
    with pytest.raises(FileSystemError):
        fs.iunlock(ip)


def test_changes_persist_on_disk():
    disk, fs = _fresh()
    root = fs.iget(ROOTINO)
    with fs.log.transaction():
        ip = fs.ialloc(InodeType.FILE)
        fs.ilock(ip)
        ip.nlink = 1
        fs.iupdate(ip)
        fs.writei(ip, b"persisted", 0)
        fs.iunlock(ip)
        fs.ilock(root)
        fs.dirlink(root, "new", ip.inum)
        fs.iunlock(root)
    reopened = FileSystem(disk)
    again = reopened.namei("/new")
    assert again.inum == ip.inum
    assert _read_all(reopened, again) == b"persisted"


def test_device_inode_uses_devsw(fs):
    class Echo:
        def __init__(self):
            self.written = b""

        def read(self, ip, n):
            return b"d" * n

        def write(self, ip, data):
            self.written += data
            return len(data)

    echo = Echo()
    fs.devsw[1] = echo
    with fs.log.transaction():
        ip = fs.ialloc(InodeType.DEV)
        fs.ilock(ip)
        ip.major = 1
        fs.iupdate(ip)
    assert fs.readi(ip, 0, 3) == b"ddd"
    assert fs.writei(ip, b"hi", 0) == 2
    assert echo.written == b"hi"
    ip.major = 2
    with pytest.raises(FileSystemError):
        fs.readi(ip, 0, 1)
    fs.iunlock(ip)


@settings(max_examples=15, deadline=None)
@given(st.binary(max_size=2000))
def test_write_read_round_trip(data):
    _, fs = _fresh()
    with fs.log.transaction():
        ip = fs.ialloc(InodeType.FILE)
        fs.ilock(ip)
        assert fs.writei(ip, data, 0) == len(data)
    assert fs.readi(ip, 0, len(data) + 10) == data
    assert ip.size == len(data)
    fs.iunlock(ip)