# xv6fs

A small Unix-style file system written in plain Python, with no
dependencies outside the standard library. Images are made of 512-byte
blocks laid out as:

```
[ boot block | super block | log | inode blocks | free bit map | data blocks ]
```

Files have twelve direct block addresses and one indirect block; directory
entries hold a 16-bit inode number and a name of up to 14 bytes.

## Modules

- **`xv6fs.layout`**: the on-disk records `Superblock`, `DiskInode` and
  `Dirent` (each with `pack()` and `unpack()`), the `InodeType` enum
  (`FREE`, `DIR`, `FILE`, `DEV`), and `iblock` / `bblock`, which give the
  block holding an inode or a bitmap bit.
- **`xv6fs.disk`**: `MemoryDisk`, a block device held in memory. It can be
  loaded with `MemoryDisk.from_file(path)` and written back with `save(path)`.
  Out-of-range blocks or wrongly sized writes raise `DiskError`.
- **`xv6fs.buffercache`**: `BufferCache` with `bread`, `bwrite` and `brelse`
  over a fixed pool of `Buffer` objects, recycling the least recently used
  one. Misuse, or running out of free buffers, raises `CacheError`.
- **`xv6fs.log`**: `Log`, a redo log that groups block writes into
  transactions (`begin_op` / `end_op`, or the `transaction()` context
  manager) and commits them when the last operation ends. `recover()`
  installs a committed transaction found on disk. Breaking the log's rules
  raises `LogError`.
- **`xv6fs.fs`**: `FileSystem`, with the inode cache (`iget`, `idup`,
  `ilock`, `iunlock`, `iput`, `iupdate`, `ialloc`), content access
  (`readi`, `writei`, `stati` returning a `Stat`), directories
  (`dirlookup`, `dirlink`) and path lookup (`namei`, `nameiparent`, and the
  `skipelem` helper). Device inodes are served through the `devsw`
  mapping of major numbers to objects with `read(ip, n)` and
  `write(ip, data)`. Failures raise `FileSystemError`.
- **`xv6fs.files`**: `OpenFile`, a reference-counted open file over an inode
  or a pipe end (`read`, `write`, `stat`, `dup`, `close`), and `Pipe`, a
  512-byte bounded channel. Writing to a full pipe whose reader has gone
  raises `BrokenPipeError`.
- **`xv6fs.syscalls`**: `FileSystemCalls`, the descriptor interface of one
  process: `open`, `read`, `write`, `close`, `dup`, `fstat`, `link`,
  `unlink`, `mkdir`, `mknod`, `chdir` and `pipe`, with `OpenMode` flags
  (`RDONLY`, `WRONLY`, `RDWR`, `CREATE`). Failures raise `SyscallError`.
- **`xv6fs.mkfs`**: `ImageBuilder` and `make_image` build a fresh image
  whose root directory holds the files given.
- **`xv6fs.shell`**: `parse_command` turns a shell line into a tree of
  `ExecCmd`, `RedirCmd`, `PipeCmd`, `ListCmd` and `BackCmd`. Malformed
  lines raise `ShellSyntaxError`.
- **`xv6fs.grep`**: `match` and `grep`, a small regular-expression matcher
  understanding `^`, `$`, `.` and `*`.
- **`xv6fs.fmt`**: `uprintf` and `cprintf`, minimal formatters for `%d`,
  `%x`, `%p`, `%s` and `%%`; `uprintf` also takes `%c` and writes hex digits
  in upper case, `cprintf` in lower case.
- **`xv6fs.keyboard`**: `KeyboardDecoder.feed` turns PC scan codes (set 1)
  into character codes, tracking shift, control, alt and caps lock.
- **`xv6fs.console`**: `ConsoleInput`, a line-editing input buffer with
  backspace, kill line (^U), end of input (^D) and a ^P callback.
  `read` raises `InterruptedError` once `kill()` has been called.
- **`xv6fs.umalloc`**: `Allocator`, a first-fit free-list allocator that
  merges freed neighbours; `malloc` raises `MemoryError` when an optional
  `heap_limit` stops the heap from growing.
- **`xv6fs.cli`**: `ls`, `cat`, `echo` and `fmtname`, and the `xv6fs`
  command.

## Installation

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

## Building a disk image

`xv6-mkfs` writes a new 1000-block image and copies the named files, which
must be in the current directory, into its root directory. A leading
underscore in a file name is dropped, so `_cat` is stored as `cat`.

```
xv6-mkfs fs.img README _cat _echo
```

From Python, use `make_image`, or `ImageBuilder` step by step:

```python
from xv6fs.mkfs import ImageBuilder

builder = ImageBuilder()
builder.add_file("README", b"hello\n")
image = builder.finish()
```

## Working with files

```python
from xv6fs.disk import MemoryDisk
from xv6fs.fs import FileSystem
from xv6fs.mkfs import make_image
from xv6fs.syscalls import FileSystemCalls, OpenMode

disk = MemoryDisk(make_image({"README": b"hello\n"}))
calls = FileSystemCalls(FileSystem(disk))

fd = calls.open("README")
calls.read(fd, 512)          # b"hello\n"
calls.close(fd)

calls.mkdir("docs")
fd = calls.open("docs/notes", OpenMode.CREATE | OpenMode.RDWR)
calls.write(fd, b"notes")
calls.close(fd)

disk.save("fs.img")
```

## Tools

The `xv6fs` command runs the small user tools:

```
xv6fs echo ALL TESTS PASSED
xv6fs ls fs.img            # lists the root directory
xv6fs ls fs.img docs
xv6fs cat fs.img README
```

`ls` prints, for each entry, its name padded to 14 characters, its type,
inode number and size. `cat` with no file names copies standard input.
Both read the image only; nothing is written back to it.

## Searching text

`xv6-grep` prints the lines that match a pattern, reading the named files
or standard input:

```
xv6-grep '^ab*c$' notes.txt
```

A final line without a newline is not reported. From Python:

```python
from xv6fs.grep import match

match("^ab*c$", "abbbc")   # True
match("x.z", "xyz")        # True
```

## Parsing shell commands

```python
from xv6fs.shell import PipeCmd, parse_command

cmd = parse_command("cat README | grep hello > out")
isinstance(cmd, PipeCmd)   # True
```

## What this package does not do

- There are no processes: nothing forks, runs programs or schedules work.
  `parse_command` builds a command tree but nothing executes it, and
  `FileSystemCalls` stands for a single process with its own descriptor
  table and working directory.
- There is no real hardware: the disk is `MemoryDisk`, `KeyboardDecoder`
  decodes scan codes it is given, and `ConsoleInput` echoes to a callback
  rather than to a screen.
- Changes live in memory until `MemoryDisk.save` writes the image out; the
  `xv6fs` command never saves.