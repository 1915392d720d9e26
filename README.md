# xvfs

`xvfs` is a small Unix-style file system written in plain Python. A whole
disk is held in memory as 512-byte blocks, and the usual layers sit on top
of it:

- **On-disk layout** (`xvfs.layout`): `SuperBlock`, `DiskInode` and
  `DirEntry`, each with `pack()` and `unpack()` to and from fixed-size
  little-endian records, the `FileType` enum, and `inode_block()` and
  `bitmap_block()`, which find the block that holds an inode or a bitmap
  bit.
- **Disk** (`xvfs.disk`): `MemoryDisk`, built from an image or from a block
  count, with `read()`, `write()` and `to_bytes()`. Out-of-range blocks and
  wrongly sized writes raise `DiskError`.
- **Buffer cache** (`xvfs.bufcache`): `BufferCache` keeps a fixed pool of
  `Buffer` objects (30 by default). `read()` returns a held buffer,
  `write()` writes it through to the disk, `release()` lets it go, and
  `block()` is a context manager doing read and release. When a block is not
  cached, the least recently used unreferenced clean buffer is reused; when
  none is left, `CacheError` is raised.
- **Log** (`xvfs.log`): `Log` is a redo log. Blocks recorded with `write()`
  during one or more operations are committed together when the last
  operation ends: they are copied to the log, the header is written, then
  they are installed at their home blocks. `recover()` replays a committed
  transaction found on disk. `Log.operation()` is a context manager around
  `begin_op()` / `end_op()`.
- **Inodes, directories and paths** (`xvfs.fs`): `FileSystem` opens an
  image on a `MemoryDisk` and provides `alloc_inode`, `get_inode`, `dup`,
  `lock`, `unlock`, `update`, `put` (which frees an unlinked inode and its
  blocks on the last reference), `stat`, `read` and `write` through twelve
  direct blocks and one indirect block, `dir_lookup`, `dir_link`, `lookup`
  and `lookup_parent`. `register_device()` installs read and write functions
  for inodes of type `FileType.DEVICE`. Any change to the disk must happen
  inside `fs.log.operation()`.
- **Open files and pipes** (`xvfs.file`, `xvfs.pipe`): a `FileTable` hands
  out reference-counted `OpenFile` slots with `read`, `write`, `stat`, `dup`
  and `close`; large inode writes are split so each piece fits in one log
  operation. `make_pipe(table)` returns the read and write files of a
  `Pipe` holding up to 512 bytes; writing once the read end is closed raises
  `PipeClosed`.
- **Image builder** (`xvfs.mkfs`): `build_image(files, fs_size, log_size,
  ninodes)` returns an image whose root directory holds the given files
  (defaults: 1000 blocks, 30 log blocks, 200 inodes). A leading `_` is
  dropped from each name.
- **Tools** (`xvfs.tools`): `cat`, `echo`, `ls` and `fmtname`.
- **Matching** (`xvfs.grep`): `match()` understands `^`, `.`, `*` and `$`;
  `grep()` yields the matching lines of a binary stream.
- **Formatting** (`xvfs.fmt`, `xvfs.console`): `uprintf()` handles
  `%d %x %p %s %c %%` with upper-case hex digits; `kprintf()` handles
  `%d %x %p %s %%` with lower-case hex digits. `format_int()` renders a
  32-bit value in a given base.
- **Keyboard and console** (`xvfs.keyboard`, `xvfs.console`): `Keyboard.feed()`
  decodes PC scan codes with shift, control and caps lock. `Console` does
  line editing (Control-U kills the line, backspace and DEL erase a
  character, Control-D ends input, Control-P calls a `procdump` callback if
  one is given), and echoes to an 80×25 `Screen` and to its `serial` buffer.

Errors are raised as exceptions (`DiskError`, `CacheError`, `LogError`,
`FileSystemError`, `FileError`, `PipeClosed`) rather than returned as
status codes.

## Installation

```
pip install .
```

Python 3.10 or later is required; there are no third-party dependencies.

## Command-line tools

Build an image holding some files in its root directory:

```
xvfs-mkfs fs.img README.md notes.txt
```

It prints the layout and the number of allocated blocks.

Search lines of host files, or of standard input when no file is given:

```
xvfs-grep 'ab*c$' notes.txt
```

Only lines ending in a newline are considered, and lines longer than the
1024-byte read buffer are dropped.

Read files inside an image:

```
xvfs-tools ls fs.img
xvfs-tools cat fs.img notes.txt
xvfs-tools echo hello world
```

`ls` lists `.` when no path is given, printing the padded name, type,
inode number and size of each entry. `cat` with no file copies standard
input.

## Using the library

```python
from xvfs.disk import MemoryDisk
from xvfs.fs import FileSystem
from xvfs.layout import FileType
from xvfs.mkfs import build_image
from xvfs.tools import cat, ls

fs = FileSystem(MemoryDisk(build_image({"hello.txt": b"hello\n"})))
cat(fs, ["hello.txt"])          # b"hello\n"
ls(fs, "/")                     # one line per directory entry

with fs.log.operation():
    ip = fs.alloc_inode(FileType.FILE)
    fs.lock(ip)
    ip.nlink = 1
    fs.update(ip)
    fs.write(ip, 0, b"new data")
    fs.unlock(ip)
    root = fs.lookup("/")
    fs.lock(root)
    fs.dir_link(root, "new.txt", ip.inum)
    fs.unlock(root)
    fs.put(root)
    fs.put(ip)

image = fs.cache.disk.to_bytes()  # the updated image
```

## What it does not do

- There is no system-call layer: no ready-made create, remove, rename,
  mkdir or link operations and no processes. Changes are made with the
  `FileSystem` primitives inside a log operation, as above.
- The command-line tools only read images; nothing writes a changed image
  back to a file except your own code calling `to_bytes()`.
- The console and screen are in memory: `Screen.cells` holds the text
  cells and `Console.serial` collects the output bytes; nothing is drawn
  on a real terminal.

## Running the tests

```
pip install .[test]
pytest
```