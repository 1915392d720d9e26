"""File system core: block allocation, inodes, directories and path names.

Operations that modify the disk must run inside a log operation
(``with fs.log.operation(): ...``), since every change goes through the log.
"""

from __future__ import annotations

import struct
import threading
from dataclasses import dataclass, field
from typing import Callable, NamedTuple, Optional

from .bufcache import NBUF, BufferCache
from .disk import MemoryDisk
from .layout import (
    BPB,
    BSIZE,
    DIRENT_SIZE,
    DIRSIZ,
    INODE_SIZE,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DirEntry,
    DiskInode,
    FileType,
    SuperBlock,
    bitmap_block,
    inode_block,
)
from .log import Log

NINODE = 50  # maximum number of active inodes
NDEV = 10  # maximum major device number
ROOTDEV = 1  # device number of the file system root

_ADDR = struct.Struct("<I")

DeviceRead = Callable[["Inode", int], bytes]
DeviceWrite = Callable[["Inode", bytes], int]


class FileSystemError(Exception):
    """Raised for an invalid file system request or a corrupt file system."""


class _Device(NamedTuple):
    read: Optional[DeviceRead]
    write: Optional[DeviceWrite]


@dataclass(frozen=True)
class Stat:
    """Metadata about an inode."""

    dev: int
    ino: int
    type: int
    nlink: int
    size: int


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode.

    ``ref`` counts the in-memory references; the remaining fields mirror
    the disk inode and are only meaningful while ``valid`` is true.
    """

    dev: int
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def locked(self) -> bool:
        return self._lock.locked()


def skip_element(path: str) -> Optional[tuple[str, str]]:
    """Split off the first element of a path.

    Returns the element (cut to DIRSIZ characters) and the remainder with
    its leading slashes removed, or None if the path holds no element.
    """
    stripped = path.lstrip("/")
    if not stripped:
        return None
    elem, _, rest = stripped.partition("/")
    return elem[:DIRSIZ], rest.lstrip("/")


def names_equal(s: str, t: str) -> bool:
    """Compare two directory entry names as stored, up to DIRSIZ characters."""
    return s.split("\0", 1)[0][:DIRSIZ] == t.split("\0", 1)[0][:DIRSIZ]


class FileSystem:
    """A file system on one disk, with its buffer cache, log and inode cache."""

    def __init__(
        self,
        disk: MemoryDisk,
        *,
        dev: int = ROOTDEV,
        nbuf: int = NBUF,
        ninode: int = NINODE,
    ) -> None:
        self.dev = dev
        self.cache = BufferCache(disk, nbuf)
        with self.cache.block(1) as buf:
            self.sb = SuperBlock.unpack(buf.data)
        self.log = Log(self.cache, self.sb.logstart, self.sb.nlog)
        self._icache_lock = threading.Lock()
        self._icache = [Inode(dev) for _ in range(ninode)]
        self._devsw: dict[int, _Device] = {}

    # Devices.

    def register_device(
        self,
        major: int,
        read: Optional[DeviceRead],
        write: Optional[DeviceWrite],
    ) -> None:
        """Install the read and write functions for a major device number."""
        if not 0 <= major < NDEV:
            raise ValueError(f"major device number {major} out of range")
        self._devsw[major] = _Device(read, write)

    def _device(self, inode: Inode, want_write: bool):
        dev = self._devsw.get(inode.major)
        func = None if dev is None else (dev.write if want_write else dev.read)
        if func is None:
            raise FileSystemError(f"no device for major {inode.major}")
        return func

    # Blocks.

    def _zero_block(self, blockno: int) -> None:
        with self.cache.block(blockno) as buf:
            buf.data[:] = bytes(BSIZE)
            self.log.write(buf)

    def _claim_free_bit(self, base: int) -> Optional[int]:
        with self.cache.block(bitmap_block(base, self.sb)) as buf:
            for bi in range(min(BPB, self.sb.size - base)):
                byte, mask = bi // 8, 1 << (bi % 8)
                if not buf.data[byte] & mask:
                    buf.data[byte] |= mask
                    self.log.write(buf)
                    return base + bi
        return None

    def _balloc(self) -> int:
        for base in range(0, self.sb.size, BPB):
            blockno = self._claim_free_bit(base)
            if blockno is not None:
                self._zero_block(blockno)
                return blockno
        raise FileSystemError("balloc: out of blocks")

    def _bfree(self, blockno: int) -> None:
        with self.cache.block(bitmap_block(blockno, self.sb)) as buf:
            bi = blockno % BPB
            byte, mask = bi // 8, 1 << (bi % 8)
            if not buf.data[byte] & mask:
                raise FileSystemError("freeing free block")
            buf.data[byte] &= ~mask & 0xFF
            self.log.write(buf)

    # Inodes.

    def _slot(self, inum: int) -> tuple[int, int]:
        return inode_block(inum, self.sb), (inum % IPB) * INODE_SIZE

    def alloc_inode(self, type_: int) -> Inode:
        """Allocate a free inode of the given type; returned unlocked and referenced."""
        for inum in range(1, self.sb.ninodes):
            blockno, off = self._slot(inum)
            with self.cache.block(blockno) as buf:
                dip = DiskInode.unpack(bytes(buf.data[off : off + INODE_SIZE]))
                if dip.type != 0:
                    continue
                buf.data[off : off + INODE_SIZE] = DiskInode(type=int(type_)).pack()
                self.log.write(buf)
            return self.get_inode(inum)
        raise FileSystemError("ialloc: no inodes")

    def update(self, inode: Inode) -> None:
        """Copy a modified in-memory inode to disk. The inode must be locked."""
        blockno, off = self._slot(inode.inum)
        dip = DiskInode(
            inode.type, inode.major, inode.minor, inode.nlink, inode.size, inode.addrs
        )
        with self.cache.block(blockno) as buf:
            buf.data[off : off + INODE_SIZE] = dip.pack()
            self.log.write(buf)

    def get_inode(self, inum: int) -> Inode:
        """Return the cached inode for ``inum``, neither locked nor read from disk."""
        with self._icache_lock:
            empty = None
            for ip in self._icache:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise FileSystemError("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def dup(self, inode: Inode) -> Inode:
        """Add a reference to an inode and return it."""
        with self._icache_lock:
            inode.ref += 1
        return inode

    def lock(self, inode: Inode) -> None:
        """Lock an inode, reading it from disk if needed."""
        if inode is None or inode.ref < 1:
            raise FileSystemError("ilock")
        inode._lock.acquire()
        if inode.valid:
            return
        blockno, off = self._slot(inode.inum)
        with self.cache.block(blockno) as buf:
            dip = DiskInode.unpack(bytes(buf.data[off : off + INODE_SIZE]))
        inode.type = dip.type
        inode.major = dip.major
        inode.minor = dip.minor
        inode.nlink = dip.nlink
        inode.size = dip.size
        inode.addrs = list(dip.addrs)
        inode.valid = True
        if inode.type == 0:
            inode._lock.release()
            raise FileSystemError("ilock: no type")

    def unlock(self, inode: Inode) -> None:
        """Unlock a locked inode."""
        if inode is None or not inode.locked or inode.ref < 1:
            raise FileSystemError("iunlock")
        inode._lock.release()

    def put(self, inode: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last and unlinked."""
        with inode._lock:
            if inode.valid and inode.nlink == 0:
                with self._icache_lock:
                    refs = inode.ref
                if refs == 1:
                    self._truncate(inode)
                    inode.type = 0
                    self.update(inode)
                    inode.valid = False
        with self._icache_lock:
            inode.ref -= 1

    def _bmap(self, inode: Inode, bn: int) -> int:
        """Disk block holding block ``bn`` of the inode, allocated if missing."""
        if bn < NDIRECT:
            if inode.addrs[bn] == 0:
                inode.addrs[bn] = self._balloc()
            return inode.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if inode.addrs[NDIRECT] == 0:
                inode.addrs[NDIRECT] = self._balloc()
            with self.cache.block(inode.addrs[NDIRECT]) as buf:
                (addr,) = _ADDR.unpack_from(buf.data, bn * _ADDR.size)
                if addr == 0:
                    addr = self._balloc()
                    _ADDR.pack_into(buf.data, bn * _ADDR.size, addr)
                    self.log.write(buf)
            return addr
        raise FileSystemError("bmap: out of range")

    def _truncate(self, inode: Inode) -> None:
        for i in range(NDIRECT):
            if inode.addrs[i]:
                self._bfree(inode.addrs[i])
                inode.addrs[i] = 0
        if inode.addrs[NDIRECT]:
            with self.cache.block(inode.addrs[NDIRECT]) as buf:
                table = struct.unpack_from(f"<{NINDIRECT}I", buf.data)
                for addr in table:
                    if addr:
                        self._bfree(addr)
            self._bfree(inode.addrs[NDIRECT])
            inode.addrs[NDIRECT] = 0
        inode.size = 0
        self.update(inode)

    def stat(self, inode: Inode) -> Stat:
        """Metadata of a locked inode."""
        return Stat(self.dev, inode.inum, inode.type, inode.nlink, inode.size)

    def read(self, inode: Inode, offset: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``offset`` from a locked inode."""
        if inode.type == FileType.DEVICE:
            return bytes(self._device(inode, False)(inode, n))
        if offset < 0 or n < 0 or offset > inode.size:
            raise FileSystemError(f"read at offset {offset} out of range")
        n = min(n, inode.size - offset)
        out = bytearray()
        while len(out) < n:
            start = offset % BSIZE
            m = min(n - len(out), BSIZE - start)
            with self.cache.block(self._bmap(inode, offset // BSIZE)) as buf:
                out += buf.data[start : start + m]
            offset += m
        return bytes(out)

    def write(self, inode: Inode, offset: int, data) -> int:
        """Write data at ``offset`` into a locked inode; returns the count written."""
        if inode.type == FileType.DEVICE:
            return self._device(inode, True)(inode, bytes(data))
        n = len(data)
        if offset < 0 or offset > inode.size:
            raise FileSystemError(f"write at offset {offset} out of range")
        if offset + n > MAXFILE * BSIZE:
            raise FileSystemError("write past maximum file size")
        view = memoryview(bytes(data))
        done = 0
        while done < n:
            start = offset % BSIZE
            m = min(n - done, BSIZE - start)
            with self.cache.block(self._bmap(inode, offset // BSIZE)) as buf:
                buf.data[start : start + m] = view[done : done + m]
                self.log.write(buf)
            done += m
            offset += m
        if n > 0 and offset > inode.size:
            inode.size = offset
            self.update(inode)
        return n

    # Directories.

    def dir_lookup(self, dp: Inode, name: str) -> Optional[tuple[Inode, int]]:
        """Find ``name`` in a locked directory: its inode and entry offset, or None."""
        if dp.type != FileType.DIR:
            raise FileSystemError("dirlookup not DIR")
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = self.read(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise FileSystemError("dirlookup read")
            de = DirEntry.unpack(raw)
            if de.inum and names_equal(name, de.name):
                return self.get_inode(de.inum), off
        return None

    def dir_link(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry (name, inum) to a locked directory."""
        found = self.dir_lookup(dp, name)
        if found is not None:
            self.put(found[0])
            raise FileSystemError(f"{name}: entry exists")
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = self.read(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise FileSystemError("dirlink read")
            if DirEntry.unpack(raw).inum == 0:
                break
        else:
            off = -(-dp.size // DIRENT_SIZE) * DIRENT_SIZE
        entry = DirEntry(inum, name[:DIRSIZ]).pack()
        if self.write(dp, off, entry) != DIRENT_SIZE:
            raise FileSystemError("dirlink")

    # Path names.

    def _namex(self, path: str, parent: bool, cwd: Optional[Inode]):
        if path.startswith("/") or cwd is None:
            ip = self.get_inode(ROOTINO)
        else:
            ip = self.dup(cwd)
        name = ""
        while (step := skip_element(path)) is not None:
            name, path = step
            self.lock(ip)
            if ip.type != FileType.DIR:
                self.unlock(ip)
                self.put(ip)
                return None
            if parent and path == "":
                self.unlock(ip)
                return ip, name
            found = self.dir_lookup(ip, name)
            self.unlock(ip)
            self.put(ip)
            if found is None:
                return None
            ip = found[0]
        if parent:
            self.put(ip)
            return None
        return ip, name

    def lookup(self, path: str, cwd: Optional[Inode] = None) -> Optional[Inode]:
        """Inode for a path, relative to ``cwd`` (or the root), or None."""
        found = self._namex(path, False, cwd)
        return None if found is None else found[0]

    def lookup_parent(
        self, path: str, cwd: Optional[Inode] = None
    ) -> Optional[tuple[Inode, str]]:
        """Inode of the parent directory of a path and the final element, or None."""
        return self._namex(path, True, cwd)