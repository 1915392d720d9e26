"""Build a file system image holding a root directory and a list of files."""

from __future__ import annotations

import struct
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .layout import (
    BPB,
    BSIZE,
    INODE_SIZE,
    IPB,
    MAXFILE,
    NDIRECT,
    ROOTINO,
    DirEntry,
    DiskInode,
    FileType,
    SuperBlock,
    inode_block,
)
from .log import LOGSIZE

FSSIZE = 1000  # size of the file system in blocks
NINODES = 200

_ADDR = struct.Struct("<I")


@dataclass(frozen=True)
class _Geometry:
    fs_size: int
    log_size: int
    ninodes: int

    @property
    def nbitmap(self) -> int:
        return self.fs_size // BPB + 1

    @property
    def ninodeblocks(self) -> int:
        return self.ninodes // IPB + 1

    @property
    def nmeta(self) -> int:
        # boot, superblock, log, inode blocks, bitmap
        return 2 + self.log_size + self.ninodeblocks + self.nbitmap

    @property
    def nblocks(self) -> int:
        return self.fs_size - self.nmeta

    def superblock(self) -> SuperBlock:
        return SuperBlock(
            size=self.fs_size,
            nblocks=self.nblocks,
            ninodes=self.ninodes,
            nlog=self.log_size,
            logstart=2,
            inodestart=2 + self.log_size,
            bmapstart=2 + self.log_size + self.ninodeblocks,
        )


class _Image:
    def __init__(self, geometry: _Geometry) -> None:
        self.geometry = geometry
        self.sb = geometry.superblock()
        self.data = bytearray(geometry.fs_size * BSIZE)
        self.freeinode = 1
        self.freeblock = geometry.nmeta  # first block that can be allocated
        packed = self.sb.pack()
        self.data[BSIZE : BSIZE + len(packed)] = packed

    def _inode_offset(self, inum: int) -> int:
        return inode_block(inum, self.sb) * BSIZE + (inum % IPB) * INODE_SIZE

    def read_inode(self, inum: int) -> DiskInode:
        off = self._inode_offset(inum)
        return DiskInode.unpack(bytes(self.data[off : off + INODE_SIZE]))

    def write_inode(self, inum: int, din: DiskInode) -> None:
        off = self._inode_offset(inum)
        self.data[off : off + INODE_SIZE] = din.pack()

    def alloc_inode(self, type_: FileType) -> int:
        inum = self.freeinode
        if inum >= self.geometry.ninodes:
            raise ValueError("out of inodes")
        self.freeinode += 1
        self.write_inode(inum, DiskInode(type=int(type_), nlink=1, size=0))
        return inum

    def alloc_block(self) -> int:
        if self.freeblock >= self.geometry.fs_size:
            raise ValueError("out of blocks")
        blockno = self.freeblock
        self.freeblock += 1
        return blockno

    def append(self, inum: int, data: bytes) -> None:
        din = self.read_inode(inum)
        off = din.size
        view = memoryview(data)
        pos = 0
        while pos < len(data):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self.alloc_block()
                x = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self.alloc_block()
                slot = din.addrs[NDIRECT] * BSIZE + (fbn - NDIRECT) * _ADDR.size
                (x,) = _ADDR.unpack_from(self.data, slot)
                if x == 0:
                    x = self.alloc_block()
                    _ADDR.pack_into(self.data, slot, x)
            n1 = min(len(data) - pos, (fbn + 1) * BSIZE - off)
            start = x * BSIZE + off - fbn * BSIZE
            self.data[start : start + n1] = view[pos : pos + n1]
            pos += n1
            off += n1
        din.size = off
        self.write_inode(inum, din)

    def write_bitmap(self, used: int) -> None:
        if used >= BPB:
            raise ValueError("too many blocks for one bitmap block")
        bitmap = bytearray(BSIZE)
        for i in range(used):
            bitmap[i // 8] |= 1 << (i % 8)
        start = self.sb.bmapstart * BSIZE
        self.data[start : start + BSIZE] = bitmap


def _build(files, fs_size: int, log_size: int, ninodes: int):
    entries = files.items() if isinstance(files, Mapping) else files
    geometry = _Geometry(fs_size, log_size, ninodes)
    if geometry.nblocks <= 0:
        raise ValueError("file system too small for its metadata")
    image = _Image(geometry)

    root = image.alloc_inode(FileType.DIR)
    if root != ROOTINO:
        raise ValueError("root inode misplaced")
    image.append(root, DirEntry(root, ".").pack())
    image.append(root, DirEntry(root, "..").pack())

    for name, content in entries:
        if "/" in name:
            raise ValueError(f"{name}: names may not contain '/'")
        # A leading underscore keeps build hosts from running the binaries.
        if name.startswith("_"):
            name = name[1:]
        inum = image.alloc_inode(FileType.FILE)
        image.append(root, DirEntry(inum, name).pack())
        image.append(inum, bytes(content))

    din = image.read_inode(root)
    din.size = (din.size // BSIZE + 1) * BSIZE
    image.write_inode(root, din)

    used = image.freeblock
    image.write_bitmap(used)
    return bytes(image.data), geometry, used


def build_image(files, fs_size: int = FSSIZE, log_size: int = LOGSIZE, ninodes: int = NINODES) -> bytes:
    """Return a file system image holding ``files`` in its root directory.

    ``files`` is a mapping or an iterable of (name, content) pairs.
    """
    image, _, _ = _build(files, fs_size, log_size, ninodes)
    return image


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        sys.stderr.write("Usage: mkfs fs.img files...\n")
        return 1
    target, names = args[0], args[1:]
    files = []
    for name in names:
        try:
            files.append((name, Path(name).read_bytes()))
        except OSError as exc:
            sys.stderr.write(f"{name}: {exc.strerror}\n")
            return 1
    try:
        image, geometry, used = _build(files, FSSIZE, LOGSIZE, NINODES)
    except ValueError as exc:
        sys.stderr.write(f"mkfs: {exc}\n")
        return 1
    print(
        f"nmeta {geometry.nmeta} (boot, super, log blocks {geometry.log_size} "
        f"inode blocks {geometry.ninodeblocks}, bitmap blocks {geometry.nbitmap}) "
        f"blocks {geometry.nblocks} total {geometry.fs_size}"
    )
    print(f"balloc: first {used} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {geometry.superblock().bmapstart}")
    try:
        Path(target).write_bytes(image)
    except OSError as exc:
        sys.stderr.write(f"{target}: {exc.strerror}\n")
        return 1
    return 0