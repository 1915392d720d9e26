"""On-disk file system format: block layout, superblock, inodes, directory entries."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum

ROOTINO = 1  # root i-number
BSIZE = 512  # block size

NDIRECT = 12
NINDIRECT = BSIZE // 4
MAXFILE = NDIRECT + NINDIRECT

DIRSIZ = 14

_SUPERBLOCK = struct.Struct("<7I")
_DINODE = struct.Struct(f"<4hI{NDIRECT + 1}I")
_DIRENT = struct.Struct(f"<H{DIRSIZ}s")

SUPERBLOCK_SIZE = _SUPERBLOCK.size
INODE_SIZE = _DINODE.size
DIRENT_SIZE = _DIRENT.size

IPB = BSIZE // INODE_SIZE  # inodes per block
BPB = BSIZE * 8  # bitmap bits per block

_NAME_ENCODING = "utf-8"
_NAME_ERRORS = "surrogateescape"


class FileType(IntEnum):
    """Inode types as stored on disk."""

    FREE = 0
    DIR = 1
    FILE = 2
    DEVICE = 3


@dataclass
class SuperBlock:
    """Describes the disk layout."""

    size: int = 0  # size of file system image (blocks)
    nblocks: int = 0  # number of data blocks
    ninodes: int = 0  # number of inodes
    nlog: int = 0  # number of log blocks
    logstart: int = 0  # block number of first log block
    inodestart: int = 0  # block number of first inode block
    bmapstart: int = 0  # block number of first free map block

    def pack(self) -> bytes:
        return _SUPERBLOCK.pack(
            self.size,
            self.nblocks,
            self.ninodes,
            self.nlog,
            self.logstart,
            self.inodestart,
            self.bmapstart,
        )

    @classmethod
    def unpack(cls, data) -> SuperBlock:
        return cls(*_SUPERBLOCK.unpack_from(data))


@dataclass
class DiskInode:
    """On-disk inode structure."""

    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))

    def __post_init__(self) -> None:
        self.addrs = list(self.addrs)
        if len(self.addrs) != NDIRECT + 1:
            raise ValueError(f"an inode holds exactly {NDIRECT + 1} block addresses")

    def pack(self) -> bytes:
        return _DINODE.pack(
            self.type, self.major, self.minor, self.nlink, self.size, *self.addrs
        )

    @classmethod
    def unpack(cls, data) -> DiskInode:
        type_, major, minor, nlink, size, *addrs = _DINODE.unpack_from(data)
        return cls(type_, major, minor, nlink, size, addrs)


@dataclass
class DirEntry:
    """One entry of a directory; inum 0 marks a free slot."""

    inum: int = 0
    name: str = ""

    def pack(self) -> bytes:
        raw = self.name.encode(_NAME_ENCODING, _NAME_ERRORS)[:DIRSIZ]
        return _DIRENT.pack(self.inum, raw)

    @classmethod
    def unpack(cls, data) -> DirEntry:
        inum, raw = _DIRENT.unpack_from(data)
        name = raw.split(b"\0", 1)[0].decode(_NAME_ENCODING, _NAME_ERRORS)
        return cls(inum, name)


def inode_block(inum: int, sb: SuperBlock) -> int:
    """Block holding inode ``inum``."""
    return inum // IPB + sb.inodestart


def bitmap_block(blockno: int, sb: SuperBlock) -> int:
    """Block of the free map holding the bit for ``blockno``."""
    return blockno // BPB + sb.bmapstart