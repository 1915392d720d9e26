"""Open files: reference-counted handles onto pipes and inodes."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from .fs import FileSystem, FileSystemError, Inode, Stat
from .layout import BSIZE
from .log import MAXOPBLOCKS

if TYPE_CHECKING:
    from .pipe import Pipe

NFILE = 100  # open files per system

# Write a few blocks at a time so one operation stays within the log:
# inode, indirect block, allocation blocks and two blocks of slop for
# non-aligned writes.
_MAX_WRITE = ((MAXOPBLOCKS - 1 - 1 - 2) // 2) * BSIZE


class FileError(Exception):
    """Raised for an invalid operation on an open file."""


class FileKind(Enum):
    """What an open file refers to."""

    NONE = 0
    PIPE = 1
    INODE = 2


@dataclass(eq=False)
class OpenFile:
    """One slot of the file table."""

    table: FileTable = field(repr=False)
    kind: FileKind = FileKind.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Optional[Pipe] = None
    inode: Optional[Inode] = None
    offset: int = 0

    def _fs(self) -> FileSystem:
        if self.table.fs is None:
            raise FileError("file table has no file system")
        return self.table.fs

    def dup(self) -> OpenFile:
        """Add a reference to this file and return it."""
        with self.table._lock:
            if self.ref < 1:
                raise FileError("filedup")
            self.ref += 1
        return self

    def close(self) -> None:
        """Drop a reference; the last one releases the pipe end or inode."""
        with self.table._lock:
            if self.ref < 1:
                raise FileError("fileclose")
            self.ref -= 1
            if self.ref > 0:
                return
            kind, pipe, inode, writable = self.kind, self.pipe, self.inode, self.writable
            self.kind = FileKind.NONE
            self.pipe = None
            self.inode = None
        if kind is FileKind.PIPE and pipe is not None:
            pipe.close(writable)
        elif kind is FileKind.INODE and inode is not None:
            fs = self._fs()
            with fs.log.operation():
                fs.put(inode)

    def stat(self) -> Stat:
        """Metadata of the inode behind this file."""
        if self.kind is not FileKind.INODE or self.inode is None:
            raise FileError("stat of a file that is not an inode")
        fs = self._fs()
        fs.lock(self.inode)
        try:
            return fs.stat(self.inode)
        finally:
            fs.unlock(self.inode)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, advancing the offset."""
        if not self.readable:
            raise FileError("file not readable")
        if self.kind is FileKind.PIPE and self.pipe is not None:
            return self.pipe.read(n)
        if self.kind is FileKind.INODE and self.inode is not None:
            fs = self._fs()
            fs.lock(self.inode)
            try:
                data = fs.read(self.inode, self.offset, n)
            except FileSystemError as exc:
                raise FileError(str(exc)) from exc
            finally:
                fs.unlock(self.inode)
            self.offset += len(data)
            return data
        raise FileError("fileread")

    def write(self, data) -> int:
        """Write all of ``data``, advancing the offset; returns the count."""
        if not self.writable:
            raise FileError("file not writable")
        data = bytes(data)
        if self.kind is FileKind.PIPE and self.pipe is not None:
            return self.pipe.write(data)
        if self.kind is FileKind.INODE and self.inode is not None:
            fs = self._fs()
            done = 0
            while done < len(data):
                piece = data[done : done + _MAX_WRITE]
                with fs.log.operation():
                    fs.lock(self.inode)
                    try:
                        written = fs.write(self.inode, self.offset, piece)
                    except FileSystemError as exc:
                        raise FileError(str(exc)) from exc
                    finally:
                        fs.unlock(self.inode)
                if written > 0:
                    self.offset += written
                if written != len(piece):
                    raise FileError("short filewrite")
                done += written
            return len(data)
        raise FileError("filewrite")


class FileTable:
    """A fixed number of open-file slots shared by everything using a file system."""

    def __init__(self, fs: Optional[FileSystem] = None, nfile: int = NFILE) -> None:
        self.fs = fs
        self._lock = threading.Lock()
        self._files = [OpenFile(self) for _ in range(nfile)]

    def alloc(self) -> OpenFile:
        """Claim a free slot; it comes back with one reference and no target."""
        with self._lock:
            for f in self._files:
                if f.ref == 0:
                    f.kind = FileKind.NONE
                    f.readable = False
                    f.writable = False
                    f.pipe = None
                    f.inode = None
                    f.offset = 0
                    f.ref = 1
                    return f
        raise FileError("file table full")