"""Buffer cache: cached copies of disk blocks, recycled least-recently-used first."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from .disk import MemoryDisk
from .layout import BSIZE

NBUF = 30


class CacheError(Exception):
    """Raised when the buffer cache is misused or exhausted."""


@dataclass(eq=False)
class Buffer:
    """One cached disk block."""

    blockno: int = -1
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    valid: bool = False  # data has been read from disk
    dirty: bool = False  # data modified, must be written to disk
    refcnt: int = 0
    held: bool = False


class BufferCache:
    """A fixed pool of buffers in front of a disk."""

    def __init__(self, disk: MemoryDisk, nbuf: int = NBUF) -> None:
        if nbuf < 1:
            raise ValueError("a buffer cache needs at least one buffer")
        self.disk = disk
        self._lock = threading.Lock()
        # Index 0 is the most recently used buffer.
        self._lru = [Buffer() for _ in range(nbuf)]

    def _get(self, blockno: int) -> Buffer:
        with self._lock:
            for buf in self._lru:
                if buf.blockno == blockno:
                    if buf.held:
                        raise CacheError(f"block {blockno} is already held")
                    buf.refcnt += 1
                    buf.held = True
                    return buf
            # Not cached; recycle an unused buffer. A dirty buffer is still
            # in use by the log even with no references.
            for buf in reversed(self._lru):
                if buf.refcnt == 0 and not buf.dirty:
                    buf.blockno = blockno
                    buf.valid = False
                    buf.dirty = False
                    buf.refcnt = 1
                    buf.held = True
                    return buf
        raise CacheError("no buffers")

    def read(self, blockno: int) -> Buffer:
        """Return a held buffer with the contents of the block."""
        buf = self._get(blockno)
        if not buf.valid:
            buf.data[:] = self.disk.read(blockno)
            buf.valid = True
        return buf

    def write(self, buf: Buffer) -> None:
        """Write a held buffer's contents to disk."""
        if not buf.held:
            raise CacheError("bwrite: buffer not held")
        buf.dirty = True
        self.disk.write(buf.blockno, bytes(buf.data))
        buf.dirty = False
        buf.valid = True

    def release(self, buf: Buffer) -> None:
        """Release a held buffer, moving it to the front of the LRU list."""
        if not buf.held:
            raise CacheError("brelse: buffer not held")
        buf.held = False
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._lru.remove(buf)
                self._lru.insert(0, buf)

    @contextmanager
    def block(self, blockno: int) -> Iterator[Buffer]:
        """Hold the buffer for a block for the duration of a with-block."""
        buf = self.read(blockno)
        try:
            yield buf
        finally:
            self.release(buf)