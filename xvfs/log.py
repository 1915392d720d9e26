"""Write-ahead redo log grouping file system operations into atomic transactions."""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from typing import Iterator

from .bufcache import Buffer, BufferCache
from .layout import BSIZE

LOGSIZE = 30  # most data blocks in one transaction
MAXOPBLOCKS = 10  # most blocks any single operation writes

_COUNT = struct.Struct("<i")


class LogError(Exception):
    """Raised when the log is misused or its header is unreadable."""


class Log:
    """On-disk log: a header block followed by copies of the logged blocks.

    The header holds the count of logged blocks and their home block
    numbers. A transaction commits when the header is written.
    """

    def __init__(
        self,
        cache: BufferCache,
        start: int,
        size: int,
        *,
        capacity: int = LOGSIZE,
        max_op_blocks: int = MAXOPBLOCKS,
    ) -> None:
        if _COUNT.size * (capacity + 1) >= BSIZE:
            raise LogError("initlog: too big logheader")
        self.cache = cache
        self.start = start
        self.size = size
        self.capacity = capacity
        self.max_op_blocks = max_op_blocks
        self.blocks: list[int] = []
        self.outstanding = 0
        self.committing = False
        self._cond = threading.Condition()
        self.recover()

    def _read_head(self) -> None:
        with self.cache.block(self.start) as buf:
            (n,) = _COUNT.unpack_from(buf.data)
            if not 0 <= n <= self.capacity:
                raise LogError(f"corrupt log header: {n} blocks")
            self.blocks = list(struct.unpack_from(f"<{n}i", buf.data, _COUNT.size))

    def _write_head(self) -> None:
        with self.cache.block(self.start) as buf:
            n = len(self.blocks)
            _COUNT.pack_into(buf.data, 0, n)
            struct.pack_into(f"<{n}i", buf.data, _COUNT.size, *self.blocks)
            self.cache.write(buf)

    def _install(self) -> None:
        """Copy committed blocks from the log to their home locations."""
        for tail, home in enumerate(self.blocks):
            with self.cache.block(self.start + tail + 1) as logged, self.cache.block(
                home
            ) as dest:
                dest.data[:] = logged.data
                self.cache.write(dest)

    def _write_log(self) -> None:
        """Copy modified blocks from the cache to the log."""
        for tail, home in enumerate(self.blocks):
            with self.cache.block(self.start + tail + 1) as to, self.cache.block(
                home
            ) as src:
                to.data[:] = src.data
                self.cache.write(to)

    def _commit(self) -> None:
        if self.blocks:
            self._write_log()
            self._write_head()  # the real commit
            self._install()
            self.blocks = []
            self._write_head()  # erase the transaction from the log

    def recover(self) -> None:
        """Install any committed transaction found on disk, then clear the log."""
        self._read_head()
        self._install()
        self.blocks = []
        self._write_head()

    def begin_op(self) -> None:
        """Start an operation, waiting while a commit runs or space is short."""
        with self._cond:
            while (
                self.committing
                or len(self.blocks) + (self.outstanding + 1) * self.max_op_blocks
                > self.capacity
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """End an operation; the last outstanding one commits the transaction."""
        with self._cond:
            if self.outstanding < 1:
                raise LogError("end_op outside of trans")
            self.outstanding -= 1
            if self.committing:
                raise LogError("log.committing")
            do_commit = self.outstanding == 0
            if do_commit:
                self.committing = True
            else:
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    def write(self, buf: Buffer) -> None:
        """Record a modified buffer in the current transaction and pin it."""
        if len(self.blocks) >= self.capacity or len(self.blocks) >= self.size - 1:
            raise LogError("too big a transaction")
        if self.outstanding < 1:
            raise LogError("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self.blocks:
                self.blocks.append(buf.blockno)
            buf.dirty = True

    @contextmanager
    def operation(self) -> Iterator[Log]:
        """Run the body of a with-block as one file system operation."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()