"""Pipes: a bounded byte buffer with a read end and a write end."""

from __future__ import annotations

import threading

from .file import FileError, FileKind, FileTable, OpenFile

PIPESIZE = 512


class PipeClosed(Exception):
    """Raised when writing to a pipe whose read end is closed."""


class Pipe:
    """Byte buffer shared by a reading and a writing file."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._data = bytearray(PIPESIZE)
        self.nread = 0  # number of bytes read
        self.nwrite = 0  # number of bytes written
        self.readopen = True
        self.writeopen = True

    def close(self, writable: bool) -> None:
        """Close the write end if ``writable``, else the read end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()

    @property
    def released(self) -> bool:
        """True once both ends are closed."""
        return not self.readopen and not self.writeopen

    def write(self, data) -> int:
        """Write all of ``data``, waiting while the buffer is full."""
        data = bytes(data)
        with self._cond:
            for byte in data:
                while self.nwrite == self.nread + PIPESIZE:
                    if not self.readopen:
                        raise PipeClosed("pipe read end closed")
                    self._cond.notify_all()
                    self._cond.wait()
                self._data[self.nwrite % PIPESIZE] = byte
                self.nwrite += 1
            self._cond.notify_all()
        return len(data)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, waiting for data while the writer is open."""
        with self._cond:
            while self.nread == self.nwrite and self.writeopen:
                self._cond.wait()
            count = max(0, min(n, self.nwrite - self.nread))
            out = bytearray()
            for _ in range(count):
                out.append(self._data[self.nread % PIPESIZE])
                self.nread += 1
            self._cond.notify_all()
        return bytes(out)


def make_pipe(table: FileTable) -> tuple[OpenFile, OpenFile]:
    """Create a pipe; returns its read file and its write file."""
    f0 = table.alloc()
    try:
        f1 = table.alloc()
    except FileError:
        f0.close()
        raise
    pipe = Pipe()
    f0.kind, f0.readable, f0.writable, f0.pipe = FileKind.PIPE, True, False, pipe
    f1.kind, f1.readable, f1.writable, f1.pipe = FileKind.PIPE, False, True, pipe
    return f0, f1