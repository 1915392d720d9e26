"""A disk whose blocks are kept in memory."""

from __future__ import annotations

from .layout import BSIZE


class DiskError(Exception):
    """Raised for an invalid disk request."""


class MemoryDisk:
    """Block device backed by a byte image held in memory."""

    def __init__(self, image: bytes | bytearray | None = None, nblocks: int = 0) -> None:
        if image is None:
            if nblocks < 0:
                raise DiskError("negative disk size")
            self._image = bytearray(nblocks * BSIZE)
        else:
            self._image = bytearray(image)
        self.nblocks = len(self._image) // BSIZE

    def __len__(self) -> int:
        return self.nblocks

    def _check(self, blockno: int) -> int:
        if not 0 <= blockno < self.nblocks:
            raise DiskError(f"block {blockno} out of range")
        return blockno * BSIZE

    def read(self, blockno: int) -> bytes:
        start = self._check(blockno)
        return bytes(self._image[start : start + BSIZE])

    def write(self, blockno: int, data) -> None:
        start = self._check(blockno)
        if len(data) != BSIZE:
            raise DiskError(f"a block write takes exactly {BSIZE} bytes")
        self._image[start : start + BSIZE] = data

    def to_bytes(self) -> bytes:
        return bytes(self._image)