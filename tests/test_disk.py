import pytest

from xvfs.disk import DiskError, MemoryDisk
from xvfs.layout import BSIZE


def test_blank_disk_reads_zero():
    disk = MemoryDisk(nblocks=4)
    assert len(disk) == 4
    assert disk.read(3) == bytes(BSIZE)


def test_write_read_round_trip():
    disk = MemoryDisk(nblocks=4)
    payload = bytes(range(256)) * 2
    disk.write(2, payload)
    assert disk.read(2) == payload
    assert disk.read(1) == bytes(BSIZE)


def test_to_bytes_reflects_writes():
    disk = MemoryDisk(nblocks=2)
    disk.write(1, b"z" * BSIZE)
    image = disk.to_bytes()
    assert len(image) == 2 * BSIZE
    assert image[BSIZE:] == b"z" * BSIZE


def test_image_is_used_as_given():
    image = b"a" * BSIZE + b"b" * BSIZE
    disk = MemoryDisk(image)
    assert disk.read(1) == b"b" * BSIZE
    assert disk.to_bytes() == image


def test_partial_trailing_block_not_addressable():
    disk = MemoryDisk(bytes(BSIZE + 10))
    assert len(disk) == 1
    with pytest.raises(DiskError):
        disk.read(1)


@pytest.mark.parametrize("blockno", [-1, 4, 100])
def test_out_of_range(blockno):
    disk = MemoryDisk(nblocks=4)
    with pytest.raises(DiskError):
        disk.read(blockno)
    with pytest.raises(DiskError):
        disk.write(blockno, bytes(BSIZE))


def test_write_wrong_size():
    disk = MemoryDisk(nblocks=1)
    with pytest.raises(DiskError):
        disk.write(0, b"short")