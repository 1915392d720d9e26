import pytest

from xvfs.disk import MemoryDisk
from xvfs.file import FileError, FileKind, FileTable
from xvfs.fs import FileSystem
from xvfs.layout import FileType
from xvfs.mkfs import build_image
from xvfs.pipe import Pipe

CONTENT = b"hello world\n"


@pytest.fixture
def fs():
    return FileSystem(MemoryDisk(build_image([("README", CONTENT)])))


def open_path(fs, table, path, readable=True, writable=False):
    with fs.log.operation():
        ip = fs.lookup(path)
    f = table.alloc()
    f.kind = FileKind.INODE
    f.inode = ip
    f.readable = readable
    f.writable = writable
    return f


def test_alloc_exhausts_table():
    table = FileTable(nfile=2)
    a = table.alloc()
    b = table.alloc()
    assert (a.ref, b.ref) == (1, 1)
    with pytest.raises(FileError):
        table.alloc()


def test_closed_slot_is_reused():
    table = FileTable(nfile=1)
    a = table.alloc()
    a.close()
    b = table.alloc()
    assert b is a
    assert b.ref == 1
    assert b.kind is FileKind.NONE


def test_dup_and_close_count_references():
    table = FileTable()
    f = table.alloc()
    assert f.dup() is f
    assert f.ref == 2
    f.close()
    assert f.ref == 1
    f.close()
    assert f.ref == 0
    with pytest.raises(FileError):
        f.close()
    with pytest.raises(FileError):
        f.dup()


def test_read_advances_offset(fs):
    f = open_path(fs, FileTable(fs), "README")
    assert f.read(5) == CONTENT[:5]
    assert f.offset == 5
    assert f.read(100) == CONTENT[5:]
    assert f.read(10) == b""


def test_read_requires_readable(fs):
    f = open_path(fs, FileTable(fs), "README", readable=False)
    with pytest.raises(FileError):
        f.read(1)


def test_write_requires_writable(fs):
    f = open_path(fs, FileTable(fs), "README")
    with pytest.raises(FileError):
        f.write(b"x")


def test_write_then_read_back(fs):
    table = FileTable(fs)
    w = open_path(fs, table, "README", readable=False, writable=True)
    assert w.write(b"HELLO") == 5
    assert w.offset == 5
    w.close()
    r = open_path(fs, table, "README")
    assert r.read(100) == b"HELLO" + CONTENT[5:]


def test_large_write_spans_several_operations(fs):
    table = FileTable(fs)
    data = bytes(range(256)) * 20
    w = open_path(fs, table, "README", writable=True)
    assert w.write(data) == len(data)
    assert w.stat().size == len(data)
    w.close()
    r = open_path(fs, table, "README")
    got = b""
    while chunk := r.read(700):
        got += chunk
    assert got == data


def test_stat_of_inode(fs):
    f = open_path(fs, FileTable(fs), "README")
    st = f.stat()
    assert st.size == len(CONTENT)
    assert st.type == FileType.FILE
    assert st.ino == f.inode.inum


def test_stat_of_pipe_fails():
    f = FileTable().alloc()
    f.kind = FileKind.PIPE
    f.pipe = Pipe()
    f.readable = True
    with pytest.raises(FileError):
        f.stat()


def test_close_drops_inode_reference(fs):
    f = open_path(fs, FileTable(fs), "README")
    ip = f.inode
    before = ip.ref
    f.close()
    assert ip.ref == before - 1
    assert f.inode is None


def test_pipe_backed_files():
    table = FileTable()
    pipe = Pipe()
    r = table.alloc()
    r.kind, r.pipe, r.readable = FileKind.PIPE, pipe, True
    w = table.alloc()
    w.kind, w.pipe, w.writable = FileKind.PIPE, pipe, True
    assert w.write(b"abc") == 3
    assert r.read(10) == b"abc"
    w.close()
    assert pipe.writeopen is False
    assert r.read(10) == b""


def test_write_to_untyped_file_fails():
    f = FileTable().alloc()
    f.writable = True
    with pytest.raises(FileError):
        f.write(b"x")