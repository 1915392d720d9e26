import pytest

from xvfs.disk import MemoryDisk
from xvfs.fs import FileSystem, FileSystemError, names_equal, skip_element
from xvfs.layout import (
    BPB,
    BSIZE,
    DIRSIZ,
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
from xvfs.log import LOGSIZE

FS_SIZE = 300
NINODES = 64


def make_disk():
    ninodeblocks = NINODES // IPB + 1
    nbitmap = FS_SIZE // BPB + 1
    nmeta = 2 + LOGSIZE + ninodeblocks + nbitmap
    sb = SuperBlock(
        FS_SIZE,
        FS_SIZE - nmeta,
        NINODES,
        LOGSIZE,
        2,
        2 + LOGSIZE,
        2 + LOGSIZE + ninodeblocks,
    )
    disk = MemoryDisk(nblocks=FS_SIZE)
    disk.write(1, sb.pack().ljust(BSIZE, b"\0"))

    rootblock = nmeta
    root = DiskInode(
        type=FileType.DIR, nlink=1, size=BSIZE, addrs=[rootblock] + [0] * NDIRECT
    )
    ib = bytearray(disk.read(inode_block(ROOTINO, sb)))
    off = (ROOTINO % IPB) * INODE_SIZE
    ib[off : off + INODE_SIZE] = root.pack()
    disk.write(inode_block(ROOTINO, sb), ib)

    entries = DirEntry(ROOTINO, ".").pack() + DirEntry(ROOTINO, "..").pack()
    disk.write(rootblock, entries.ljust(BSIZE, b"\0"))

    bitmap = bytearray(BSIZE)
    for b in range(nmeta + 1):
        bitmap[b // 8] |= 1 << (b % 8)
    disk.write(sb.bmapstart, bitmap)
    return disk


@pytest.fixture
def disk():
    return make_disk()


@pytest.fixture
def fs(disk):
    return FileSystem(disk)


def create(fs, name, data=b"", type_=FileType.FILE):
    root = fs.lookup("/")
    with fs.log.operation():
        ip = fs.alloc_inode(type_)
        fs.lock(ip)
        ip.nlink = 1
        fs.update(ip)
        if data:
            fs.write(ip, 0, data)
        fs.unlock(ip)
        fs.lock(root)
        fs.dir_link(root, name, ip.inum)
        fs.unlock(root)
    fs.put(root)
    return ip


@pytest.mark.parametrize(
    "path, expected",
    [
        ("a/bb/c", ("a", "bb/c")),
        ("///a//bb", ("a", "bb")),
        ("a", ("a", "")),
        ("", None),
        ("////", None),
    ],
)
def test_skip_element_examples(path, expected):
    assert skip_element(path) == expected


def test_skip_element_truncates_long_names():
    name, rest = skip_element("/" + "x" * 20 + "/y")
    assert len(name) == DIRSIZ
    assert rest == "y"


def test_names_equal_compares_first_dirsiz_chars():
    assert names_equal("a" * DIRSIZ + "zz", "a" * DIRSIZ)
    assert not names_equal("abc", "abd")


def test_root_lookup(fs):
    root = fs.lookup("/")
    fs.lock(root)
    st = fs.stat(root)
    fs.unlock(root)
    assert st.ino == ROOTINO
    assert st.type == FileType.DIR
    assert st.size == BSIZE


def test_dot_entries(fs):
    root = fs.lookup("/")
    fs.lock(root)
    dot, off = fs.dir_lookup(root, "..")
    fs.unlock(root)
    assert dot is root
    assert off == DirEntry(0, "").pack().__len__()


def test_create_and_read_back(fs):
    ip = create(fs, "hello", b"hello world")
    found = fs.lookup("/hello")
    assert found is ip
    fs.lock(found)
    assert fs.read(found, 0, 100) == b"hello world"
    assert fs.read(found, 6, 5) == b"world"
    assert fs.stat(found).size == len(b"hello world")
    fs.unlock(found)


def test_large_file_uses_indirect_block(fs):
    data = (bytes(range(256)) * 30)[: 15 * BSIZE]
    ip = create(fs, "big", data)
    fs.lock(ip)
    assert ip.addrs[NDIRECT] != 0
    assert fs.read(ip, 0, len(data)) == data
    fs.unlock(ip)


def test_persistence_across_remount(disk, fs):
    create(fs, "keep", b"persistent")
    again = FileSystem(disk)
    ip = again.lookup("keep")
    again.lock(ip)
    assert again.read(ip, 0, 64) == b"persistent"
    again.unlock(ip)


def test_read_past_size_raises(fs):
    ip = create(fs, "f", b"abc")
    fs.lock(ip)
    with pytest.raises(FileSystemError):
        fs.read(ip, 4, 1)
    assert fs.read(ip, 3, 10) == b""
    fs.unlock(ip)


def test_write_past_maxfile_raises(fs):
    ip = create(fs, "f")
    with fs.log.operation():
        fs.lock(ip)
        with pytest.raises(FileSystemError):
            fs.write(ip, 0, bytes(MAXFILE * BSIZE + 1))
        with pytest.raises(FileSystemError):
            fs.write(ip, 1, b"x")
        fs.unlock(ip)


def test_duplicate_link_raises(fs):
    ip = create(fs, "dup")
    root = fs.lookup("/")
    with fs.log.operation():
        fs.lock(root)
        with pytest.raises(FileSystemError):
            fs.dir_link(root, "dup", ip.inum)
        fs.unlock(root)


def test_lookup_missing_and_through_file(fs):
    create(fs, "plain", b"x")
    assert fs.lookup("/nothere") is None
    assert fs.lookup("/plain/inner") is None


def test_lookup_parent(fs):
    parent, name = fs.lookup_parent("/newname")
    assert parent.inum == ROOTINO
    assert name == "newname"
    assert fs.lookup_parent("/") is None
    assert fs.lookup_parent("/missing/x") is None


def test_relative_lookup_uses_cwd(fs):
    ip = create(fs, "rel", b"r")
    root = fs.lookup("/")
    assert fs.lookup("rel", root) is ip


def test_get_inode_shares_cache_entry(fs):
    a = fs.get_inode(5)
    b = fs.get_inode(5)
    assert a is b
    assert a.ref == 2
    assert fs.dup(a).ref == 3


def test_inode_cache_exhaustion(disk):
    small = FileSystem(disk, ninode=2)
    small.get_inode(1)
    small.get_inode(2)
    with pytest.raises(FileSystemError):
        small.get_inode(3)


def test_lock_errors(fs):
    ip = fs.get_inode(ROOTINO)
    with pytest.raises(FileSystemError):
        fs.unlock(ip)
    fs.put(ip)
    with pytest.raises(FileSystemError):
        fs.lock(ip)


def test_lock_free_inode_raises(fs):
    ip = fs.get_inode(10)
    with pytest.raises(FileSystemError):
        fs.lock(ip)
    assert not ip.locked


def test_unlinked_inode_is_freed_and_reused(fs):
    ip = create(fs, "gone", b"data")
    inum = ip.inum
    fs.lock(ip)
    old_block = ip.addrs[0]
    with fs.log.operation():
        ip.nlink = 0
        fs.update(ip)
        fs.unlock(ip)
        fs.put(ip)  # reference from create
        fs.put(fs.get_inode(inum))
    with fs.log.operation():
        fresh = fs.alloc_inode(FileType.FILE)
        fs.lock(fresh)
        fresh.nlink = 1
        fs.update(fresh)
        fs.write(fresh, 0, b"y")
        assert fresh.inum == inum
        assert fresh.addrs[0] == old_block
        fs.unlock(fresh)


def test_linked_inode_survives_put(fs):
    ip = create(fs, "stay", b"abc")
    fs.put(ip)
    again = fs.lookup("/stay")
    fs.lock(again)
    assert fs.read(again, 0, 3) == b"abc"
    fs.unlock(again)


def test_device_read_and_write(fs):
    written = []
    fs.register_device(1, lambda ip, n: b"abc"[:n], lambda ip, d: written.append(d) or len(d))
    ip = create(fs, "dev", type_=FileType.DEVICE)
    with fs.log.operation():
        fs.lock(ip)
        ip.major = 1
        fs.update(ip)
        assert fs.read(ip, 0, 2) == b"ab"
        assert fs.write(ip, 0, b"out") == 3
        ip.major = 2
        with pytest.raises(FileSystemError):
            fs.read(ip, 0, 1)
        fs.unlock(ip)
    assert written == [b"out"]


def test_register_device_range(fs):
    with pytest.raises(ValueError):
        fs.register_device(99, None, None)


def test_dir_lookup_on_file_raises(fs):
    ip = create(fs, "notdir", b"z")
    fs.lock(ip)
    with pytest.raises(FileSystemError):
        fs.dir_lookup(ip, "x")
    fs.unlock(ip)