"""Small user tools working on a file system: cat, echo and ls."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from .disk import MemoryDisk
from .file import FileError, FileKind, FileTable, OpenFile
from .fs import FileSystem, Stat
from .layout import DIRENT_SIZE, DIRSIZ, DirEntry, FileType

_CHUNK = 512
_PATH_MAX = 512


def _open(fs: FileSystem, table: FileTable, path: str) -> OpenFile:
    with fs.log.operation():
        ip = fs.lookup(path)
    if ip is None:
        raise FileError(f"cannot open {path}")
    try:
        f = table.alloc()
    except FileError:
        with fs.log.operation():
            fs.put(ip)
        raise
    f.kind = FileKind.INODE
    f.inode = ip
    f.readable = True
    return f


def _stat(fs: FileSystem, table: FileTable, path: str) -> Optional[Stat]:
    try:
        f = _open(fs, table, path)
    except FileError:
        return None
    try:
        return f.stat()
    finally:
        f.close()


def cat(fs: FileSystem, paths) -> bytes:
    """Concatenated contents of the files at ``paths``."""
    table = FileTable(fs)
    out = bytearray()
    for path in paths:
        try:
            f = _open(fs, table, path)
        except FileError:
            raise FileError(f"cat: cannot open {path}") from None
        try:
            while chunk := f.read(_CHUNK):
                out += chunk
        finally:
            f.close()
    return bytes(out)


def echo(args) -> str:
    """The arguments separated by spaces and ended by a newline; empty for none."""
    args = list(args)
    return " ".join(args) + "\n" if args else ""


def fmtname(path: str) -> str:
    """Last element of a path, blank-padded to DIRSIZ characters."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _line(path: str, st: Stat) -> str:
    return f"{fmtname(path)} {st.type} {st.ino} {st.size}"


def ls(fs: FileSystem, path: str = ".") -> list[str]:
    """Listing lines for a file, or for every entry of a directory."""
    table = FileTable(fs)
    try:
        f = _open(fs, table, path)
    except FileError:
        raise FileError(f"ls: cannot open {path}") from None
    try:
        st = f.stat()
        if st.type == FileType.FILE:
            return [_line(path, st)]
        if st.type != FileType.DIR:
            return []
        if len(path) + 1 + DIRSIZ + 1 > _PATH_MAX:
            return ["ls: path too long"]
        lines = []
        while len(raw := f.read(DIRENT_SIZE)) == DIRENT_SIZE:
            de = DirEntry.unpack(raw)
            if de.inum == 0:
                continue
            full = f"{path}/{de.name}"
            entry = _stat(fs, table, full)
            lines.append(f"ls: cannot stat {full}" if entry is None else _line(full, entry))
        return lines
    finally:
        f.close()


_USAGE = "usage: tools echo args... | tools cat fs.img [file ...] | tools ls fs.img [path ...]\n"


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        sys.stderr.write(_USAGE)
        return 1
    command, rest = args[0], args[1:]
    if command == "echo":
        sys.stdout.write(echo(rest))
        return 0
    if command not in ("cat", "ls") or not rest:
        sys.stderr.write(_USAGE)
        return 1
    try:
        image = Path(rest[0]).read_bytes()
    except OSError as exc:
        sys.stderr.write(f"{rest[0]}: {exc.strerror}\n")
        return 1
    fs = FileSystem(MemoryDisk(image))
    paths = rest[1:]
    if command == "cat":
        sys.stdout.flush()
        out = sys.stdout.buffer
        if not paths:
            while chunk := sys.stdin.buffer.read(_CHUNK):
                out.write(chunk)
            out.flush()
            return 0
        for path in paths:
            try:
                out.write(cat(fs, [path]))
            except FileError as exc:
                out.flush()
                sys.stdout.write(f"{exc}\n")
                return 1
        out.flush()
        return 0
    status = 0
    for path in paths or ["."]:
        try:
            for line in ls(fs, path):
                print(line)
        except FileError as exc:
            sys.stderr.write(f"{exc}\n")
            status = 1
    return status