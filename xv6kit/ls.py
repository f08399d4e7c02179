"""List files and directory contents with their type, inode number and size."""

from __future__ import annotations

import errno

from .fs import FileSystem, Inode
from .layout import DIRSIZ, ROOTINO, Dirent, FileType, Stat

_PATH_BUF = 512


def fmtname(path: str) -> str:
    """Final path element, blank-padded to DIRSIZ characters."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _lookup(fs: FileSystem, path: str) -> Inode | None:
    with fs.log.transaction():
        root = fs.iget(ROOTINO)
        try:
            return fs.namei(path, root)
        finally:
            fs.iput(root)


def _release(fs: FileSystem, ip: Inode) -> None:
    with fs.log.transaction():
        fs.iunlockput(ip)


def _stat(fs: FileSystem, path: str) -> Stat | None:
    ip = _lookup(fs, path)
    if ip is None:
        return None
    fs.ilock(ip)
    try:
        return fs.stati(ip)
    finally:
        _release(fs, ip)


def _read_dir(fs: FileSystem, dp: Inode) -> list[Dirent]:
    data = fs.readi(dp, 0, dp.size)
    return [
        Dirent.unpack(data[off : off + Dirent.SIZE])
        for off in range(0, len(data) - Dirent.SIZE + 1, Dirent.SIZE)
    ]


def _line(name: str, st: Stat) -> str:
    return f"{name} {int(st.type)} {st.ino} {st.size}"


def ls(fs: FileSystem, path: str) -> list[str]:
    """Listing lines for ``path``; relative paths start at the root directory."""
    ip = _lookup(fs, path)
    if ip is None:
        raise FileNotFoundError(errno.ENOENT, "ls: cannot open", path)
    fs.ilock(ip)
    try:
        st = fs.stati(ip)
        entries = _read_dir(fs, ip) if st.type == FileType.DIR else []
    finally:
        _release(fs, ip)

    if st.type == FileType.FILE:
        return [_line(fmtname(path), st)]
    if st.type != FileType.DIR:
        return []
    if len(path) + 1 + DIRSIZ + 1 > _PATH_BUF:
        return ["ls: path too long"]
    lines = []
    for de in entries:
        if de.inum == 0:
            continue
        child = f"{path}/{de.name}"
        child_st = _stat(fs, child)
        if child_st is None:
            lines.append(f"ls: cannot stat {child}")
            continue
        lines.append(_line(fmtname(child), child_st))
    return lines