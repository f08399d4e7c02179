"""Inodes, directories and path names on top of the buffer cache and log."""

from __future__ import annotations

import errno
import struct
import threading
from dataclasses import dataclass, field
from typing import Any

from .disk import BufferCache
from .layout import (
    BPB,
    BSIZE,
    DIRSIZ,
    MAXFILE,
    NDEV,
    NDIRECT,
    NINDIRECT,
    NINODE,
    ROOTDEV,
    ROOTINO,
    UINT_MASK,
    Dinode,
    Dirent,
    FileType,
    KernelPanic,
    Stat,
    Superblock,
    bblock,
    iblock,
)
from .log import Log

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


def _zero_addrs() -> list[int]:
    return [0] * (NDIRECT + 1)


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode plus its cache bookkeeping."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=_zero_addrs)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _owner: int | None = field(default=None, init=False, repr=False)

    @property
    def held(self) -> bool:
        """Whether the calling thread holds this inode's lock."""
        return self._owner == threading.get_ident()

    def _acquire(self) -> None:
        self._lock.acquire()
        self._owner = threading.get_ident()

    def _release(self) -> None:
        self._owner = None
        self._lock.release()


def skipelem(path: str) -> tuple[str, str] | None:
    """Split off the first path element.

    Returns ``(name, rest)`` where ``rest`` has no leading slashes and
    ``name`` is cut to DIRSIZ characters, or None if no element is left.
    """
    path = path.lstrip("/")
    if not path:
        return None
    elem, _, rest = path.partition("/")
    return elem[:DIRSIZ], rest.lstrip("/")


def namecmp(s: str, t: str) -> int:
    """Compare two names over their first DIRSIZ characters."""
    a, b = s[:DIRSIZ], t[:DIRSIZ]
    return (a > b) - (a < b)


class FileSystem:
    """Block allocation, the inode cache, file contents and path lookup."""

    def __init__(self, cache: BufferCache, log: Log, dev: int = ROOTDEV) -> None:
        self.cache = cache
        self.log = log
        self.dev = dev
        self.sb = self._readsb()
        self.devsw: dict[int, Any] = {}
        self._icache_lock = threading.Lock()
        self._icache = [Inode() for _ in range(NINODE)]

    # Blocks.

    def _readsb(self) -> Superblock:
        bp = self.cache.bread(self.dev, 1)
        try:
            return Superblock.unpack(bytes(bp.data))
        finally:
            self.cache.brelse(bp)

    def _bzero(self, bno: int) -> None:
        bp = self.cache.bread(self.dev, bno)
        bp.data[:] = bytes(BSIZE)
        self.log.log_write(bp)
        self.cache.brelse(bp)

    def _balloc(self) -> int:
        for base in range(0, self.sb.size, BPB):
            bp = self.cache.bread(self.dev, bblock(base, self.sb))
            for bi in range(min(BPB, self.sb.size - base)):
                mask = 1 << (bi % 8)
                if not bp.data[bi // 8] & mask:
                    bp.data[bi // 8] |= mask
                    self.log.log_write(bp)
                    self.cache.brelse(bp)
                    self._bzero(base + bi)
                    return base + bi
            self.cache.brelse(bp)
        raise KernelPanic("balloc: out of blocks")

    def _bfree(self, b: int) -> None:
        bp = self.cache.bread(self.dev, bblock(b, self.sb))
        bi = b % BPB
        mask = 1 << (bi % 8)
        if not bp.data[bi // 8] & mask:
            self.cache.brelse(bp)
            raise KernelPanic("freeing free block")
        bp.data[bi // 8] &= ~mask & 0xFF
        self.log.log_write(bp)
        self.cache.brelse(bp)

    # Inodes.

    def _dinode_offset(self, inum: int) -> int:
        from .layout import IPB

        return (inum % IPB) * Dinode.SIZE

    def ialloc(self, type: int) -> Inode:
        """Allocate an on-disk inode of ``type``; returns it referenced, unlocked."""
        for inum in range(1, self.sb.ninodes):
            bp = self.cache.bread(self.dev, iblock(inum, self.sb))
            off = self._dinode_offset(inum)
            dip = Dinode.unpack(bytes(bp.data[off : off + Dinode.SIZE]))
            if dip.type == 0:
                bp.data[off : off + Dinode.SIZE] = Dinode(type=int(type)).pack()
                self.log.log_write(bp)
                self.cache.brelse(bp)
                return self.iget(inum)
            self.cache.brelse(bp)
        raise KernelPanic("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy a modified in-memory inode to disk."""
        bp = self.cache.bread(ip.dev, iblock(ip.inum, self.sb))
        off = self._dinode_offset(ip.inum)
        din = Dinode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs))
        bp.data[off : off + Dinode.SIZE] = din.pack()
        self.log.log_write(bp)
        self.cache.brelse(bp)

    def iget(self, inum: int) -> Inode:
        """Find or create the cache entry for ``inum``; neither locks nor reads it."""
        with self._icache_lock:
            empty = None
            for ip in self._icache:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise KernelPanic("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        """Take another reference to ``ip``."""
        with self._icache_lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode) -> None:
        """Lock ``ip``, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise KernelPanic("ilock")
        ip._acquire()
        if not ip.valid:
            bp = self.cache.bread(ip.dev, iblock(ip.inum, self.sb))
            off = self._dinode_offset(ip.inum)
            din = Dinode.unpack(bytes(bp.data[off : off + Dinode.SIZE]))
            self.cache.brelse(bp)
            ip.type, ip.major, ip.minor = din.type, din.major, din.minor
            ip.nlink, ip.size, ip.addrs = din.nlink, din.size, list(din.addrs)
            ip.valid = True
            if ip.type == 0:
                raise KernelPanic("ilock: no type")

    def iunlock(self, ip: Inode) -> None:
        """Unlock ``ip``."""
        if ip is None or not ip.held or ip.ref < 1:
            raise KernelPanic("iunlock")
        ip._release()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last and unlinked."""
        ip._acquire()
        try:
            if ip.valid and ip.nlink == 0:
                with self._icache_lock:
                    r = ip.ref
                if r == 1:
                    self._itrunc(ip)
                    ip.type = 0
                    self.iupdate(ip)
                    ip.valid = False
        finally:
            ip._release()
        with self._icache_lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        """Unlock, then drop a reference."""
        self.iunlock(ip)
        self.iput(ip)

    # Inode content.

    def _bmap(self, ip: Inode, bn: int) -> int:
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self._balloc()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self._balloc()
            bp = self.cache.bread(ip.dev, ip.addrs[NDIRECT])
            table = list(_INDIRECT.unpack(bytes(bp.data)))
            addr = table[bn]
            if addr == 0:
                addr = table[bn] = self._balloc()
                bp.data[:] = _INDIRECT.pack(*table)
                self.log.log_write(bp)
            self.cache.brelse(bp)
            return addr
        raise KernelPanic("bmap: out of range")

    def _itrunc(self, ip: Inode) -> None:
        for i in range(NDIRECT):
            if ip.addrs[i]:
                self._bfree(ip.addrs[i])
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            bp = self.cache.bread(ip.dev, ip.addrs[NDIRECT])
            table = _INDIRECT.unpack(bytes(bp.data))
            self.cache.brelse(bp)
            for addr in table:
                if addr:
                    self._bfree(addr)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        """Metadata of a locked inode."""
        return Stat(type=ip.type, dev=ip.dev, ino=ip.inum, nlink=ip.nlink, size=ip.size)

    def _device(self, ip: Inode, op: str) -> Any:
        handler = self.devsw.get(ip.major) if 0 <= ip.major < NDEV else None
        func = getattr(handler, op, None)
        if func is None:
            raise OSError(errno.ENODEV, f"no {op} handler for device {ip.major}")
        return func

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off`` from a locked inode."""
        if ip.type == FileType.DEV:
            return self._device(ip, "read")(ip, n)
        if off < 0 or n < 0 or off > ip.size or off + n > UINT_MASK:
            raise ValueError(f"read at offset {off} of {n} bytes is out of range")
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            bp = self.cache.bread(ip.dev, self._bmap(ip, off // BSIZE))
            start = off % BSIZE
            m = min(n - len(out), BSIZE - start)
            out += bp.data[start : start + m]
            self.cache.brelse(bp)
            off += m
        return bytes(out)

    def writei(self, ip: Inode, data: bytes | bytearray, off: int) -> int:
        """Write ``data`` at ``off`` into a locked inode; returns bytes written."""
        if ip.type == FileType.DEV:
            return self._device(ip, "write")(ip, bytes(data))
        n = len(data)
        if off < 0 or off > ip.size or off + n > UINT_MASK:
            raise ValueError(f"write at offset {off} of {n} bytes is out of range")
        if off + n > MAXFILE * BSIZE:
            raise ValueError("write would exceed the maximum file size")
        view = memoryview(bytes(data))
        done = 0
        while done < n:
            bp = self.cache.bread(ip.dev, self._bmap(ip, off // BSIZE))
            start = off % BSIZE
            m = min(n - done, BSIZE - start)
            bp.data[start : start + m] = view[done : done + m]
            self.log.log_write(bp)
            self.cache.brelse(bp)
            done += m
            off += m
        if n > 0 and off > ip.size:
            ip.size = off
            self.iupdate(ip)
        return n

    # Directories.

    def dirlookup(self, dp: Inode, name: str) -> tuple[Inode, int] | None:
        """Find ``name`` in locked directory ``dp``; returns the inode and entry offset."""
        if dp.type != FileType.DIR:
            raise KernelPanic("dirlookup not DIR")
        for off in range(0, dp.size, Dirent.SIZE):
            raw = self.readi(dp, off, Dirent.SIZE)
            if len(raw) != Dirent.SIZE:
                raise KernelPanic("dirlookup read")
            de = Dirent.unpack(raw)
            if de.inum and namecmp(name, de.name) == 0:
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry ``(name, inum)`` to locked directory ``dp``."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FileExistsError(errno.EEXIST, "name already present", name)
        off = 0
        while off < dp.size:
            raw = self.readi(dp, off, Dirent.SIZE)
            if len(raw) != Dirent.SIZE:
                raise KernelPanic("dirlink read")
            if Dirent.unpack(raw).inum == 0:
                break
            off += Dirent.SIZE
        if self.writei(dp, Dirent(inum, name[:DIRSIZ]).pack(), off) != Dirent.SIZE:
            raise KernelPanic("dirlink")

    # Paths.

    def _namex(self, path: str, parent: bool, cwd: Inode | None) -> tuple[Inode, str] | None:
        if path.startswith("/"):
            ip = self.iget(ROOTINO)
        else:
            if cwd is None:
                raise ValueError("relative path needs a current directory")
            ip = self.idup(cwd)
        name = ""
        while (step := skipelem(path)) is not None:
            name, path = step
            self.ilock(ip)
            if ip.type != FileType.DIR:
                self.iunlockput(ip)
                return None
            if parent and path == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            if found is None:
                self.iunlockput(ip)
                return None
            self.iunlockput(ip)
            ip = found[0]
        if parent:
            self.iput(ip)
            return None
        return ip, name

    def namei(self, path: str, cwd: Inode | None = None) -> Inode | None:
        """Inode for ``path``, referenced but unlocked, or None if absent."""
        found = self._namex(path, False, cwd)
        return None if found is None else found[0]

    def nameiparent(self, path: str, cwd: Inode | None = None) -> tuple[Inode, str] | None:
        """Parent directory of ``path`` and its final element, or None."""
        return self._namex(path, True, cwd)