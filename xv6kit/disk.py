"""An in-memory disk and the block buffer cache that sits on top of it."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from .layout import BSIZE, NBUF, ROOTDEV, KernelPanic


class MemDisk:
    """A disk whose blocks live in memory, answering to device ``ROOTDEV``."""

    def __init__(self, data: bytes | bytearray) -> None:
        self._blocks = bytearray(data)
        self.size = len(self._blocks) // BSIZE
        self.dev = ROOTDEV

    def _span(self, blockno: int) -> slice:
        if not 0 <= blockno < self.size:
            raise KernelPanic("iderw: block out of range")
        start = blockno * BSIZE
        return slice(start, start + BSIZE)

    def read(self, blockno: int) -> bytes:
        """Contents of block ``blockno``."""
        return bytes(self._blocks[self._span(blockno)])

    def write(self, blockno: int, data: bytes | bytearray) -> None:
        """Replace block ``blockno`` with exactly one block of ``data``."""
        span = self._span(blockno)
        if len(data) != BSIZE:
            raise ValueError(f"block data must be {BSIZE} bytes, got {len(data)}")
        self._blocks[span] = data

    def __bytes__(self) -> bytes:
        return bytes(self._blocks)


@dataclass(eq=False)
class Buf:
    """A cached copy of one disk block."""

    dev: int = 0
    blockno: int = 0
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _owner: int | None = field(default=None, init=False, repr=False)

    @property
    def held(self) -> bool:
        """Whether the calling thread holds this buffer's lock."""
        return self._owner == threading.get_ident()

    def _acquire(self) -> None:
        self._lock.acquire()
        self._owner = threading.get_ident()

    def _release(self) -> None:
        self._owner = None
        self._lock.release()


class BufferCache:
    """Most-recently-used list of block buffers over a disk."""

    def __init__(self, disk: MemDisk, nbuf: int = NBUF) -> None:
        if nbuf < 1:
            raise ValueError("the cache needs at least one buffer")
        self.disk = disk
        self._lock = threading.Lock()
        # Index 0 is the most recently used buffer.
        self._mru: list[Buf] = []
        for _ in range(nbuf):
            self._mru.insert(0, Buf())

    def _get(self, dev: int, blockno: int) -> Buf:
        with self._lock:
            found = next(
                (b for b in self._mru if b.dev == dev and b.blockno == blockno), None
            )
            if found is not None:
                found.refcnt += 1
            else:
                # A dirty buffer is pinned by the log even with no references.
                found = next(
                    (b for b in reversed(self._mru) if b.refcnt == 0 and not b.dirty),
                    None,
                )
                if found is None:
                    raise KernelPanic("bget: no buffers")
                found.dev = dev
                found.blockno = blockno
                found.valid = False
                found.dirty = False
                found.refcnt = 1
        found._acquire()
        return found

    def _sync(self, buf: Buf) -> None:
        if not buf.held:
            raise KernelPanic("iderw: buf not locked")
        if buf.valid and not buf.dirty:
            raise KernelPanic("iderw: nothing to do")
        if buf.dev != self.disk.dev:
            raise KernelPanic("iderw: request not for disk 1")
        if buf.dirty:
            self.disk.write(buf.blockno, buf.data)
            buf.dirty = False
        else:
            buf.data[:] = self.disk.read(buf.blockno)
        buf.valid = True

    def bread(self, dev: int, blockno: int) -> Buf:
        """Return the locked buffer for a block, reading it from disk if needed."""
        buf = self._get(dev, blockno)
        if not buf.valid:
            self._sync(buf)
        return buf

    def bwrite(self, buf: Buf) -> None:
        """Write a locked buffer's contents to disk."""
        if not buf.held:
            raise KernelPanic("bwrite")
        buf.dirty = True
        self._sync(buf)

    def brelse(self, buf: Buf) -> None:
        """Release a locked buffer and move it to the front of the MRU list."""
        if not buf.held:
            raise KernelPanic("brelse")
        buf._release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._mru.remove(buf)
                self._mru.insert(0, buf)