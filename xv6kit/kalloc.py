"""Physical page allocator handing out 4096-byte pages from a free list."""

from __future__ import annotations

import threading

from .layout import KernelPanic

PGSIZE = 4096


def _pg_round_up(addr: int) -> int:
    return (addr + PGSIZE - 1) & ~(PGSIZE - 1)


class PageAllocator:
    """Free list of page addresses in ``[end, phystop)``."""

    def __init__(self, end: int, phystop: int) -> None:
        if phystop < end:
            raise ValueError("phystop lies below the end of the kernel")
        self.end = end
        self.phystop = phystop
        self._free: list[int] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._free)

    def free_range(self, start: int, end: int) -> None:
        """Free every whole page between ``start`` (rounded up) and ``end``."""
        for page in range(_pg_round_up(start), end - PGSIZE + 1, PGSIZE):
            self.kfree(page)

    def kfree(self, addr: int) -> None:
        """Return the page at ``addr`` to the free list."""
        if addr % PGSIZE or addr < self.end or addr >= self.phystop:
            raise KernelPanic("kfree")
        with self._lock:
            self._free.append(addr)

    def kalloc(self) -> int:
        """Take one page; raises MemoryError when none is left."""
        with self._lock:
            if not self._free:
                raise MemoryError("kalloc: out of memory")
            return self._free.pop()