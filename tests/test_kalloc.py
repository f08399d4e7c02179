import pytest

from xv6kit.kalloc import PGSIZE, PageAllocator
from xv6kit.layout import KernelPanic

START = 0x10000
STOP = 0x20000


@pytest.fixture
def alloc():
    return PageAllocator(START, STOP)


def test_pages_are_4096_bytes_apart(alloc):
    alloc.free_range(START, START + 8192)
    assert len(alloc) == 2
    first = alloc.kalloc()
    second = alloc.kalloc()
    assert abs(first - second) == 4096


def test_allocates_every_freed_page_once(alloc):
    alloc.free_range(START, STOP)
    pages = []
    while len(alloc):
        pages.append(alloc.kalloc())
    assert sorted(pages) == list(range(START, STOP, PGSIZE))
    with pytest.raises(MemoryError):
        alloc.kalloc()


def test_free_range_rounds_start_up(alloc):
    alloc.free_range(START + 1, START + 3 * PGSIZE)
    got = {alloc.kalloc(), alloc.kalloc()}
    assert got == {START + PGSIZE, START + 2 * PGSIZE}
    assert len(alloc) == 0


def test_last_freed_is_first_allocated(alloc):
    alloc.kfree(START)
    alloc.kfree(START + PGSIZE)
    assert alloc.kalloc() == START + PGSIZE
    assert alloc.kalloc() == START


def test_freed_page_can_be_reused(alloc):
    alloc.free_range(START, START + PGSIZE)
    page = alloc.kalloc()
    alloc.kfree(page)
    assert alloc.kalloc() == page


@pytest.mark.parametrize("addr", [START + 1, START - PGSIZE, STOP])
def test_bad_free_panics(alloc, addr):
    with pytest.raises(KernelPanic):
        alloc.kfree(addr)


def test_empty_allocator_raises(alloc):
    with pytest.raises(MemoryError):
        alloc.kalloc()


def test_inverted_bounds_rejected():
    with pytest.raises(ValueError):
        PageAllocator(STOP, START)