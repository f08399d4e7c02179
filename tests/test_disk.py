import pytest

from xv6kit.disk import BufferCache, MemDisk
from xv6kit.layout import BSIZE, ROOTDEV, KernelPanic


def _disk(nblocks=8):
    return MemDisk(bytes(nblocks * BSIZE))


def _block(fill):
    return bytes([fill]) * BSIZE


def test_memdisk_round_trip():
    disk = _disk()
    disk.write(3, _block(7))
    assert disk.read(3) == _block(7)
    assert disk.read(2) == bytes(BSIZE)


def test_memdisk_size_ignores_partial_block():
    disk = MemDisk(bytes(3 * BSIZE + 10))
    assert disk.size == 3
    with pytest.raises(KernelPanic):
        disk.read(3)


def test_memdisk_out_of_range():
    disk = _disk(4)
    with pytest.raises(KernelPanic, match="block out of range"):
        disk.read(4)
    with pytest.raises(KernelPanic):
        disk.write(-1, _block(0))


def test_memdisk_rejects_short_block():
    disk = _disk()
    with pytest.raises(ValueError):
        disk.write(1, b"short")


def test_memdisk_bytes_reflects_writes():
    disk = _disk(2)
    disk.write(1, _block(9))
    assert bytes(disk) == _block(0) + _block(9)


def test_bread_reads_disk_contents():
    disk = _disk()
    disk.write(5, _block(0xAB))
    cache = BufferCache(disk, 4)
    buf = cache.bread(ROOTDEV, 5)
    assert bytes(buf.data) == _block(0xAB)
    assert buf.valid and buf.held
    cache.brelse(buf)
    assert not buf.held


def test_bwrite_writes_through():
    disk = _disk()
    cache = BufferCache(disk, 4)
    buf = cache.bread(ROOTDEV, 2)
    buf.data[:5] = b"hello"
    cache.bwrite(buf)
    assert disk.read(2)[:5] == b"hello"
    assert buf.valid and not buf.dirty
    cache.brelse(buf)


def test_cached_block_is_reused():
    cache = BufferCache(_disk(), 4)
    first = cache.bread(ROOTDEV, 2)
    cache.brelse(first)
    second = cache.bread(ROOTDEV, 2)
    assert second is first
    assert second.refcnt == 1
    cache.brelse(second)
    assert second.refcnt == 0


def test_least_recently_used_buffer_is_recycled():
    cache = BufferCache(_disk(), 2)
    a = cache.bread(ROOTDEV, 0)
    cache.brelse(a)
    b = cache.bread(ROOTDEV, 1)
    cache.brelse(b)
    c = cache.bread(ROOTDEV, 2)
    assert c is a
    assert c.blockno == 2
    cache.brelse(c)


def test_no_free_buffers_panics():
    cache = BufferCache(_disk(), 2)
    cache.bread(ROOTDEV, 0)
    cache.bread(ROOTDEV, 1)
    with pytest.raises(KernelPanic, match="no buffers"):
        cache.bread(ROOTDEV, 2)


def test_dirty_buffer_is_not_recycled():
    cache = BufferCache(_disk(), 1)
    buf = cache.bread(ROOTDEV, 0)
    buf.dirty = True
    cache.brelse(buf)
    with pytest.raises(KernelPanic):
        cache.bread(ROOTDEV, 1)


def test_release_twice_panics():
    cache = BufferCache(_disk(), 2)
    buf = cache.bread(ROOTDEV, 0)
    cache.brelse(buf)
    with pytest.raises(KernelPanic, match="brelse"):
        cache.brelse(buf)


def test_bwrite_unlocked_panics():
    cache = BufferCache(_disk(), 2)
    buf = cache.bread(ROOTDEV, 0)
    cache.brelse(buf)
    with pytest.raises(KernelPanic, match="bwrite"):
        cache.bwrite(buf)


def test_wrong_device_panics():
    cache = BufferCache(_disk(), 2)
    with pytest.raises(KernelPanic, match="not for disk 1"):
        cache.bread(ROOTDEV + 1, 0)


def test_cache_needs_a_buffer():
    with pytest.raises(ValueError):
        BufferCache(_disk(), 0)