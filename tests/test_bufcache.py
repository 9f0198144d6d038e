import pytest

from sixfs.bufcache import BufferCache, CacheError
from sixfs.disk import MemoryDisk
from sixfs.layout import BSIZE


def _disk(nblocks=8):
    return MemoryDisk(b"".join(bytes([i]) * BSIZE for i in range(nblocks)))


def test_read_returns_disk_contents_locked():
    cache = BufferCache(_disk())
    buf = cache.read(1, 3)
    assert bytes(buf.data) == bytes([3]) * BSIZE
    assert buf.valid and buf.locked
    assert (buf.dev, buf.blockno, buf.refcnt) == (1, 3, 1)
    cache.release(buf)
    assert not buf.locked
    assert buf.refcnt == 0


def test_cached_block_is_not_reread():
    disk = _disk()
    cache = BufferCache(disk)
    first = cache.read(1, 2)
    cache.release(first)
    disk.write_block(1, 2, b"\xee" * BSIZE)
    second = cache.read(1, 2)
    assert second is first
    assert bytes(second.data) == bytes([2]) * BSIZE
    cache.release(second)


def test_write_reaches_disk():
    disk = _disk()
    cache = BufferCache(disk)
    buf = cache.read(1, 1)
    buf.data[:] = b"\x5a" * BSIZE
    cache.write(buf)
    assert not buf.dirty and buf.valid
    cache.release(buf)
    assert disk.read_block(1, 1) == b"\x5a" * BSIZE


def test_write_requires_lock():
    cache = BufferCache(_disk())
    buf = cache.read(1, 0)
    cache.release(buf)
    with pytest.raises(CacheError):
        cache.write(buf)


def test_double_release_rejected():
    cache = BufferCache(_disk())
    buf = cache.read(1, 0)
    cache.release(buf)
    with pytest.raises(CacheError):
        cache.release(buf)


def test_relocking_in_same_thread_rejected():
    cache = BufferCache(_disk())
    buf = cache.read(1, 4)
    with pytest.raises(CacheError):
        cache.read(1, 4)
    assert buf.refcnt == 1
    cache.release(buf)
    assert buf.refcnt == 0


def test_no_free_buffers():
    cache = BufferCache(_disk(), nbuf=2)
    held = [cache.read(1, 0), cache.read(1, 1)]
    with pytest.raises(CacheError):
        cache.read(1, 2)
    for buf in held:
        cache.release(buf)
    buf = cache.read(1, 2)
    assert bytes(buf.data) == bytes([2]) * BSIZE
    cache.release(buf)


def test_least_recently_used_buffer_is_recycled():
    disk = _disk()
    cache = BufferCache(disk, nbuf=2)
    cache.release(cache.read(1, 0))
    cache.release(cache.read(1, 1))
    cache.release(cache.read(1, 2))  # evicts block 0
    disk.write_block(1, 0, b"\x10" * BSIZE)
    disk.write_block(1, 1, b"\x11" * BSIZE)
    with cache.block(1, 1) as buf:
        assert bytes(buf.data) == bytes([1]) * BSIZE
    with cache.block(1, 0) as buf:
        assert bytes(buf.data) == b"\x10" * BSIZE


def test_dirty_buffer_is_not_recycled():
    cache = BufferCache(_disk(), nbuf=1)
    buf = cache.read(1, 0)
    buf.dirty = True
    cache.release(buf)
    with pytest.raises(CacheError):
        cache.read(1, 1)


def test_block_context_releases_on_error():
    cache = BufferCache(_disk())
    with pytest.raises(RuntimeError):
        with cache.block(1, 5) as buf:
            raise RuntimeError("boom")
    assert buf.refcnt == 0
    assert not buf.locked


def test_zero_buffers_rejected():
    with pytest.raises(ValueError):
        BufferCache(_disk(), nbuf=0)