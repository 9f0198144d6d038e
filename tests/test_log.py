import struct

import pytest

from sixfs.bufcache import BufferCache
from sixfs.disk import MemoryDisk
from sixfs.layout import BSIZE, Superblock
from sixfs.log import Log, LogError
from sixfs.mkfs import build_image


def _setup(nbuf=40):
    image = build_image([])
    sb = Superblock.unpack(image[BSIZE : 2 * BSIZE])
    disk = MemoryDisk(image)
    cache = BufferCache(disk, nbuf=nbuf)
    return disk, cache, sb


def _head_count(disk, sb):
    return struct.unpack_from("<i", disk.read_block(1, sb.logstart))[0]


def _modify(log, cache, blockno, byte):
    with cache.block(1, blockno) as buf:
        buf.data[:] = bytes([byte]) * BSIZE
        log.write(buf)


def test_fresh_log_is_empty():
    disk, cache, sb = _setup()
    log = Log(cache, 1, sb)
    assert log.pending == ()
    assert log.outstanding == 0
    assert _head_count(disk, sb) == 0


def test_transaction_installs_blocks_at_home():
    disk, cache, sb = _setup()
    log = Log(cache, 1, sb)
    with log.transaction():
        _modify(log, cache, 200, 0x42)
        assert disk.read_block(1, 200) == bytes(BSIZE)
        assert log.pending == (200,)
    assert disk.read_block(1, 200) == b"\x42" * BSIZE
    assert log.pending == ()
    assert _head_count(disk, sb) == 0


def test_repeated_writes_are_absorbed():
    disk, cache, sb = _setup()
    log = Log(cache, 1, sb)
    with log.transaction():
        _modify(log, cache, 300, 1)
        _modify(log, cache, 301, 2)
        _modify(log, cache, 300, 3)
        assert log.pending == (300, 301)
    assert disk.read_block(1, 300) == b"\x03" * BSIZE
    assert disk.read_block(1, 301) == b"\x02" * BSIZE


def test_nested_operations_commit_at_last_end():
    disk, cache, sb = _setup()
    log = Log(cache, 1, sb)
    log.begin_op()
    log.begin_op()
    _modify(log, cache, 400, 7)
    log.end_op()
    assert disk.read_block(1, 400) == bytes(BSIZE)
    assert log.outstanding == 1
    log.end_op()
    assert disk.read_block(1, 400) == b"\x07" * BSIZE


def test_write_outside_transaction_rejected():
    _, cache, sb = _setup()
    log = Log(cache, 1, sb)
    with cache.block(1, 100) as buf:
        with pytest.raises(LogError):
            log.write(buf)


def test_end_without_begin_rejected():
    _, cache, sb = _setup()
    log = Log(cache, 1, sb)
    with pytest.raises(LogError):
        log.end_op()


def test_too_big_transaction_rejected():
    _, cache, sb = _setup()
    log = Log(cache, 1, sb)
    with pytest.raises(LogError):
        with log.transaction():
            for blockno in range(100, 100 + sb.nlog):
                _modify(log, cache, blockno, 9)
    assert log.outstanding == 0
    assert log.pending == ()


def test_header_must_fit_in_one_block():
    _, cache, sb = _setup()
    with pytest.raises(LogError):
        Log(cache, 1, sb, logsize=200)


def test_exception_still_commits_and_ends_operation():
    disk, cache, sb = _setup()
    log = Log(cache, 1, sb)
    with pytest.raises(RuntimeError):
        with log.transaction():
            _modify(log, cache, 500, 5)
            raise RuntimeError("fail")
    assert log.outstanding == 0
    assert disk.read_block(1, 500) == b"\x05" * BSIZE


def test_committed_log_is_recovered():
    image = build_image([])
    sb = Superblock.unpack(image[BSIZE : 2 * BSIZE])
    disk = MemoryDisk(image)
    disk.write_block(1, sb.logstart, struct.pack("<ii", 1, 600).ljust(BSIZE, b"\0"))
    disk.write_block(1, sb.logstart + 1, b"R" * BSIZE)
    Log(BufferCache(disk), 1, sb)
    assert disk.read_block(1, 600) == b"R" * BSIZE
    assert _head_count(disk, sb) == 0


def test_corrupt_header_rejected():
    image = build_image([])
    sb = Superblock.unpack(image[BSIZE : 2 * BSIZE])
    disk = MemoryDisk(image)
    disk.write_block(1, sb.logstart, struct.pack("<i", -1).ljust(BSIZE, b"\0"))
    with pytest.raises(LogError):
        Log(BufferCache(disk), 1, sb)