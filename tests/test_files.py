import io
import threading

import pytest

from sixfs.disk import MemoryDisk
from sixfs.files import PIPESIZE, FileKind, FileTable, Pipe
from sixfs.fs import FileSystem
from sixfs.mkfs import build_image

CONTENT = b"hello world"


@pytest.fixture
def fs():
    return FileSystem(MemoryDisk(build_image([("README", CONTENT)])))


@pytest.fixture
def table(fs):
    return FileTable(fs)


def open_readme(fs, table, readable=True, writable=False):
    ip = fs.namei("/README")
    return table.open_inode(ip, readable, writable)


def test_read_advances_offset(fs, table):
    f = open_readme(fs, table)
    assert table.read(f, 5) == CONTENT[:5]
    assert table.read(f, 100) == CONTENT[5:]
    assert table.read(f, 10) == b""
    assert f.off == len(CONTENT)


def test_stat_reports_size(fs, table):
    f = open_readme(fs, table)
    st = table.stat(f)
    assert st.size == len(CONTENT)
    assert st.ino == f.ip.inum


def test_write_then_read_back(fs, table):
    w = open_readme(fs, table, readable=False, writable=True)
    assert table.write(w, b"HELLO") == 5
    r = open_readme(fs, table)
    assert table.read(r, 100) == b"HELLO" + CONTENT[5:]


def test_large_write_spans_transactions(fs, table):
    data = bytes(range(256)) * 12
    assert len(data) > table.max_write
    w = open_readme(fs, table, readable=False, writable=True)
    assert table.write(w, data) == len(data)
    r = open_readme(fs, table)
    assert table.read(r, len(data) + 10) == data
    assert fs.log.outstanding == 0


def test_permissions(fs, table):
    ro = open_readme(fs, table)
    wo = open_readme(fs, table, readable=False, writable=True)
    with pytest.raises(PermissionError):
        table.write(ro, b"x")
    with pytest.raises(PermissionError):
        table.read(wo, 1)


def test_close_releases_inode(fs, table):
    f = open_readme(fs, table)
    ip = f.ip
    assert ip.ref == 1
    table.close(f)
    assert ip.ref == 0
    assert f.kind is FileKind.NONE
    with pytest.raises(ValueError):
        table.close(f)


def test_dup_and_close_refcount(table):
    f = table.alloc()
    assert table.dup(f).ref == 2
    table.close(f)
    assert f.ref == 1
    table.close(f)
    assert f.ref == 0
    with pytest.raises(ValueError):
        table.dup(f)


def test_table_full(fs):
    small = FileTable(fs, nfile=2)
    small.alloc()
    small.alloc()
    with pytest.raises(OSError):
        small.alloc()


def test_pipe_through_table(table):
    rf, wf = table.pipe()
    assert table.write(wf, b"abc") == 3
    assert table.read(rf, 10) == b"abc"
    table.close(wf)
    assert table.read(rf, 10) == b""
    with pytest.raises(io.UnsupportedOperation):
        table.stat(rf)


def test_pipe_ends_are_one_way(table):
    rf, wf = table.pipe()
    with pytest.raises(PermissionError):
        table.read(wf, 1)
    with pytest.raises(PermissionError):
        table.write(rf, b"x")


def test_pipe_closed_after_both_ends(table):
    rf, wf = table.pipe()
    p = rf.pipe
    table.close(rf)
    assert not p.closed
    table.close(wf)
    assert p.closed


def test_pipe_broken_when_full_and_reader_gone():
    p = Pipe()
    p.close(False)
    with pytest.raises(BrokenPipeError):
        p.write(b"x" * (PIPESIZE + 1))


def test_pipe_blocks_until_read():
    p = Pipe()
    data = bytes(range(256)) * 4
    writer = threading.Thread(target=lambda: (p.write(data), p.close(True)))
    writer.start()
    got = bytearray()
    while True:
        chunk = p.read(100)
        if not chunk:
            break
        got += chunk
    writer.join(timeout=5)
    assert bytes(got) == data
    assert not writer.is_alive()