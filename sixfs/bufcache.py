"""Buffer cache: cached copies of disk blocks, one user at a time per block."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from .disk import MemoryDisk
from .layout import BSIZE

DEFAULT_NBUF = 30


class CacheError(Exception):
    """Misuse of the buffer cache, or no buffer available."""


class _SleepLock:
    """A lock held by one thread at a time that remembers its holder."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._owner: Optional[int] = None

    def acquire(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._owner == me:
                raise CacheError("buffer already locked by this thread")
            while self._owner is not None:
                self._cond.wait()
            self._owner = me

    def release(self) -> None:
        with self._cond:
            self._owner = None
            self._cond.notify_all()

    def holding(self) -> bool:
        with self._cond:
            return self._owner == threading.get_ident()


@dataclass(eq=False)
class Buf:
    """A cached disk block.

    ``valid`` means the data has been read from disk; ``dirty`` means it was
    modified and must be written before the buffer can be reused.
    """

    dev: Optional[int] = None
    blockno: Optional[int] = None
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    _lock: _SleepLock = field(default_factory=_SleepLock, repr=False)

    @property
    def locked(self) -> bool:
        """True if the calling thread holds this buffer."""
        return self._lock.holding()


class BufferCache:
    """A fixed set of buffers kept in most-recently-used order."""

    def __init__(self, disk: MemoryDisk, nbuf: int = DEFAULT_NBUF) -> None:
        if nbuf < 1:
            raise ValueError("the cache needs at least one buffer")
        self.disk = disk
        self._lock = threading.Lock()
        # Index 0 is the most recently used buffer.
        self._mru: List[Buf] = [Buf() for _ in range(nbuf)]

    def _get(self, dev: int, blockno: int) -> Buf:
        with self._lock:
            found = next(
                (b for b in self._mru if b.dev == dev and b.blockno == blockno), None
            )
            if found is None:
                # Dirty buffers are pinned by the log even with no references.
                found = next(
                    (b for b in reversed(self._mru) if b.refcnt == 0 and not b.dirty),
                    None,
                )
                if found is None:
                    raise CacheError("bget: no buffers")
                found.dev = dev
                found.blockno = blockno
                found.valid = False
                found.dirty = False
                found.refcnt = 1
            else:
                found.refcnt += 1
        try:
            found._lock.acquire()
        except CacheError:
            with self._lock:
                found.refcnt -= 1
            raise
        return found

    def _sync(self, buf: Buf) -> None:
        if not buf.locked:
            raise CacheError("iderw: buf not locked")
        if buf.valid and not buf.dirty:
            raise CacheError("iderw: nothing to do")
        if buf.dirty:
            self.disk.write_block(buf.dev, buf.blockno, bytes(buf.data))
            buf.dirty = False
        else:
            buf.data[:] = self.disk.read_block(buf.dev, buf.blockno)
        buf.valid = True

    def read(self, dev: int, blockno: int) -> Buf:
        """Return the locked buffer for a block, reading it from disk if needed."""
        buf = self._get(dev, blockno)
        if not buf.valid:
            try:
                self._sync(buf)
            except Exception:
                self.release(buf)
                raise
        return buf

    def write(self, buf: Buf) -> None:
        """Write a locked buffer's contents to disk."""
        if not buf.locked:
            raise CacheError("bwrite")
        buf.dirty = True
        self._sync(buf)

    def release(self, buf: Buf) -> None:
        """Unlock a buffer; once unreferenced it becomes most recently used."""
        if not buf.locked:
            raise CacheError("brelse")
        buf._lock.release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._mru.remove(buf)
                self._mru.insert(0, buf)

    @contextmanager
    def block(self, dev: int, blockno: int) -> Iterator[Buf]:
        """Hold the buffer for a block for the duration of a ``with`` block."""
        buf = self.read(dev, blockno)
        try:
            yield buf
        finally:
            self.release(buf)