"""Write-ahead redo log that groups file-system updates into atomic transactions."""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from typing import Iterator, List, Tuple

from .bufcache import Buf, BufferCache
from .layout import BSIZE, Superblock

DEFAULT_LOG_SIZE = 30
DEFAULT_MAX_OP_BLOCKS = 10


class LogError(Exception):
    """Misuse of the log or an inconsistent log on disk."""


class Log:
    """The on-disk log: a header block listing block numbers, then those blocks.

    Updates made between ``begin_op`` and ``end_op`` are recorded with
    ``write`` and committed when the last outstanding operation ends.
    """

    def __init__(
        self,
        cache: BufferCache,
        dev: int,
        superblock: Superblock,
        logsize: int = DEFAULT_LOG_SIZE,
        maxopblocks: int = DEFAULT_MAX_OP_BLOCKS,
    ) -> None:
        self._header = struct.Struct(f"<i{logsize}i")
        if self._header.size >= BSIZE:
            raise LogError("initlog: too big logheader")
        self.cache = cache
        self.dev = dev
        self.start = superblock.logstart
        self.size = superblock.nlog
        self.logsize = logsize
        self.maxopblocks = maxopblocks
        self.outstanding = 0
        self.committing = False
        self._blocks: List[int] = []
        self._cond = threading.Condition()
        self.recover()

    @property
    def pending(self) -> Tuple[int, ...]:
        """Block numbers logged by the current transaction."""
        return tuple(self._blocks)

    def _read_head(self) -> None:
        with self.cache.block(self.dev, self.start) as buf:
            n, *blocks = self._header.unpack_from(buf.data)
        if not 0 <= n <= self.logsize:
            raise LogError(f"corrupt log header: {n} blocks")
        self._blocks = blocks[:n]

    def _write_head(self) -> None:
        blocks = self._blocks + [0] * (self.logsize - len(self._blocks))
        with self.cache.block(self.dev, self.start) as buf:
            self._header.pack_into(buf.data, 0, len(self._blocks), *blocks)
            self.cache.write(buf)

    def _install_trans(self) -> None:
        """Copy committed blocks from the log to their home locations."""
        for tail, blockno in enumerate(self._blocks):
            with self.cache.block(self.dev, self.start + tail + 1) as lbuf:
                with self.cache.block(self.dev, blockno) as dbuf:
                    dbuf.data[:] = lbuf.data
                    self.cache.write(dbuf)

    def _write_log(self) -> None:
        """Copy modified blocks from the cache to the log."""
        for tail, blockno in enumerate(self._blocks):
            with self.cache.block(self.dev, self.start + tail + 1) as to:
                with self.cache.block(self.dev, blockno) as src:
                    to.data[:] = src.data
                self.cache.write(to)

    def _commit(self) -> None:
        if self._blocks:
            self._write_log()
            self._write_head()  # the real commit point
            self._install_trans()
            self._blocks = []
            self._write_head()

    def recover(self) -> None:
        """Install any committed transaction found on disk, then clear the log."""
        self._read_head()
        self._install_trans()
        self._blocks = []
        self._write_head()

    def begin_op(self) -> None:
        """Start an operation, waiting while a commit runs or space is short."""
        with self._cond:
            while (
                self.committing
                or len(self._blocks) + (self.outstanding + 1) * self.maxopblocks
                > self.logsize
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """End an operation, committing if it was the last outstanding one."""
        with self._cond:
            if self.outstanding < 1:
                raise LogError("end_op without begin_op")
            self.outstanding -= 1
            if self.committing:
                raise LogError("log.committing")
            do_commit = self.outstanding == 0
            if do_commit:
                self.committing = True
            else:
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    def write(self, buf: Buf) -> None:
        """Record a modified buffer in the transaction and pin it in the cache."""
        if len(self._blocks) >= self.logsize or len(self._blocks) >= self.size - 1:
            raise LogError("too big a transaction")
        if self.outstanding < 1:
            raise LogError("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self._blocks:
                self._blocks.append(buf.blockno)
            buf.dirty = True

    @contextmanager
    def transaction(self) -> Iterator["Log"]:
        """Run the body of a ``with`` block as one operation."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()