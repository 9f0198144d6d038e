"""Open files: a table of reference-counted handles onto inodes and pipes."""

from __future__ import annotations

import errno
import io
import threading
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .fs import FileSystem, Inode, Stat
from .layout import BSIZE
from .log import DEFAULT_MAX_OP_BLOCKS

DEFAULT_NFILE = 100
PIPESIZE = 512


class FileKind(Enum):
    """What an open file refers to."""

    NONE = 0
    PIPE = 1
    INODE = 2


class Pipe:
    """A bounded byte channel with one read end and one write end."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._data = bytearray(PIPESIZE)
        self.nread = 0
        self.nwrite = 0
        self.readopen = True
        self.writeopen = True

    @property
    def closed(self) -> bool:
        """True once both ends have been closed."""
        return not self.readopen and not self.writeopen

    def write(self, data: bytes) -> int:
        """Write all of ``data``, waiting while the pipe is full.

        Raises BrokenPipeError if the pipe is full and the read end is closed.
        """
        with self._cond:
            for byte in data:
                while self.nwrite == self.nread + PIPESIZE:
                    if not self.readopen:
                        raise BrokenPipeError("pipe read end closed")
                    self._cond.notify_all()
                    self._cond.wait()
                self._data[self.nwrite % PIPESIZE] = byte
                self.nwrite += 1
            self._cond.notify_all()
        return len(data)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, waiting for data while the write end is open.

        Returns b"" once the pipe is empty and the write end is closed.
        """
        with self._cond:
            while self.nread == self.nwrite and self.writeopen:
                self._cond.wait()
            out = bytearray()
            while len(out) < n and self.nread != self.nwrite:
                out.append(self._data[self.nread % PIPESIZE])
                self.nread += 1
            self._cond.notify_all()
        return bytes(out)

    def close(self, writable: bool) -> None:
        """Close the write end if ``writable``, otherwise the read end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()


@dataclass(eq=False)
class OpenFile:
    """A handle in the file table."""

    kind: FileKind = FileKind.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Optional[Pipe] = None
    ip: Optional[Inode] = None
    off: int = 0


class FileTable:
    """A fixed number of open-file slots shared by everyone using ``fs``."""

    def __init__(
        self,
        fs: FileSystem,
        nfile: int = DEFAULT_NFILE,
        maxopblocks: int = DEFAULT_MAX_OP_BLOCKS,
    ) -> None:
        self.fs = fs
        self.files: List[OpenFile] = [OpenFile() for _ in range(nfile)]
        # Write a few blocks per transaction: inode, indirect block,
        # allocation blocks and two blocks of slop for unaligned writes.
        self.max_write = ((maxopblocks - 1 - 1 - 2) // 2) * BSIZE
        if self.max_write <= 0:
            raise ValueError("maxopblocks too small for any write")
        self._lock = threading.Lock()

    def alloc(self) -> OpenFile:
        """Take a free slot with one reference; raises OSError if none is free."""
        with self._lock:
            for f in self.files:
                if f.ref == 0:
                    f.ref = 1
                    f.kind = FileKind.NONE
                    f.readable = f.writable = False
                    f.pipe = None
                    f.ip = None
                    f.off = 0
                    return f
        raise OSError(errno.ENFILE, "file table full")

    def dup(self, f: OpenFile) -> OpenFile:
        """Add a reference to ``f`` and return it."""
        with self._lock:
            if f.ref < 1:
                raise ValueError("filedup")
            f.ref += 1
        return f

    def close(self, f: OpenFile) -> None:
        """Drop a reference; the last one releases the pipe end or the inode."""
        with self._lock:
            if f.ref < 1:
                raise ValueError("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, ip, writable = f.kind, f.pipe, f.ip, f.writable
            f.kind = FileKind.NONE
            f.pipe = None
            f.ip = None
        if kind is FileKind.PIPE and pipe is not None:
            pipe.close(writable)
        elif kind is FileKind.INODE and ip is not None:
            with self.fs.transaction():
                self.fs.iput(ip)

    def stat(self, f: OpenFile) -> Stat:
        """Metadata of the inode behind ``f``."""
        if f.kind is not FileKind.INODE or f.ip is None:
            raise io.UnsupportedOperation("stat needs an inode")
        self.fs.ilock(f.ip)
        try:
            return self.fs.stati(f.ip)
        finally:
            self.fs.iunlock(f.ip)

    def read(self, f: OpenFile, n: int) -> bytes:
        """Read up to ``n`` bytes, advancing the offset of an inode file."""
        if not f.readable:
            raise PermissionError("file not open for reading")
        if f.kind is FileKind.PIPE and f.pipe is not None:
            return f.pipe.read(n)
        if f.kind is FileKind.INODE and f.ip is not None:
            self.fs.ilock(f.ip)
            try:
                data = self.fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                self.fs.iunlock(f.ip)
            return data
        raise ValueError("fileread")

    def write(self, f: OpenFile, data: bytes) -> int:
        """Write all of ``data``; inode writes are split over several transactions."""
        if not f.writable:
            raise PermissionError("file not open for writing")
        if f.kind is FileKind.PIPE and f.pipe is not None:
            return f.pipe.write(data)
        if f.kind is FileKind.INODE and f.ip is not None:
            done = 0
            while done < len(data):
                chunk = data[done : done + self.max_write]
                with self.fs.transaction():
                    self.fs.ilock(f.ip)
                    try:
                        r = self.fs.writei(f.ip, chunk, f.off)
                        f.off += r
                    finally:
                        self.fs.iunlock(f.ip)
                if r != len(chunk):
                    raise RuntimeError("short filewrite")
                done += r
            return len(data)
        raise ValueError("filewrite")

    def open_inode(self, ip: Inode, readable: bool, writable: bool) -> OpenFile:
        """Open an inode; the file takes over the caller's reference to ``ip``."""
        f = self.alloc()
        f.kind = FileKind.INODE
        f.ip = ip
        f.off = 0
        f.readable = readable
        f.writable = writable
        return f

    def pipe(self) -> Tuple[OpenFile, OpenFile]:
        """Create a pipe and return its ``(read end, write end)``."""
        rf = self.alloc()
        try:
            wf = self.alloc()
        except OSError:
            self.close(rf)
            raise
        p = Pipe()
        rf.kind = wf.kind = FileKind.PIPE
        rf.pipe = wf.pipe = p
        rf.readable, rf.writable = True, False
        wf.readable, wf.writable = False, True
        return rf, wf