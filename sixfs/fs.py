"""Inodes, directories and path names on top of the log and the buffer cache."""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from .bufcache import DEFAULT_NBUF, BufferCache
from .disk import DEFAULT_DEV, MemoryDisk
from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DirEntry,
    DiskInode,
    InodeType,
    Superblock,
)
from .log import DEFAULT_LOG_SIZE, DEFAULT_MAX_OP_BLOCKS, Log

DEFAULT_NINODE = 50

_ADDR = struct.Struct("<I")
_INDIRECT = struct.Struct(f"<{NINDIRECT}I")

PathLike = Union[str, bytes]


class FsError(Exception):
    """A file-system operation that cannot be carried out."""


class _SleepLock:
    """A lock held by one thread at a time that remembers its holder."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._owner: Optional[int] = None

    def acquire(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._owner == me:
                raise FsError("inode already locked by this thread")
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


@dataclass
class Stat:
    """Metadata reported for an inode."""

    dev: int
    ino: int
    type: int
    nlink: int
    size: int


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode; ``ref`` and ``valid`` live only in memory."""

    dev: int
    inum: int
    ref: int = 0
    valid: bool = False
    type: int = InodeType.FREE
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: List[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))
    _lock: _SleepLock = field(default_factory=_SleepLock, repr=False)

    @property
    def locked(self) -> bool:
        """True if the calling thread holds this inode's lock."""
        return self._lock.holding()


def skipelem(path: PathLike) -> Optional[Tuple[PathLike, PathLike]]:
    """Split off the first element of ``path``.

    Returns ``(name, rest)`` where ``rest`` has no leading slashes and
    ``name`` is cut to DIRSIZ, or None if there is no element left.
    """
    sep: Any = b"/" if isinstance(path, (bytes, bytearray)) else "/"
    stripped = path.lstrip(sep)
    if not stripped:
        return None
    name, _, rest = stripped.partition(sep)
    return name[:DIRSIZ], rest.lstrip(sep)


def _name_bytes(name: PathLike) -> bytes:
    if isinstance(name, str):
        name = name.encode("utf-8")
    return bytes(name).split(b"\0", 1)[0][:DIRSIZ]


def namecmp(s: PathLike, t: PathLike) -> int:
    """Compare two directory names over at most DIRSIZ bytes, like strncmp."""
    a, b = _name_bytes(s), _name_bytes(t)
    return (a > b) - (a < b)


class FileSystem:
    """Blocks, inodes, directories and path lookup on one device."""

    def __init__(
        self,
        disk: MemoryDisk,
        dev: int = DEFAULT_DEV,
        ninode: int = DEFAULT_NINODE,
        nbuf: int = DEFAULT_NBUF,
        logsize: int = DEFAULT_LOG_SIZE,
        maxopblocks: int = DEFAULT_MAX_OP_BLOCKS,
    ) -> None:
        if ninode < 1:
            raise ValueError("the inode cache needs at least one entry")
        self.dev = dev
        self.cache = BufferCache(disk, nbuf)
        with self.cache.block(dev, 1) as buf:
            self.superblock = Superblock.unpack(bytes(buf.data))
        self.log = Log(self.cache, dev, self.superblock, logsize, maxopblocks)
        # Major device number -> object with read(ip, n) and write(ip, data).
        self.devices: Dict[int, Any] = {}
        self._icache_lock = threading.Lock()
        self._icache = [Inode(dev, 0) for _ in range(ninode)]

    @contextmanager
    def transaction(self) -> Iterator["FileSystem"]:
        """Run the body of a ``with`` block as one logged operation."""
        with self.log.transaction():
            yield self

    # Blocks.

    def _bzero(self, blockno: int) -> None:
        with self.cache.block(self.dev, blockno) as bp:
            bp.data[:] = bytes(BSIZE)
            self.log.write(bp)

    def _balloc(self) -> int:
        """Allocate a zeroed disk block."""
        sb = self.superblock
        for base in range(0, sb.size, BPB):
            found: Optional[int] = None
            with self.cache.block(self.dev, sb.bblock(base)) as bp:
                for bi in range(min(BPB, sb.size - base)):
                    mask = 1 << (bi % 8)
                    if not bp.data[bi // 8] & mask:
                        bp.data[bi // 8] |= mask
                        self.log.write(bp)
                        found = base + bi
                        break
            if found is not None:
                self._bzero(found)
                return found
        raise FsError("balloc: out of blocks")

    def _bfree(self, blockno: int) -> None:
        with self.cache.block(self.dev, self.superblock.bblock(blockno)) as bp:
            bi = blockno % BPB
            mask = 1 << (bi % 8)
            if not bp.data[bi // 8] & mask:
                raise FsError("freeing free block")
            bp.data[bi // 8] &= ~mask & 0xFF
            self.log.write(bp)

    # Inodes.

    @staticmethod
    def _slot(inum: int) -> int:
        return (inum % IPB) * DINODE_SIZE

    def ialloc(self, type: int) -> Inode:
        """Allocate a free inode of ``type``; returned unlocked and referenced."""
        sb = self.superblock
        for inum in range(1, sb.ninodes):
            off = self._slot(inum)
            allocated = False
            with self.cache.block(self.dev, sb.iblock(inum)) as bp:
                din = DiskInode.unpack(bytes(bp.data[off : off + DINODE_SIZE]))
                if din.type == InodeType.FREE:
                    bp.data[off : off + DINODE_SIZE] = DiskInode(type=type).pack()
                    self.log.write(bp)
                    allocated = True
            if allocated:
                return self.iget(inum)
        raise FsError("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy a modified in-memory inode to disk."""
        off = self._slot(ip.inum)
        din = DiskInode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs))
        with self.cache.block(ip.dev, self.superblock.iblock(ip.inum)) as bp:
            bp.data[off : off + DINODE_SIZE] = din.pack()
            self.log.write(bp)

    def iget(self, inum: int) -> Inode:
        """Return the cached inode ``inum`` with one more reference; not locked or read."""
        with self._icache_lock:
            empty: Optional[Inode] = None
            for ip in self._icache:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise FsError("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        """Add a reference to ``ip`` and return it."""
        with self._icache_lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Optional[Inode]) -> None:
        """Lock an inode, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise FsError("ilock")
        ip._lock.acquire()
        if ip.valid:
            return
        off = self._slot(ip.inum)
        try:
            with self.cache.block(ip.dev, self.superblock.iblock(ip.inum)) as bp:
                din = DiskInode.unpack(bytes(bp.data[off : off + DINODE_SIZE]))
        except Exception:
            ip._lock.release()
            raise
        ip.type = din.type
        ip.major = din.major
        ip.minor = din.minor
        ip.nlink = din.nlink
        ip.size = din.size
        ip.addrs = list(din.addrs)
        if ip.type == InodeType.FREE:
            ip._lock.release()
            raise FsError("ilock: no type")
        ip.valid = True

    def iunlock(self, ip: Optional[Inode]) -> None:
        if ip is None or not ip.locked or ip.ref < 1:
            raise FsError("iunlock")
        ip._lock.release()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last one and unlinked."""
        ip._lock.acquire()
        try:
            if ip.valid and ip.nlink == 0:
                with self._icache_lock:
                    refs = ip.ref
                if refs == 1:
                    self._itrunc(ip)
                    ip.type = InodeType.FREE
                    self.iupdate(ip)
                    ip.valid = False
        finally:
            ip._lock.release()
        with self._icache_lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        self.iunlock(ip)
        self.iput(ip)

    # Inode content.

    def _bmap(self, ip: Inode, bn: int) -> int:
        """Disk block of the ``bn``-th block of ``ip``, allocating it if needed."""
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self._balloc()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self._balloc()
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as bp:
                (addr,) = _ADDR.unpack_from(bp.data, bn * _ADDR.size)
                if addr == 0:
                    addr = self._balloc()
                    _ADDR.pack_into(bp.data, bn * _ADDR.size, addr)
                    self.log.write(bp)
            return addr
        raise FsError("bmap: out of range")

    def _itrunc(self, ip: Inode) -> None:
        for i in range(NDIRECT):
            if ip.addrs[i]:
                self._bfree(ip.addrs[i])
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as bp:
                blocks = _INDIRECT.unpack_from(bp.data)
            for addr in blocks:
                if addr:
                    self._bfree(addr)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        return Stat(ip.dev, ip.inum, ip.type, ip.nlink, ip.size)

    def _device(self, ip: Inode) -> Any:
        device = self.devices.get(ip.major)
        if device is None:
            raise FsError(f"no device with major number {ip.major}")
        return device

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off``; the read stops at the end of the file."""
        if ip.type == InodeType.DEV:
            return self._device(ip).read(ip, n)
        if off < 0 or n < 0 or off > ip.size:
            raise FsError("read out of range")
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            pos = off + len(out)
            blockno = self._bmap(ip, pos // BSIZE)
            start = pos % BSIZE
            m = min(n - len(out), BSIZE - start)
            with self.cache.block(ip.dev, blockno) as bp:
                out += bp.data[start : start + m]
        return bytes(out)

    def writei(self, ip: Inode, data: bytes, off: int) -> int:
        """Write ``data`` at ``off``, growing the file; returns the byte count."""
        if ip.type == InodeType.DEV:
            return self._device(ip).write(ip, data)
        n = len(data)
        if off < 0 or off > ip.size:
            raise FsError("write out of range")
        if off + n > MAXFILE * BSIZE:
            raise FsError("write past maximum file size")
        done = 0
        while done < n:
            pos = off + done
            blockno = self._bmap(ip, pos // BSIZE)
            start = pos % BSIZE
            m = min(n - done, BSIZE - start)
            with self.cache.block(ip.dev, blockno) as bp:
                bp.data[start : start + m] = data[done : done + m]
                self.log.write(bp)
            done += m
        if n > 0 and off + n > ip.size:
            ip.size = off + n
            self.iupdate(ip)
        return n

    # Directories.

    def _read_dirent(self, dp: Inode, off: int) -> DirEntry:
        raw = self.readi(dp, off, DIRENT_SIZE)
        if len(raw) != DIRENT_SIZE:
            raise FsError("short directory read")
        return DirEntry.unpack(raw)

    def dirlookup(self, dp: Inode, name: PathLike) -> Optional[Tuple[Inode, int]]:
        """Find ``name`` in directory ``dp``; returns ``(inode, offset)`` or None."""
        if dp.type != InodeType.DIR:
            raise FsError("dirlookup not DIR")
        for off in range(0, dp.size, DIRENT_SIZE):
            de = self._read_dirent(dp, off)
            if de.inum and namecmp(name, de.name) == 0:
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: PathLike, inum: int) -> None:
        """Add the entry ``(name, inum)`` to directory ``dp``."""
        existing = self.dirlookup(dp, name)
        if existing is not None:
            self.iput(existing[0])
            raise FsError(f"directory entry already exists: {name!r}")
        off = next(
            (
                o
                for o in range(0, dp.size, DIRENT_SIZE)
                if self._read_dirent(dp, o).inum == 0
            ),
            dp.size,
        )
        entry = DirEntry(inum, _name_bytes(name)).pack()
        if self.writei(dp, entry, off) != DIRENT_SIZE:
            raise FsError("dirlink")

    # Paths.

    def _namex(
        self, path: PathLike, parent: bool, cwd: Optional[Inode]
    ) -> Optional[Tuple[Inode, PathLike]]:
        sep: Any = b"/" if isinstance(path, (bytes, bytearray)) else "/"
        if path.startswith(sep) or cwd is None:
            ip = self.iget(ROOTINO)
        else:
            ip = self.idup(cwd)
        name: PathLike = path[:0]
        while True:
            elem = skipelem(path)
            if elem is None:
                break
            name, path = elem
            self.ilock(ip)
            if ip.type != InodeType.DIR:
                self.iunlockput(ip)
                return None
            if parent and not path:
                # Stop one level early.
                self.iunlock(ip)
                return ip, name
            try:
                found = self.dirlookup(ip, name)
            except Exception:
                self.iunlockput(ip)
                raise
            self.iunlockput(ip)
            if found is None:
                return None
            ip = found[0]
        if parent:
            self.iput(ip)
            return None
        return ip, name

    def namei(self, path: PathLike, cwd: Optional[Inode] = None) -> Optional[Inode]:
        """Inode for ``path``, or None; relative paths start at ``cwd`` (root if None)."""
        found = self._namex(path, False, cwd)
        return found[0] if found else None

    def nameiparent(
        self, path: PathLike, cwd: Optional[Inode] = None
    ) -> Optional[Tuple[Inode, PathLike]]:
        """Parent directory of ``path`` and its final element, or None."""
        return self._namex(path, True, cwd)