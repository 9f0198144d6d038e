"""On-disk layout of the file system: sizes, block arithmetic and record encodings."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List

ROOTINO = 1
BSIZE = 512

NDIRECT = 12
_ADDR_SIZE = 4
NINDIRECT = BSIZE // _ADDR_SIZE
MAXFILE = NDIRECT + NINDIRECT

DIRSIZ = 14

_SUPERBLOCK = struct.Struct("<7I")
_DINODE = struct.Struct(f"<4hI{NDIRECT + 1}I")
_DIRENT = struct.Struct(f"<H{DIRSIZ}s")

SUPERBLOCK_SIZE = _SUPERBLOCK.size
DINODE_SIZE = _DINODE.size
DIRENT_SIZE = _DIRENT.size

# Inodes per block.
IPB = BSIZE // DINODE_SIZE
# Bitmap bits per block.
BPB = BSIZE * 8


class InodeType(IntEnum):
    """Kind of object an inode describes; zero marks a free inode."""

    FREE = 0
    DIR = 1
    FILE = 2
    DEV = 3


def _require(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise ValueError(f"{what} needs {size} bytes, got {len(data)}")


@dataclass
class Superblock:
    """Describes the disk layout: where the log, inodes and bitmap live."""

    size: int = 0
    nblocks: int = 0
    ninodes: int = 0
    nlog: int = 0
    logstart: int = 0
    inodestart: int = 0
    bmapstart: int = 0

    def pack(self) -> bytes:
        return _SUPERBLOCK.pack(
            self.size,
            self.nblocks,
            self.ninodes,
            self.nlog,
            self.logstart,
            self.inodestart,
            self.bmapstart,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "Superblock":
        _require(data, SUPERBLOCK_SIZE, "superblock")
        return cls(*_SUPERBLOCK.unpack_from(data))

    def iblock(self, inum: int) -> int:
        """Block holding inode ``inum``."""
        return inum // IPB + self.inodestart

    def bblock(self, blockno: int) -> int:
        """Bitmap block holding the bit for block ``blockno``."""
        return blockno // BPB + self.bmapstart


@dataclass
class DiskInode:
    """On-disk inode record."""

    type: int = InodeType.FREE
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: List[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))

    def pack(self) -> bytes:
        if len(self.addrs) != NDIRECT + 1:
            raise ValueError(f"an inode holds exactly {NDIRECT + 1} addresses")
        return _DINODE.pack(
            self.type, self.major, self.minor, self.nlink, self.size, *self.addrs
        )

    @classmethod
    def unpack(cls, data: bytes) -> "DiskInode":
        _require(data, DINODE_SIZE, "inode")
        type_, major, minor, nlink, size, *addrs = _DINODE.unpack_from(data)
        return cls(type_, major, minor, nlink, size, list(addrs))


@dataclass
class DirEntry:
    """A directory entry: inode number and a name of at most DIRSIZ bytes."""

    inum: int = 0
    name: bytes = b""

    def pack(self) -> bytes:
        # struct pads short names with NULs and truncates long ones.
        return _DIRENT.pack(self.inum, self.name[:DIRSIZ])

    @classmethod
    def unpack(cls, data: bytes) -> "DirEntry":
        _require(data, DIRENT_SIZE, "directory entry")
        inum, name = _DIRENT.unpack_from(data)
        return cls(inum, name)

    def name_str(self) -> str:
        """The name up to its first NUL byte."""
        return self.name[:DIRSIZ].split(b"\0", 1)[0].decode("utf-8", "replace")