"""Build a file system image holding a root directory and a set of files."""

from __future__ import annotations

import struct
import sys
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple

from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
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

DEFAULT_FS_SIZE = 1000
DEFAULT_LOG_SIZE = 30
DEFAULT_NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")

# Disk layout:
# [ boot block | sb block | log | inode blocks | free bit map | data blocks ]


class ImageBuilder:
    """Lays out a fresh image in memory and appends files to its root directory."""

    def __init__(
        self,
        size: int = DEFAULT_FS_SIZE,
        nlog: int = DEFAULT_LOG_SIZE,
        ninodes: int = DEFAULT_NINODES,
    ) -> None:
        self.size = size
        self.nlog = nlog
        self.nbitmap = size // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        if self.nmeta >= size:
            raise ValueError("image too small for its metadata")
        self.nblocks = size - self.nmeta
        self.superblock = Superblock(
            size=size,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        self.freeblock = self.nmeta
        self.freeinode = 1
        self._finished = False
        self._image = bytearray(size * BSIZE)
        self._write_sector(1, self.superblock.pack())

        self.root = self.ialloc(InodeType.DIR)
        if self.root != ROOTINO:
            raise RuntimeError("root directory did not get the root inode number")
        self._append_dirent(b".", self.root)
        self._append_dirent(b"..", self.root)

    def _read_sector(self, sec: int) -> bytes:
        return bytes(self._image[sec * BSIZE : (sec + 1) * BSIZE])

    def _write_sector(self, sec: int, data: bytes) -> None:
        self._image[sec * BSIZE : (sec + 1) * BSIZE] = data[:BSIZE].ljust(BSIZE, b"\0")

    def _inode_offset(self, inum: int) -> int:
        return self.superblock.iblock(inum) * BSIZE + (inum % IPB) * DINODE_SIZE

    def _alloc_block(self) -> int:
        if self.freeblock >= self.size:
            raise ValueError("out of data blocks")
        blockno = self.freeblock
        self.freeblock += 1
        return blockno

    def _append_dirent(self, name: bytes, inum: int) -> None:
        self.iappend(self.root, DirEntry(inum, name).pack())

    def read_inode(self, inum: int) -> DiskInode:
        start = self._inode_offset(inum)
        return DiskInode.unpack(self._image[start : start + DINODE_SIZE])

    def write_inode(self, inum: int, dinode: DiskInode) -> None:
        start = self._inode_offset(inum)
        self._image[start : start + DINODE_SIZE] = dinode.pack()

    def ialloc(self, type: int) -> int:
        """Allocate the next inode with one link and return its number."""
        if self.freeinode >= self.superblock.ninodes:
            raise ValueError("out of inodes")
        inum = self.freeinode
        self.freeinode += 1
        self.write_inode(inum, DiskInode(type=type, nlink=1, size=0))
        return inum

    def iappend(self, inum: int, data: bytes) -> None:
        """Append ``data`` to the end of inode ``inum``, allocating blocks as needed."""
        din = self.read_inode(inum)
        off = din.size
        pos = 0
        while pos < len(data):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._alloc_block()
                blockno = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._alloc_block()
                indirect = list(_INDIRECT.unpack(self._read_sector(din.addrs[NDIRECT])))
                slot = fbn - NDIRECT
                if indirect[slot] == 0:
                    indirect[slot] = self._alloc_block()
                    self._write_sector(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
                blockno = indirect[slot]
            n1 = min(len(data) - pos, (fbn + 1) * BSIZE - off)
            start = blockno * BSIZE + off - fbn * BSIZE
            self._image[start : start + n1] = data[pos : pos + n1]
            pos += n1
            off += n1
        din.size = off
        self.write_inode(inum, din)

    def add_file(self, name: str, data: bytes) -> int:
        """Store ``data`` as a regular file in the root directory; a leading '_' is dropped."""
        if "/" in name:
            raise ValueError(f"file name must not contain '/': {name!r}")
        if name.startswith("_"):
            name = name[1:]
        inum = self.ialloc(InodeType.FILE)
        self._append_dirent(name.encode("utf-8"), inum)
        self.iappend(inum, data)
        return inum

    def finish(self) -> bytes:
        """Round up the root directory, write the free bitmap and return the image."""
        if self._finished:
            raise RuntimeError("image already finished")
        self._finished = True

        din = self.read_inode(self.root)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self.write_inode(self.root, din)

        used = self.freeblock
        if used >= BPB:
            raise ValueError("allocated blocks do not fit in one bitmap block")
        full, rem = divmod(used, 8)
        bitmap = bytearray(BSIZE)
        bitmap[:full] = b"\xff" * full
        if rem:
            bitmap[full] = (1 << rem) - 1
        self._write_sector(self.superblock.bmapstart, bytes(bitmap))
        return bytes(self._image)


def build_image(
    files: Iterable[Tuple[str, bytes]],
    size: int = DEFAULT_FS_SIZE,
    nlog: int = DEFAULT_LOG_SIZE,
    ninodes: int = DEFAULT_NINODES,
) -> bytes:
    """Build a complete image from ``(name, data)`` pairs."""
    builder = ImageBuilder(size, nlog, ninodes)
    for name, data in files:
        builder.add_file(name, data)
    return builder.finish()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    image_path, *paths = args

    builder = ImageBuilder()
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.size}"
    )

    for path in paths:
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            print(f"{path}: {exc.strerror}", file=sys.stderr)
            return 1
        try:
            builder.add_file(path, data)
        except ValueError as exc:
            print(f"mkfs: {exc}", file=sys.stderr)
            return 1

    print(f"balloc: first {builder.freeblock} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {builder.superblock.bmapstart}")
    try:
        image = builder.finish()
    except ValueError as exc:
        print(f"mkfs: {exc}", file=sys.stderr)
        return 1

    try:
        Path(image_path).write_bytes(image)
    except OSError as exc:
        print(f"{image_path}: {exc.strerror}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())