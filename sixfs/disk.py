"""An in-memory disk that stores fixed-size blocks in a byte array."""

from __future__ import annotations

from pathlib import Path
from typing import Union

from .layout import BSIZE

DEFAULT_DEV = 1


class DiskError(Exception):
    """A block request the disk cannot serve."""


class MemoryDisk:
    """A disk image held in memory; only requests for its own device are served."""

    def __init__(self, data: bytes, dev: int = DEFAULT_DEV) -> None:
        self._data = bytearray(data)
        self.dev = dev
        self._nblocks = len(self._data) // BSIZE

    @classmethod
    def from_file(cls, path: Union[str, Path], dev: int = DEFAULT_DEV) -> "MemoryDisk":
        """Load a disk image from ``path``."""
        return cls(Path(path).read_bytes(), dev)

    def save(self, path: Union[str, Path]) -> None:
        """Write the whole image to ``path``."""
        Path(path).write_bytes(bytes(self._data))

    def __len__(self) -> int:
        return self._nblocks

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    def _check(self, dev: int, blockno: int) -> None:
        if dev != self.dev:
            raise DiskError(f"request not for disk {self.dev}")
        if not 0 <= blockno < self._nblocks:
            raise DiskError(f"block {blockno} out of range")

    def read_block(self, dev: int, blockno: int) -> bytes:
        """Return the BSIZE bytes of block ``blockno``."""
        self._check(dev, blockno)
        start = blockno * BSIZE
        return bytes(self._data[start : start + BSIZE])

    def write_block(self, dev: int, blockno: int, data: bytes) -> None:
        """Replace block ``blockno`` with exactly BSIZE bytes of ``data``."""
        self._check(dev, blockno)
        if len(data) != BSIZE:
            raise DiskError(f"a block holds exactly {BSIZE} bytes, got {len(data)}")
        start = blockno * BSIZE
        self._data[start : start + BSIZE] = data