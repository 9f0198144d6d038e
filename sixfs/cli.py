"""Small user commands over a file system image: ls, cat and echo."""

from __future__ import annotations

import argparse
import errno
import sys
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from .disk import MemoryDisk
from .fmt import format_printf
from .fs import FileSystem, Inode, Stat
from .layout import BSIZE, DIRENT_SIZE, DIRSIZ, DirEntry, InodeType

_PATH_BUF = 512


def fmtname(path: str) -> str:
    """The last element of ``path``, padded with blanks to DIRSIZ characters."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


@contextmanager
def _opened(fs: FileSystem, path: str) -> Iterator[Inode]:
    """Look up ``path`` and hold a reference to its inode for the ``with`` body."""
    with fs.transaction():
        ip = fs.namei(path)
    if ip is None:
        raise FileNotFoundError(errno.ENOENT, "cannot open", path)
    try:
        yield ip
    finally:
        with fs.transaction():
            fs.iput(ip)


def _stat_inode(fs: FileSystem, ip: Inode) -> Stat:
    fs.ilock(ip)
    try:
        return fs.stati(ip)
    finally:
        fs.iunlock(ip)


def _stat(fs: FileSystem, path: str) -> Optional[Stat]:
    try:
        with _opened(fs, path) as ip:
            return _stat_inode(fs, ip)
    except FileNotFoundError:
        return None


def _chunks(fs: FileSystem, ip: Inode, size: int) -> Iterator[bytes]:
    """Successive reads of up to ``size`` bytes until a read returns nothing."""
    off = 0
    while True:
        fs.ilock(ip)
        try:
            data = fs.readi(ip, off, size)
        finally:
            fs.iunlock(ip)
        if not data:
            return
        off += len(data)
        yield data


def _line(name: str, st: Stat) -> str:
    return format_printf("%s %d %d %d", fmtname(name), st.type, st.ino, st.size)


def ls(fs: FileSystem, path: str) -> List[str]:
    """Listing lines for ``path``: name, type, inode number and size.

    A directory lists each of its entries; a file lists itself. Raises
    FileNotFoundError if ``path`` cannot be opened and ValueError if a
    directory path is too long to extend with an entry name.
    """
    with _opened(fs, path) as ip:
        st = _stat_inode(fs, ip)
        if st.type == InodeType.FILE:
            return [_line(path, st)]
        if st.type != InodeType.DIR:
            return []
        if len(path.encode("utf-8")) + 1 + DIRSIZ + 1 > _PATH_BUF:
            raise ValueError("path too long")
        lines: List[str] = []
        pending = b""
        for chunk in _chunks(fs, ip, DIRENT_SIZE):
            pending += chunk
            if len(pending) < DIRENT_SIZE:
                continue
            de = DirEntry.unpack(pending[:DIRENT_SIZE])
            pending = pending[DIRENT_SIZE:]
            if de.inum == 0:
                continue
            child = f"{path}/{de.name_str()}"
            child_st = _stat(fs, child)
            if child_st is None:
                lines.append(f"ls: cannot stat {child}")
                continue
            lines.append(_line(child, child_st))
        return lines


def cat(fs: FileSystem, path: str) -> bytes:
    """The whole contents of ``path``; raises FileNotFoundError if it cannot be opened."""
    with _opened(fs, path) as ip:
        return b"".join(_chunks(fs, ip, BSIZE))


def echo(args: Sequence[str]) -> str:
    """The arguments separated by blanks and ended by a newline; empty for no arguments."""
    if not args:
        return ""
    return " ".join(args) + "\n"


def _write_bytes(data: bytes) -> None:
    sys.stdout.flush()
    buffer = getattr(sys.stdout, "buffer", None)
    if buffer is not None:
        buffer.write(data)
        buffer.flush()
    else:
        sys.stdout.write(data.decode("latin-1"))


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sixfs", description="Inspect a file system image.")
    sub = parser.add_subparsers(dest="command", required=True)
    p_ls = sub.add_parser("ls", help="list files in an image")
    p_ls.add_argument("image")
    p_ls.add_argument("paths", nargs="*")
    p_cat = sub.add_parser("cat", help="print files from an image")
    p_cat.add_argument("image")
    p_cat.add_argument("paths", nargs="*")
    p_echo = sub.add_parser("echo", help="print the arguments")
    p_echo.add_argument("words", nargs="*")
    return parser


def _run_ls(fs: FileSystem, paths: Sequence[str]) -> int:
    for path in paths or ["."]:
        try:
            lines = ls(fs, path)
        except FileNotFoundError:
            print(f"ls: cannot open {path}", file=sys.stderr)
            continue
        except ValueError:
            print("ls: path too long")
            continue
        for line in lines:
            print(line)
    return 0


def _run_cat(fs: FileSystem, paths: Sequence[str]) -> int:
    if not paths:
        _write_bytes(sys.stdin.buffer.read())
        return 0
    for path in paths:
        try:
            data = cat(fs, path)
        except FileNotFoundError:
            print(f"cat: cannot open {path}")
            return 1
        _write_bytes(data)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parser().parse_args(sys.argv[1:] if argv is None else list(argv))
    if args.command == "echo":
        sys.stdout.write(echo(args.words))
        return 0
    try:
        disk = MemoryDisk.from_file(args.image)
    except OSError as exc:
        print(f"{args.image}: {exc.strerror}", file=sys.stderr)
        return 1
    fs = FileSystem(disk)
    if args.command == "ls":
        return _run_ls(fs, args.paths)
    return _run_cat(fs, args.paths)


if __name__ == "__main__":
    sys.exit(main())