# sixfs

`sixfs` is a small Unix-style file system in plain Python, built from
layers that each fit in one module:

- **On-disk layout** (`sixfs.layout`): `Superblock`, `DiskInode`,
  `DirEntry` and `InodeType`, with exact little-endian packing.
  512-byte blocks, 12 direct block addresses plus one indirect block,
  and directory names of at most 14 bytes.
- **Image builder** (`sixfs.mkfs`): `ImageBuilder` and `build_image`
  make a fresh image holding a root directory and the files you add.
- **Block device** (`sixfs.disk`): `MemoryDisk`, an in-memory disk that
  can be loaded from a file and saved back to one. It raises
  `DiskError` for requests it cannot serve.
- **Buffer cache** (`sixfs.bufcache`): `BufferCache`, a fixed set of
  `Buf` blocks reused in least-recently-used order.
- **Write-ahead log** (`sixfs.log`): `Log`, which groups block writes
  into transactions and, on start-up, installs any committed
  transaction it finds on disk.
- **Inodes, directories and path names** (`sixfs.fs`): `FileSystem`,
  `Inode`, `Stat`, `skipelem` and `namecmp`.
- **Open files and pipes** (`sixfs.files`): `FileTable`, `OpenFile`,
  `Pipe` and `FileKind`.
- **Console and keyboard** (`sixfs.console`, `sixfs.keyboard`): a
  line-editing `Console` that draws on an 80x25 `Screen`, and a
  `Keyboard` that turns PC scan codes into characters.
- **Small tools**: `grep` with `^ . * $` patterns (`sixfs.grep`),
  `printf`-style formatting (`sixfs.fmt`), and `ls`, `cat` and `echo`
  (`sixfs.cli`).

Only the standard library is used.

## Install

```
pip install .
```

To run the tests as well:

```
pip install .[test]
pytest
```

## Building an image

Put host files into a new image. A leading `_` in a file name is
dropped, so `_cat` is stored as `cat`. File names may not contain `/`.

```
sixfs-mkfs fs.img README _cat _ls
```

The image has 1000 blocks, 30 log blocks and room for 200 inodes.

From Python, `build_image` takes `(name, data)` pairs:

```python
from sixfs.mkfs import build_image

image = build_image([("hello.txt", b"hello, world\n")], 1000, 30, 200)
```

## Looking inside an image

```
sixfs ls fs.img /
sixfs cat fs.img /README
sixfs echo hello there
```

`ls` prints one line per entry: the name padded to 14 characters, the
inode type, the inode number and the size. With no path it lists `.`,
which is the root directory. `cat` with no path copies standard input.

From Python:

```python
from sixfs.disk import MemoryDisk
from sixfs.fs import FileSystem
from sixfs.cli import ls, cat

disk = MemoryDisk.from_file("fs.img", 1)
fs = FileSystem(disk, 1, 50, 30, 30, 10)
print(ls(fs, "/"))
print(cat(fs, "/README"))
```

Changes go through the log:

```python
from sixfs.layout import InodeType

with fs.transaction():
    root = fs.namei("/", None)
    ip = fs.ialloc(InodeType.FILE)
    fs.ilock(ip)
    ip.nlink = 1
    fs.iupdate(ip)
    fs.writei(ip, b"new contents", 0)
    fs.iunlock(ip)
    fs.ilock(root)
    fs.dirlink(root, "new.txt", ip.inum)
    fs.iunlockput(root)
    fs.iput(ip)

disk.save("fs.img")
```

`FileTable` gives reference-counted open files on top of this:
`open_inode` wraps an inode, `read` and `write` move the file offset,
and `pipe` returns the read and write ends of a new `Pipe`.

## Searching text

`sixfs-grep` prints the lines that match a pattern. The pattern may use
`^` (start of line), `$` (end of line), `.` (any character) and `*`
(zero or more of the previous character):

```
sixfs-grep '^ma.*n$' notes.txt
```

With no file it reads standard input. In Python,
`sixfs.grep.match(regex, text)` tests one line, and
`sixfs.grep.grep_lines(pattern, stream)` yields the matching lines of a
binary stream.

## What it does not do

- There are no commands that change an existing image: no `mkdir`,
  `rm`, `ln` or file creation from the command line. Changes are made
  from Python through `FileSystem`, as shown above.
- There are no processes, system calls or scheduler: `FileSystem`,
  `FileTable`, `Console` and `Pipe` are used directly, and blocking
  reads wait on Python threads.
- Devices are not real hardware: the disk lives in memory, the screen is
  a list of cells, and the keyboard only decodes scan codes you pass in.