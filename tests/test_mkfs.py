import struct

import pytest

from sixfs.layout import (
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
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
from sixfs.mkfs import ImageBuilder, build_image, main


def read_block(image, blockno):
    return image[blockno * BSIZE : (blockno + 1) * BSIZE]


def superblock(image):
    return Superblock.unpack(read_block(image, 1))


def inode(image, inum):
    sb = superblock(image)
    block = read_block(image, sb.iblock(inum))
    off = (inum % IPB) * DINODE_SIZE
    return DiskInode.unpack(block[off : off + DINODE_SIZE])


def file_data(image, inum):
    din = inode(image, inum)
    blocks = [b for b in din.addrs[:NDIRECT] if b]
    if din.addrs[NDIRECT]:
        indirect = struct.unpack(f"<{NINDIRECT}I", read_block(image, din.addrs[NDIRECT]))
        blocks.extend(b for b in indirect if b)
    return b"".join(read_block(image, b) for b in blocks)[: din.size]


def dir_entries(image, inum):
    data = file_data(image, inum)
    entries = (
        DirEntry.unpack(data[i : i + DIRENT_SIZE]) for i in range(0, len(data), DIRENT_SIZE)
    )
    return {e.name_str(): e.inum for e in entries if e.inum}


def test_image_size_and_superblock():
    image = build_image([], size=1000, nlog=30, ninodes=200)
    assert len(image) == 1000 * BSIZE
    sb = superblock(image)
    assert sb.size == 1000
    assert sb.ninodes == 200
    assert sb.nlog == 30
    assert sb.logstart == 2
    assert sb.inodestart == 2 + 30
    assert sb.bmapstart > sb.inodestart
    assert 0 < sb.nblocks < sb.size


def test_root_directory_has_dot_entries():
    image = build_image([])
    root = inode(image, ROOTINO)
    assert root.type == InodeType.DIR
    assert root.nlink == 1
    assert root.size % BSIZE == 0
    assert dir_entries(image, ROOTINO) == {".": ROOTINO, "..": ROOTINO}


def test_files_are_stored_and_underscore_stripped():
    readme = b"a small file system\n" * 40
    image = build_image([("_cat", b"meow"), ("README", readme)])
    entries = dir_entries(image, ROOTINO)
    assert set(entries) == {".", "..", "cat", "README"}
    assert file_data(image, entries["cat"]) == b"meow"
    assert file_data(image, entries["README"]) == readme
    assert inode(image, entries["README"]).type == InodeType.FILE


def test_large_file_uses_indirect_block():
    data = bytes(range(256)) * ((NDIRECT + 3) * 2)
    builder = ImageBuilder()
    inum = builder.add_file("big", data)
    image = builder.finish()
    din = inode(image, inum)
    assert din.addrs[NDIRECT] != 0
    assert din.size == len(data)
    assert file_data(image, inum) == data


def test_inode_numbers_are_sequential():
    builder = ImageBuilder()
    first = builder.add_file("a", b"1")
    second = builder.add_file("b", b"2")
    assert first == ROOTINO + 1
    assert second == first + 1


def test_bitmap_marks_exactly_the_used_blocks():
    builder = ImageBuilder()
    builder.add_file("data", b"z" * (3 * BSIZE + 7))
    used = builder.freeblock
    image = builder.finish()
    bitmap = read_block(image, superblock(image).bmapstart)
    assert int.from_bytes(bitmap, "little") == (1 << used) - 1


def test_read_write_inode_round_trip():
    builder = ImageBuilder()
    din = DiskInode(type=InodeType.FILE, nlink=3, size=9, addrs=[4] * (NDIRECT + 1))
    builder.write_inode(5, din)
    assert builder.read_inode(5) == din


def test_slash_in_name_rejected():
    builder = ImageBuilder()
    with pytest.raises(ValueError):
        builder.add_file("dir/file", b"x")


def test_file_too_large_rejected():
    builder = ImageBuilder()
    with pytest.raises(ValueError):
        builder.add_file("huge", b"\0" * (MAXFILE * BSIZE + 1))


def test_finish_twice_rejected():
    builder = ImageBuilder()
    builder.finish()
    with pytest.raises(RuntimeError):
        builder.finish()


def test_main_writes_image(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "_echo").write_bytes(b"echo program")
    assert main(["fs.img", "_echo"]) == 0
    image = (tmp_path / "fs.img").read_bytes()
    entries = dir_entries(image, ROOTINO)
    assert file_data(image, entries["echo"]) == b"echo program"


def test_main_usage(capsys):
    assert main([]) == 1
    assert "Usage: mkfs fs.img files..." in capsys.readouterr().err


def test_main_missing_input(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main(["fs.img", "absent"]) == 1
    assert not (tmp_path / "fs.img").exists()