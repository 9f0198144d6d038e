"""A small Unix-style file system: disk layout, image builder, buffer cache, log, inodes, open files, console and tools."""

__version__ = "0.1.0"