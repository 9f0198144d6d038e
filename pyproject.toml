[build-system]
requires = ["setuptools>=64"]
build-backend = "setuptools.build_meta"

[project]
name = "sixfs"
version = "0.1.0"
description = "A small Unix-style file system: image builder, buffer cache, write-ahead log, inodes, directories and simple tools"
requires-python = ">=3.10"
dependencies = []
keywords = ["filesystem", "inode", "write-ahead log", "buffer cache", "disk image", "teaching"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
sixfs-mkfs = "sixfs.mkfs:main"
sixfs-grep = "sixfs.grep:main"
sixfs = "sixfs.cli:main"

[tool.setuptools.packages.find]
include = ["sixfs*"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
