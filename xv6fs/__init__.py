"""A small Unix-style file system: disk images, buffer cache, log, inodes, pipes and tools."""

__version__ = "0.1.0"