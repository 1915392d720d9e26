"""A small in-memory Unix-style file system with cache, log, inodes, pipes, tools and a console."""

__version__ = "0.1.0"