from __future__ import annotations
"""fusepy adapter exposing a FilesystemDispatcher at a mountpoint."""
import os
from typing import Any

from fuse import FUSE, LoggingMixIn, Operations

from .dispatcher import FilesystemDispatcher

FSNAME = "pys3fs"


class S3ObjectFuse(LoggingMixIn, Operations):
    """Forwards fusepy callbacks to the dispatcher.

    Mounted with ``raw_fi=True``: file-handle arguments are the kernel's
    ``fuse_file_info`` structs, so ``create`` can see the open flags.
    Dispatcher failures are ``OSError`` subclasses and reach the kernel as
    their errno.
    """

    def __init__(self, dispatcher: FilesystemDispatcher):
        self.fs = dispatcher

    def getattr(self, path: str, fh: Any = None) -> dict[str, Any]:
        return self.fs.getattr(path)

    def readdir(self, path: str, fh: Any) -> list:
        return [(name, attrs, 0) for name, attrs in self.fs.readdir(path)]

    def read(self, path: str, size: int, offset: int, fh: Any) -> bytes:
        return self.fs.read(path, size, offset)

    def write(self, path: str, data: bytes, offset: int, fh: Any) -> int:
        return self.fs.write(path, data, offset)

    def truncate(self, path: str, length: int, fh: Any = None) -> None:
        self.fs.truncate(path, length)

    def create(self, path: str, mode: int, fi: Any) -> int:
        exclusive = bool(fi.flags & os.O_EXCL)
        self.fs.create(path, exclusive=exclusive)
        fi.fh = 0
        return 0

    def unlink(self, path: str) -> None:
        self.fs.unlink(path)

    def mkdir(self, path: str, mode: int) -> None:
        self.fs.mkdir(path)

    def rmdir(self, path: str) -> None:
        self.fs.rmdir(path)


def mount(dispatcher: FilesystemDispatcher, mountpoint: str, **kwargs: Any) -> None:
    """Mount the bucket and block until it is unmounted."""

    kwargs.setdefault("foreground", True)
    kwargs.setdefault("nothreads", False)
    kwargs.setdefault("fsname", FSNAME)
    FUSE(S3ObjectFuse(dispatcher), mountpoint, raw_fi=True, **kwargs)
