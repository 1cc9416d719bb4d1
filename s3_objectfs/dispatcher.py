from __future__ import annotations
"""POSIX-shaped filesystem operations backed by the object store."""
from contextlib import contextmanager
from datetime import datetime
import errno
import logging
import stat
import time
from typing import Any, Optional

from .errors import FilesystemError, NotFoundError, ObjectStoreError, ObjectTooLargeError, errno_for
from .keyspace import KeyspaceTranslator, to_key
from .models import ObjectMetadata
from .services import ObjectStoreClient

LOGGER = logging.getLogger(__name__)

DIRECTORY_MODE = stat.S_IFDIR | 0o755
FILE_MODE = stat.S_IFREG | 0o644
BLOCK_SIZE = 512


def _timestamp(value: Optional[datetime]) -> float:
    if value is None:
        return time.time()
    return value.timestamp()


def directory_stat() -> dict[str, Any]:
    now = time.time()
    return {
        "st_mode": DIRECTORY_MODE,
        "st_nlink": 2,
        "st_size": 0,
        "st_atime": now,
        "st_mtime": now,
        "st_ctime": now,
    }


def file_stat(metadata: ObjectMetadata) -> dict[str, Any]:
    modified = _timestamp(metadata.last_modified)
    return {
        "st_mode": FILE_MODE,
        "st_nlink": 1,
        "st_size": metadata.size,
        "st_blocks": (metadata.size + BLOCK_SIZE - 1) // BLOCK_SIZE,
        "st_atime": modified,
        "st_mtime": modified,
        "st_ctime": modified,
    }


def splice(existing: bytes, data: bytes, offset: int) -> bytes:
    """Overlay ``data`` at ``offset``, zero-filling any gap past the end."""

    if offset > len(existing):
        existing = existing + b"\0" * (offset - len(existing))
    return existing[:offset] + data + existing[offset + len(data):]


class FilesystemDispatcher:
    """Implements getattr/readdir/read/write/create/unlink/mkdir/rmdir.

    Nothing is kept between calls, so operations may run concurrently from
    any number of threads. Writes are read-modify-write cycles without any
    lock; two writers racing on one key can lose an update.
    """

    def __init__(self, client: ObjectStoreClient, translator: KeyspaceTranslator | None = None):
        self._client = client
        self._translator = translator or KeyspaceTranslator(client)

    def getattr(self, path: str) -> dict[str, Any]:
        LOGGER.debug("getattr %s", path)
        with self._errors(path):
            key = self._key(path)
            if key is None:
                return directory_stat()
            try:
                return file_stat(self._client.head(key))
            except NotFoundError:
                if self._translator.is_directory(path):
                    return directory_stat()
                raise

    def readdir(self, path: str) -> list[tuple[str, dict[str, Any]]]:
        LOGGER.debug("readdir %s", path)
        with self._errors(path):
            self._key(path)
            if not self._translator.is_directory(path):
                if self._translator.is_file(path):
                    raise FilesystemError(errno.ENOTDIR, path)
                raise FilesystemError(errno.ENOENT, path)
            entries = []
            for entry in self._translator.list(path):
                if entry.is_directory or entry.metadata is None:
                    entries.append((entry.name, directory_stat()))
                else:
                    entries.append((entry.name, file_stat(entry.metadata)))
            return entries

    def read(self, path: str, size: int, offset: int) -> bytes:
        LOGGER.debug("read %s size=%d offset=%d", path, size, offset)
        if size < 0 or offset < 0:
            raise FilesystemError(errno.EINVAL, path)
        with self._errors(path), self._regular_file(path):
            key = self._file_key(path)
            return self._client.get_range(key, offset, size)

    def write(self, path: str, data: bytes, offset: int) -> int:
        """Write ``data`` at ``offset`` and return the number of bytes written."""

        LOGGER.debug("write %s size=%d offset=%d", path, len(data), offset)
        if offset < 0:
            raise FilesystemError(errno.EINVAL, path)
        with self._errors(path), self._regular_file(path):
            key = self._file_key(path)
            if offset + len(data) > self._client.max_object_size:
                raise ObjectTooLargeError(f"write past {self._client.max_object_size} bytes")
            existing_size = self._client.head(key).size
            if offset == 0 and len(data) >= existing_size:
                content = bytes(data)
            else:
                existing = self._client.get_range(key, 0, existing_size)
                content = splice(existing, bytes(data), offset)
            self._client.put(key, content)
            return len(data)

    def truncate(self, path: str, length: int) -> None:
        LOGGER.debug("truncate %s length=%d", path, length)
        if length < 0:
            raise FilesystemError(errno.EINVAL, path)
        with self._errors(path), self._regular_file(path):
            key = self._file_key(path)
            if length > self._client.max_object_size:
                raise ObjectTooLargeError(f"truncate past {self._client.max_object_size} bytes")
            existing_size = self._client.head(key).size
            if length == existing_size:
                return
            existing = self._client.get_range(key, 0, min(length, existing_size))
            self._client.put(key, splice(existing, b"", length))

    def create(self, path: str, exclusive: bool = False) -> None:
        LOGGER.debug("create %s exclusive=%s", path, exclusive)
        with self._errors(path):
            key = self._file_key(path)
            if exclusive and self._translator.stat_file(path) is not None:
                raise FilesystemError(errno.EEXIST, path)
            self._client.put(key, b"")

    def unlink(self, path: str) -> None:
        LOGGER.debug("unlink %s", path)
        with self._errors(path):
            key = self._file_key(path)
            try:
                self._client.delete(key)
            except NotFoundError:
                LOGGER.debug("unlink %s: already absent", path)

    def mkdir(self, path: str) -> None:
        LOGGER.debug("mkdir %s", path)
        with self._errors(path):
            if self._key(path) is None or self._translator.is_directory(path) or self._translator.is_file(path):
                raise FilesystemError(errno.EEXIST, path)
            self._translator.mkdir(path)

    def rmdir(self, path: str) -> None:
        LOGGER.debug("rmdir %s", path)
        with self._errors(path):
            if self._key(path) is None:
                raise FilesystemError(errno.EBUSY, path)
            try:
                self._translator.rmdir(path)
            except NotFoundError:
                if self._translator.is_file(path):
                    raise FilesystemError(errno.ENOTDIR, path) from None
                raise

    def _key(self, path: str) -> Optional[str]:
        try:
            return to_key(path)
        except ValueError:
            raise FilesystemError(errno.EINVAL, path) from None

    def _file_key(self, path: str) -> str:
        key = self._key(path)
        if key is None:
            raise FilesystemError(errno.EISDIR, path)
        return key

    @contextmanager
    def _regular_file(self, path: str):
        """Report a missing object that is a synthesized directory as EISDIR."""

        try:
            yield
        except NotFoundError:
            if self._translator.is_directory(path):
                raise FilesystemError(errno.EISDIR, path) from None
            raise

    @contextmanager
    def _errors(self, path: str):
        try:
            yield
        except ObjectStoreError as exc:
            code = errno_for(exc)
            if code == errno.EIO:
                LOGGER.warning("%s failed: %s", path, exc)
            raise FilesystemError(code, path) from exc
