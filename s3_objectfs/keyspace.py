from __future__ import annotations
"""Directory semantics synthesized over a flat object key space."""
import logging
from typing import Iterator, Optional

from .errors import ConflictError, NotFoundError
from .models import MARKER_NAME, DirectoryEntry, ObjectMetadata
from .services import ObjectStoreClient

LOGGER = logging.getLogger(__name__)

SEPARATOR = "/"


def to_key(path: str) -> Optional[str]:
    """Translate a virtual path to its object key; the root has none."""

    if not path.startswith(SEPARATOR):
        raise ValueError(f"path must be absolute: {path!r}")
    key = path[1:]
    if not key:
        return None
    return key


def to_path(key: Optional[str]) -> str:
    return SEPARATOR + (key or "")


def marker_key(key: str) -> str:
    return f"{key}{SEPARATOR}{MARKER_NAME}"


def _directory_prefix(key: Optional[str]) -> str:
    return f"{key}{SEPARATOR}" if key else ""


class KeyspaceTranslator:
    """Resolves files and directories for virtual paths."""

    def __init__(self, client: ObjectStoreClient):
        self._client = client

    def is_directory(self, path: str) -> bool:
        key = to_key(path)
        if key is None:
            return True
        page = self._client.list_page(_directory_prefix(key), delimiter=SEPARATOR, max_keys=1)
        return bool(page.keys or page.prefixes)

    def is_file(self, path: str) -> bool:
        return self.stat_file(path) is not None

    def stat_file(self, path: str) -> Optional[ObjectMetadata]:
        key = to_key(path)
        if key is None:
            return None
        try:
            return self._client.head(key)
        except NotFoundError:
            return None

    def mkdir(self, path: str) -> None:
        key = to_key(path)
        if key is None:
            raise ConflictError("the root directory always exists")
        LOGGER.debug("Writing directory marker for %s", path)
        self._client.put(marker_key(key), b"")

    def rmdir(self, path: str) -> None:
        """Remove the directory marker; fails if anything else lives under it."""

        key = to_key(path)
        if key is None:
            raise ConflictError("the root directory cannot be removed")
        marker = marker_key(key)
        found = False
        for page in self._client.list(_directory_prefix(key), delimiter=None):
            for object_key in page.keys:
                if object_key != marker:
                    raise ConflictError(f"directory {path!r} is not empty")
                found = True
        if not found:
            raise NotFoundError(f"directory {path!r} does not exist")
        try:
            self._client.delete(marker)
        except NotFoundError:
            LOGGER.debug("Marker for %s vanished before removal", path)

    def list(self, path: str) -> Iterator[DirectoryEntry]:
        """Yield ``.``, ``..`` and then every child of ``path`` in name order."""

        prefix = _directory_prefix(to_key(path))
        directories: set[str] = set()
        files: dict[str, ObjectMetadata] = {}
        for page in self._client.list(prefix, delimiter=SEPARATOR):
            for common_prefix in page.prefixes:
                name = common_prefix[len(prefix):].rstrip(SEPARATOR)
                if name:
                    directories.add(name)
            for metadata in page.objects:
                name = metadata.key[len(prefix):]
                if not name or name == MARKER_NAME:
                    continue
                files[name] = metadata

        yield DirectoryEntry(".", is_directory=True)
        yield DirectoryEntry("..", is_directory=True)
        for name in sorted(directories | set(files)):
            if name in directories:
                yield DirectoryEntry(name, is_directory=True)
            else:
                yield DirectoryEntry(name, is_directory=False, metadata=files[name])
