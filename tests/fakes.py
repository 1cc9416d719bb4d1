from datetime import datetime, timezone
import string

from s3_objectfs.errors import NotFoundError, ObjectTooLargeError
from s3_objectfs.models import ObjectMetadata, ObjectPage

MODIFIED = datetime(2024, 10, 10, tzinfo=timezone.utc)


class FakeObjectStore:
    """In-memory stand-in for ObjectStoreClient with S3 listing semantics."""

    def __init__(self, objects=None, page_size=1000, max_object_size=1024 * 1024, strict_delete=False):
        self.objects = {key: bytes(value) for key, value in (objects or {}).items()}
        self.page_size = page_size
        self.max_object_size = max_object_size
        self.strict_delete = strict_delete
        self.calls = []
        self.list_tokens = []
        self.failures = {}
        self._tokens = {}

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        failure = self.failures.get(name)
        if failure is not None:
            raise failure

    def _metadata(self, key):
        return ObjectMetadata(key=key, size=len(self.objects[key]), last_modified=MODIFIED, etag=f"etag-{key}")

    def head(self, key):
        self._record("head", key)
        if key not in self.objects:
            raise NotFoundError(key)
        return self._metadata(key)

    def get_range(self, key, offset, length):
        self._record("get_range", key, offset, length)
        if key not in self.objects:
            raise NotFoundError(key)
        return self.objects[key][offset:offset + length]

    def put(self, key, data):
        self._record("put", key, bytes(data))
        if len(data) > self.max_object_size:
            raise ObjectTooLargeError(key)
        self.objects[key] = bytes(data)

    def delete(self, key):
        self._record("delete", key)
        if key not in self.objects:
            if self.strict_delete:
                raise NotFoundError(key)
            return
        del self.objects[key]

    def _entries(self, prefix, delimiter):
        entries = {}
        for key in sorted(self.objects):
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix):]
            if delimiter and delimiter in rest:
                common = prefix + rest.split(delimiter, 1)[0] + delimiter
                entries[common] = "prefix"
            else:
                entries[key] = "key"
        return sorted(entries.items())

    def _next_token(self, offset):
        index = len(self._tokens)
        token = string.ascii_uppercase[index] if index < 26 else f"T{index}"
        self._tokens[token] = offset
        return token

    def list_page(self, prefix="", *, delimiter="/", continuation_token=None, max_keys=None, number=1):
        self._record("list_page", prefix, delimiter, continuation_token)
        self.list_tokens.append(continuation_token)
        entries = self._entries(prefix, delimiter)
        start = self._tokens[continuation_token] if continuation_token else 0
        limit = min(max_keys or self.page_size, self.page_size)
        chunk = entries[start:start + limit]
        next_token = None
        if start + limit < len(entries):
            next_token = self._next_token(start + limit)
        objects = [self._metadata(name) for name, kind in chunk if kind == "key"]
        return ObjectPage(
            number=number,
            keys=[obj.key for obj in objects],
            prefixes=[name for name, kind in chunk if kind == "prefix"],
            objects=objects,
            continuation_token=next_token,
        )

    def list(self, prefix="", delimiter="/", *, max_keys=None):
        token = None
        number = 1
        while True:
            page = self.list_page(prefix, delimiter=delimiter, continuation_token=token, max_keys=max_keys, number=number)
            yield page
            token = page.continuation_token
            if not token:
                return
            number += 1
