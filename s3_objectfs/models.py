from __future__ import annotations
"""Data models shared by the signer, the store client and the dispatcher."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .errors import SigningError

MARKER_NAME = ".keep"


@dataclass(frozen=True)
class Credentials:
    """Access key pair plus the region requests are scoped to."""

    access_key_id: str
    secret_access_key: str
    region: str

    def validate(self) -> None:
        for name in ("access_key_id", "secret_access_key", "region"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise SigningError(f"credentials are missing {name}")
            if any(ch.isspace() or ord(ch) < 0x20 for ch in value):
                raise SigningError(f"credentials field {name} is malformed")

    def __repr__(self) -> str:
        return f"Credentials(access_key_id={self.access_key_id!r}, region={self.region!r})"


@dataclass(frozen=True)
class ObjectMetadata:
    """Metadata about a single stored object, as reported by the store."""

    key: str
    size: int = 0
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None


@dataclass
class ObjectPage:
    """Represents a single page of a ListObjectsV2 response."""

    number: int
    keys: list[str] = field(default_factory=list)
    prefixes: list[str] = field(default_factory=list)
    objects: list[ObjectMetadata] = field(default_factory=list)
    continuation_token: Optional[str] = None


@dataclass(frozen=True)
class DirectoryEntry:
    """One name inside a virtual directory."""

    name: str
    is_directory: bool
    metadata: Optional[ObjectMetadata] = None


@dataclass(frozen=True)
class SigningKeyChain:
    """Derived SigV4 keys; only valid for ``date`` in ``region``."""

    date: str
    region: str
    date_key: bytes
    region_key: bytes
    service_key: bytes
    signing_key: bytes


@dataclass(frozen=True)
class BucketLocation:
    """Where a bucket lives and how to address it."""

    bucket: str
    endpoint_url: Optional[str] = None


def parse_bucket_uri(bucket_uri: str) -> str:
    """Return the bucket name from an ``s3://bucket`` URI."""

    scheme, sep, rest = bucket_uri.partition("://")
    if not sep or scheme.lower() != "s3":
        raise ValueError(f"failed to parse provider of: {bucket_uri}")
    bucket = rest.strip("/")
    if not bucket or "/" in bucket:
        raise ValueError(f"failed to parse bucket of: {bucket_uri}")
    return bucket
