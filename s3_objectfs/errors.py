"""Error taxonomy for store operations and its POSIX errno mapping."""
import errno
import os
from typing import Optional


class ObjectStoreError(RuntimeError):
    """Base class for failures raised while talking to the object store."""


class SigningError(ObjectStoreError):
    """Raised when a request cannot be signed; no request was sent."""


class TransportError(ObjectStoreError):
    """Raised when the connection, TLS handshake or timeout fails."""


class ProtocolError(ObjectStoreError):
    """Raised for an unexpected status code or an unparseable body."""

    def __init__(self, message: str, *, status: Optional[int] = None, body: bytes = b""):
        super().__init__(message)
        self.status = status
        self.body = body


class NotFoundError(ObjectStoreError):
    """Raised when the requested key does not exist."""


class ConflictError(ObjectStoreError):
    """Raised when the store or a directory check reports a conflict."""


class TransientError(ObjectStoreError):
    """Raised for 5xx responses. Retrying is left to the caller."""

    def __init__(self, message: str, *, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ObjectTooLargeError(ObjectStoreError):
    """Raised when a payload exceeds the configured size ceiling."""


class FilesystemError(OSError):
    """POSIX-shaped failure returned to the filesystem host."""

    def __init__(self, code: int, path: str = ""):
        super().__init__(code, os.strerror(code), path or None)


_ERRNO_MAP = (
    (NotFoundError, errno.ENOENT),
    (ConflictError, errno.ENOTEMPTY),
    (ObjectTooLargeError, errno.ENOMEM),
)


def errno_for(exc: BaseException) -> int:
    for error_type, code in _ERRNO_MAP:
        if isinstance(exc, error_type):
            return code
    return errno.EIO
