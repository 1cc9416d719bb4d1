from __future__ import annotations
"""Signed S3 REST operations over a pluggable transport."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import lru_cache
import logging
from typing import Iterator, Mapping, Optional
from urllib.parse import urlsplit

from botocore.awsrequest import AWSRequest, HeadersDict
from botocore.exceptions import BotoCoreError
from botocore.httpsession import URLLib3Session
from botocore.parsers import ResponseParserError, create_parser
from botocore.session import get_session
import urllib3

from .errors import (
    ConflictError,
    NotFoundError,
    ObjectTooLargeError,
    ProtocolError,
    TransientError,
    TransportError,
)
from .models import BucketLocation, Credentials, ObjectMetadata, ObjectPage
from .signing import RequestSigner, canonical_query_string, canonical_uri, format_amz_date, payload_hash

LOGGER = logging.getLogger(__name__)

PAGE_SIZE = 1000
DEFAULT_MAX_OBJECT_SIZE = 64 * 1024 * 1024
DEFAULT_TIMEOUT = 60
READ_CHUNK_SIZE = 64 * 1024
SUCCESS_STATUSES = {200, 204, 206}
RANGE_NOT_SATISFIABLE = 416


@dataclass
class HttpResponse:
    """Status, headers and fully-read body of one store response."""

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""


class Transport(ABC):
    """Sends one HTTP request and returns the response."""

    @abstractmethod
    def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: bytes,
        max_body: int,
    ) -> HttpResponse:
        """Send the request; raise :class:`TransportError` on I/O failure."""


def read_bounded(stream, max_body: int, chunk_size: int = READ_CHUNK_SIZE) -> bytes:
    """Read ``stream`` to the end, refusing to buffer more than ``max_body``."""

    chunks: list[bytes] = []
    received = 0
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        received += len(chunk)
        if received > max_body:
            raise ObjectTooLargeError(f"response body exceeds {max_body} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


class BotocoreTransport(Transport):
    """HTTPS transport built on botocore's pooled urllib3 session."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, max_pool_connections: int = 10, verify: bool = True):
        self._session = URLLib3Session(
            verify=verify,
            timeout=timeout,
            max_pool_connections=max_pool_connections,
        )

    def send(self, method, url, headers, body, max_body):
        request = AWSRequest(method=method, url=url, headers=dict(headers), data=body, stream_output=True)
        try:
            response = self._session.send(request.prepare())
        except BotoCoreError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        raw = response.raw
        try:
            data = read_bounded(raw, max_body)
        except ObjectTooLargeError:
            raw.close()
            raise
        except (BotoCoreError, urllib3.exceptions.HTTPError, OSError) as exc:
            raw.close()
            raise TransportError(f"{method} {url} failed while reading: {exc}") from exc
        finally:
            raw.release_conn()
        return HttpResponse(status=response.status_code, headers=dict(response.headers.items()), body=data)

    def close(self) -> None:
        self._session.close()


@lru_cache(maxsize=None)
def _output_shape(operation_name: str):
    service_model = get_session().get_service_model("s3")
    return service_model.operation_model(operation_name).output_shape


def _parse(operation_name: str, response: HttpResponse) -> dict:
    headers = HeadersDict()
    for name, value in response.headers.items():
        headers[name] = value
    parser = create_parser("rest-xml")
    try:
        return parser.parse(
            {"status_code": response.status, "headers": headers, "body": response.body},
            _output_shape(operation_name),
        )
    except ResponseParserError as exc:
        raise ProtocolError(
            f"{operation_name} returned an unparseable body: {exc}",
            status=response.status,
            body=response.body,
        ) from exc


def _strip_etag(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip('"')


class ObjectStoreClient:
    """Issues signed HeadObject/GetObject/PutObject/DeleteObject/ListObjectsV2 calls."""

    def __init__(
        self,
        location: BucketLocation,
        credentials: Credentials,
        *,
        transport: Transport | None = None,
        signer: RequestSigner | None = None,
        max_object_size: int = DEFAULT_MAX_OBJECT_SIZE,
        max_response_bytes: int = DEFAULT_MAX_OBJECT_SIZE,
        page_size: int = PAGE_SIZE,
    ):
        self._location = location
        self._credentials = credentials
        self._transport = transport or BotocoreTransport()
        self._signer = signer or RequestSigner()
        self._max_object_size = max_object_size
        self._max_response_bytes = max_response_bytes
        self._page_size = max(1, min(int(page_size), PAGE_SIZE))

    @property
    def bucket(self) -> str:
        return self._location.bucket

    @property
    def max_object_size(self) -> int:
        return self._max_object_size

    def head(self, key: str) -> ObjectMetadata:
        """Fetch metadata about a single object."""

        response = self._request("HEAD", key)
        self._check_status(response, "HeadObject", key)
        parsed = _parse("HeadObject", response)
        return ObjectMetadata(
            key=key,
            size=int(parsed.get("ContentLength") or 0),
            last_modified=parsed.get("LastModified"),
            etag=_strip_etag(parsed.get("ETag")),
        )

    def get_range(self, key: str, offset: int, length: int) -> bytes:
        """Return up to ``length`` bytes starting at ``offset``.

        Fewer bytes than requested means the end of the object was reached.
        """

        if offset < 0 or length < 0:
            raise ValueError("offset and length must not be negative")
        if length == 0:
            return b""
        if length > self._max_response_bytes:
            raise ObjectTooLargeError(
                f"range of {length} bytes exceeds the {self._max_response_bytes} byte ceiling"
            )

        headers = {"Range": f"bytes={offset}-{offset + length - 1}"}
        response = self._request("GET", key, headers=headers)
        if response.status == RANGE_NOT_SATISFIABLE:
            return b""
        self._check_status(response, "GetObject", key)
        data = response.body
        if response.status == 200:
            # Servers that ignore Range return the whole object.
            data = data[offset:]
        return data[:length]

    def put(self, key: str, data: bytes) -> None:
        """Overwrite the whole object stored under ``key``."""

        if len(data) > self._max_object_size:
            raise ObjectTooLargeError(
                f"object of {len(data)} bytes exceeds the {self._max_object_size} byte ceiling"
            )
        response = self._request("PUT", key, body=bytes(data))
        self._check_status(response, "PutObject", key)

    def delete(self, key: str) -> None:
        response = self._request("DELETE", key)
        self._check_status(response, "DeleteObject", key)

    def list_page(
        self,
        prefix: str = "",
        *,
        delimiter: str | None = "/",
        continuation_token: str | None = None,
        max_keys: int | None = None,
        number: int = 1,
    ) -> ObjectPage:
        """Return a single ListObjectsV2 page."""

        list_params = {
            "list-type": "2",
            "prefix": prefix,
            "max-keys": str(max_keys or self._page_size),
        }
        if delimiter:
            list_params["delimiter"] = delimiter
        if continuation_token:
            list_params["continuation-token"] = continuation_token

        response = self._request("GET", None, query_params=list_params)
        self._check_status(response, "ListObjectsV2", prefix)
        parsed = _parse("ListObjectsV2", response)

        objects = [
            ObjectMetadata(
                key=obj["Key"],
                size=int(obj.get("Size") or 0),
                last_modified=obj.get("LastModified"),
                etag=_strip_etag(obj.get("ETag")),
            )
            for obj in parsed.get("Contents", [])
        ]
        prefixes = [common["Prefix"] for common in parsed.get("CommonPrefixes", [])]
        next_token = None
        if parsed.get("IsTruncated", False):
            next_token = parsed.get("NextContinuationToken")
            if not next_token:
                raise ProtocolError(
                    "ListObjectsV2 reported a truncated page without a continuation token",
                    status=response.status,
                    body=response.body,
                )
        return ObjectPage(
            number=number,
            keys=[obj.key for obj in objects],
            prefixes=prefixes,
            objects=objects,
            continuation_token=next_token,
        )

    def list(
        self,
        prefix: str = "",
        delimiter: str | None = "/",
        *,
        max_keys: int | None = None,
    ) -> Iterator[ObjectPage]:
        """Yield listing pages, following continuation tokens until exhausted."""

        request_token: str | None = None
        seen_tokens: set[str] = set()
        page_number = 1
        while True:
            page = self.list_page(
                prefix,
                delimiter=delimiter,
                continuation_token=request_token,
                max_keys=max_keys,
                number=page_number,
            )
            yield page
            request_token = page.continuation_token
            if not request_token:
                return
            if request_token in seen_tokens:
                raise ProtocolError(f"ListObjectsV2 repeated continuation token {request_token!r}")
            seen_tokens.add(request_token)
            page_number += 1

    def _target(self, key: str | None) -> tuple[str, str, str]:
        """Return ``(scheme, host, path)`` for ``key`` (``None`` is the bucket)."""

        bucket = self._location.bucket
        suffix = "/" + (key or "")
        endpoint_url = self._location.endpoint_url
        if endpoint_url:
            parts = urlsplit(endpoint_url)
            base_path = parts.path.rstrip("/")
            return parts.scheme or "https", parts.netloc, f"{base_path}/{bucket}{suffix}"
        host = f"{bucket}.s3.{self._credentials.region}.amazonaws.com"
        return "https", host, suffix

    def _request(
        self,
        method: str,
        key: str | None,
        *,
        query_params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        body: bytes = b"",
    ) -> HttpResponse:
        scheme, host, path = self._target(key)
        timestamp = self._signer.now()
        amz_date = format_amz_date(timestamp)
        content_hash = payload_hash(body)

        request_headers = {
            "Host": host,
            "x-amz-content-sha256": content_hash,
            "x-amz-date": amz_date,
        }
        request_headers.update(headers or {})
        signature, signed_headers = self._signer.sign(
            method,
            path,
            query_params,
            request_headers,
            content_hash,
            self._credentials,
            amz_date,
        )
        request_headers["Authorization"] = self._signer.authorization_header(
            self._credentials, amz_date, signature, signed_headers
        )

        url = f"{scheme}://{host}{canonical_uri(path)}"
        query = canonical_query_string(query_params)
        if query:
            url = f"{url}?{query}"

        LOGGER.debug("%s %s (%d bytes)", method, url, len(body))
        return self._transport.send(method, url, request_headers, body, self._max_response_bytes)

    def _check_status(self, response: HttpResponse, operation: str, key: str) -> None:
        status = response.status
        if status in SUCCESS_STATUSES:
            return
        if status == 404:
            raise NotFoundError(f"{operation}: {key!r} not found")
        if status == 409:
            raise ConflictError(f"{operation}: conflict on {key!r}")
        if 500 <= status < 600:
            LOGGER.warning("%s on %r failed with transient status %s", operation, key, status)
            raise TransientError(f"{operation}: store returned {status}", status=status)
        LOGGER.warning("%s on %r returned unexpected status %s", operation, key, status)
        raise ProtocolError(
            f"{operation}: unexpected status {status}",
            status=status,
            body=response.body,
        )
