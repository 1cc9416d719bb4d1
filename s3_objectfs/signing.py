from __future__ import annotations
"""AWS Signature Version 4 request signing for S3."""
from datetime import datetime, timezone
import hashlib
import hmac
import logging
import threading
from typing import Callable, Mapping, Optional
from urllib.parse import quote

from .errors import SigningError
from .models import Credentials, SigningKeyChain

LOGGER = logging.getLogger(__name__)

ALGORITHM = "AWS4-HMAC-SHA256"
SERVICE = "s3"
TERMINATOR = "aws4_request"
EMPTY_PAYLOAD_HASH = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"


def payload_hash(body: Optional[bytes]) -> str:
    if not body:
        return EMPTY_PAYLOAD_HASH
    return hashlib.sha256(body).hexdigest()


def _hmac(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


def _uri_encode(value: str, *, safe: str) -> str:
    # quote() already leaves the RFC 3986 unreserved characters alone.
    return quote(value, safe=safe)


def canonical_uri(path: str) -> str:
    if not path:
        return "/"
    return _uri_encode(path, safe="/")


def canonical_query_string(query_params: Mapping[str, str] | None) -> str:
    if not query_params:
        return ""
    encoded = sorted(
        (_uri_encode(str(name), safe=""), _uri_encode(str(value), safe=""))
        for name, value in query_params.items()
    )
    return "&".join(f"{name}={value}" for name, value in encoded)


def _normalize_headers(headers: Mapping[str, str]) -> list[tuple[str, str]]:
    normalized: dict[str, str] = {}
    for name, value in headers.items():
        lowered = name.strip().lower()
        collapsed = " ".join(str(value).split())
        if lowered in normalized:
            normalized[lowered] = f"{normalized[lowered]},{collapsed}"
        else:
            normalized[lowered] = collapsed
    return sorted(normalized.items())


def canonical_request(
    method: str,
    path: str,
    query_params: Mapping[str, str] | None,
    headers: Mapping[str, str],
    payload_hash_hex: str,
) -> tuple[str, str]:
    """Return ``(canonical_request, signed_header_names)``."""

    normalized = _normalize_headers(headers)
    canonical_headers = "".join(f"{name}:{value}\n" for name, value in normalized)
    signed_headers = ";".join(name for name, _ in normalized)
    request = "\n".join(
        [
            method.upper(),
            canonical_uri(path),
            canonical_query_string(query_params),
            canonical_headers,
            signed_headers,
            payload_hash_hex,
        ]
    )
    return request, signed_headers


def credential_scope(date: str, region: str) -> str:
    return f"{date}/{region}/{SERVICE}/{TERMINATOR}"


def string_to_sign(amz_date: str, scope: str, canonical: str) -> str:
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{ALGORITHM}\n{amz_date}\n{scope}\n{digest}"


def derive_key_chain(secret_access_key: str, date: str, region: str) -> SigningKeyChain:
    date_key = _hmac(f"AWS4{secret_access_key}".encode("utf-8"), date)
    region_key = _hmac(date_key, region)
    service_key = _hmac(region_key, SERVICE)
    signing_key = _hmac(service_key, TERMINATOR)
    return SigningKeyChain(
        date=date,
        region=region,
        date_key=date_key,
        region_key=region_key,
        service_key=service_key,
        signing_key=signing_key,
    )


def format_amz_date(timestamp: datetime) -> str:
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)
    return timestamp.strftime(AMZ_DATE_FORMAT)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RequestSigner:
    """Computes SigV4 signatures and caches the per-day signing keys.

    The cache is keyed by (secret, date, region). Keys for a date are
    derived outside the lock, so two threads crossing midnight together may
    both derive them; they produce identical values and the last write wins.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or _utcnow
        self._lock = threading.Lock()
        self._key_cache: dict[tuple[str, str, str], SigningKeyChain] = {}

    def now(self) -> datetime:
        """Read the clock, failing with :class:`SigningError`."""

        try:
            value = self._clock()
            if not isinstance(value, datetime):
                raise TypeError(f"clock returned {type(value).__name__}")
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)
        except (OSError, OverflowError, TypeError, ValueError) as exc:
            raise SigningError(f"failed to read the current time: {exc}") from exc

    def key_chain(self, credentials: Credentials, date: str) -> SigningKeyChain:
        cache_key = (credentials.secret_access_key, date, credentials.region)
        with self._lock:
            cached = self._key_cache.get(cache_key)
        if cached is not None:
            return cached

        LOGGER.debug("Deriving signing keys for %s/%s", date, credentials.region)
        chain = derive_key_chain(credentials.secret_access_key, date, credentials.region)
        with self._lock:
            stale = [key for key in self._key_cache if key[1] != date]
            for key in stale:
                del self._key_cache[key]
            self._key_cache[cache_key] = chain
        return chain

    def sign(
        self,
        method: str,
        path: str,
        query_params: Mapping[str, str] | None,
        headers: Mapping[str, str],
        payload_hash_hex: str,
        credentials: Credentials,
        timestamp: datetime | str,
    ) -> tuple[str, str]:
        """Return ``(signature_hex, signed_header_names)`` for the request."""

        if credentials is None:
            raise SigningError("no credentials configured")
        credentials.validate()
        amz_date = timestamp if isinstance(timestamp, str) else format_amz_date(timestamp)
        if len(amz_date) != 16 or amz_date[8] != "T" or not amz_date.endswith("Z"):
            raise SigningError(f"malformed request timestamp: {amz_date!r}")
        date = amz_date[:8]

        canonical, signed_headers = canonical_request(
            method, path, query_params, headers, payload_hash_hex
        )
        scope = credential_scope(date, credentials.region)
        to_sign = string_to_sign(amz_date, scope, canonical)
        chain = self.key_chain(credentials, date)
        signature = hmac.new(chain.signing_key, to_sign.encode("utf-8"), hashlib.sha256).hexdigest()
        return signature, signed_headers

    def authorization_header(
        self,
        credentials: Credentials,
        amz_date: str,
        signature: str,
        signed_headers: str,
    ) -> str:
        scope = credential_scope(amz_date[:8], credentials.region)
        return (
            f"{ALGORITHM} Credential={credentials.access_key_id}/{scope}, "
            f"SignedHeaders={signed_headers}, Signature={signature}"
        )
