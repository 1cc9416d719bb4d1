from __future__ import annotations
"""Mount profile models, persistence and credential resolution."""
from dataclasses import dataclass
import json
import logging
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError
import keyring
from keyring.errors import KeyringError

from .errors import SigningError
from .models import BucketLocation, Credentials, parse_bucket_uri

LOGGER = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"


@dataclass
class MountProfile:
    """Represents a saved bucket mount."""

    name: str
    bucket_uri: str
    region: str
    access_key: str
    secret_key: str
    endpoint_url: str = ""

    def location(self) -> BucketLocation:
        return BucketLocation(
            bucket=parse_bucket_uri(self.bucket_uri),
            endpoint_url=self.endpoint_url or None,
        )

    def credentials(self) -> Credentials:
        return Credentials(
            access_key_id=self.access_key,
            secret_access_key=self.secret_key,
            region=self.region or DEFAULT_REGION,
        )


class KeychainStore:
    """Keeps mount profile secret keys in the OS keychain.

    Keychain failures never stop a mount: a secret that cannot be read is
    treated as absent, and one that cannot be written stays in memory only.
    """

    def __init__(self, service_name: str = "pys3fs"):
        self._service_name = service_name

    def _call(self, action, *args):
        try:
            return action(self._service_name, *args)
        except KeyringError as exc:
            LOGGER.debug("keychain %s failed: %s", action.__name__, exc)
            return None

    def lookup(self, profile_name: str) -> str:
        if not profile_name:
            return ""
        return self._call(keyring.get_password, profile_name) or ""

    def store(self, profile: MountProfile) -> None:
        if not profile.name:
            return
        if profile.secret_key:
            self._call(keyring.set_password, profile.name, profile.secret_key)
        else:
            self.forget(profile.name)

    def forget(self, profile_name: str) -> None:
        if profile_name:
            self._call(keyring.delete_password, profile_name)


class ProfileStorage:
    """Simple JSON-backed store for mount profiles."""

    def __init__(self, storage_path: str | Path | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".pys3fs_profiles.json"
        self._path = Path(storage_path)
        self._keychain = KeychainStore()

    def load(self) -> list[MountProfile]:
        data = self._read_data()
        profiles: list[MountProfile] = []
        sanitized: list[dict[str, str]] = []
        saw_plaintext = False
        for entry in data:
            try:
                name = entry["name"]
                bucket_uri = entry["bucket_uri"]
                access_key = entry["access_key"]
            except (KeyError, TypeError):
                continue
            region = entry.get("region") or DEFAULT_REGION
            endpoint_url = entry.get("endpoint_url") or ""
            secret_key = entry.get("secret_key", "")
            profile = MountProfile(
                name=name,
                bucket_uri=bucket_uri,
                region=region,
                access_key=access_key,
                secret_key=secret_key or self._keychain.lookup(name),
                endpoint_url=endpoint_url,
            )
            if secret_key:
                saw_plaintext = True
                self._keychain.store(profile)
            profiles.append(profile)
            sanitized.append(self._public_fields(profile))
        if saw_plaintext:
            self._write_data(sanitized)
        return profiles

    def get(self, name: str) -> MountProfile:
        for profile in self.load():
            if profile.name == name:
                return profile
        raise ValueError(f"Profile '{name}' does not exist")

    def save(self, profiles: list[MountProfile]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = []
        for profile in profiles:
            self._keychain.store(profile)
            data.append(self._public_fields(profile))
        existing_names = {entry.get("name") for entry in self._read_data() if isinstance(entry, dict)}
        current_names = {profile.name for profile in profiles}
        for name in existing_names - current_names:
            if isinstance(name, str) and name:
                self._keychain.forget(name)
        self._write_data(data)

    @staticmethod
    def _public_fields(profile: MountProfile) -> dict[str, str]:
        return {
            "name": profile.name,
            "bucket_uri": profile.bucket_uri,
            "region": profile.region,
            "endpoint_url": profile.endpoint_url,
            "access_key": profile.access_key,
        }

    def _read_data(self) -> list:
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return []
        return data if isinstance(data, list) else []

    def _write_data(self, data: list[dict[str, str]]) -> None:
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def load_shared_credentials(
    profile_name: Optional[str] = None,
    region: Optional[str] = None,
    session_factory=None,
) -> Credentials:
    """Resolve credentials from the environment and the shared AWS files.

    Raises:
        SigningError: when no access key pair can be found.
    """

    factory = session_factory or boto3.session.Session
    try:
        session = factory(profile_name=profile_name, region_name=region)
        resolved = session.get_credentials()
    except BotoCoreError as exc:
        raise SigningError(f"failed to load AWS credentials: {exc}") from exc
    if resolved is None:
        raise SigningError("no AWS credentials found")
    frozen = resolved.get_frozen_credentials()
    credentials = Credentials(
        access_key_id=frozen.access_key or "",
        secret_access_key=frozen.secret_key or "",
        region=region or session.region_name or DEFAULT_REGION,
    )
    credentials.validate()
    return credentials