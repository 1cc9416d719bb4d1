from __future__ import annotations
"""Mount settings persistence helpers."""

from dataclasses import asdict, dataclass
import json
from pathlib import Path

MIB = 1024 * 1024


@dataclass
class MountSettings:
    """Simple container for persistent mount settings."""

    max_object_size: int = 64 * MIB
    max_response_bytes: int = 64 * MIB
    list_page_size: int = 1000
    request_timeout: int = 60
    allow_other: bool = False


def _positive_int(value, default: int, *, maximum: int | None = None) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if isinstance(value, bool) or number <= 0:
        return default
    if maximum is not None:
        number = min(number, maximum)
    return number


class SettingsStorage:
    """JSON-backed persistence for :class:`MountSettings`."""

    def __init__(self, storage_path: str | Path | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".pys3fs_settings.json"
        self._path = Path(storage_path)

    def load(self) -> MountSettings:
        if not self._path.exists():
            return MountSettings()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return MountSettings()
        if not isinstance(data, dict):
            return MountSettings()

        defaults = MountSettings()
        allow_other = data.get("allow_other", defaults.allow_other)
        return MountSettings(
            max_object_size=_positive_int(data.get("max_object_size"), defaults.max_object_size),
            max_response_bytes=_positive_int(data.get("max_response_bytes"), defaults.max_response_bytes),
            list_page_size=_positive_int(data.get("list_page_size"), defaults.list_page_size, maximum=1000),
            request_timeout=_positive_int(data.get("request_timeout"), defaults.request_timeout),
            allow_other=allow_other if isinstance(allow_other, bool) else defaults.allow_other,
        )

    def save(self, settings: MountSettings) -> None:
        payload = asdict(settings)
        for name in ("max_object_size", "max_response_bytes", "request_timeout"):
            payload[name] = max(int(payload[name]), 1)
        payload["list_page_size"] = min(max(int(settings.list_page_size), 1), 1000)
        payload["allow_other"] = bool(settings.allow_other)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError:
            # Persist best-effort; ignore filesystem issues.
            return
