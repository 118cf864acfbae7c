"""
Response Sanitizer

Turns raw AI completion text into parseable JSON and exposes it through a
typed, key-normalized view. Nothing in this module raises on bad input:
callers always get a value (possibly an empty view) and decide themselves
whether the result is usable.
"""

import json
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

_LEADING_FENCE_RE = re.compile(r"^\s*```[\w-]*\s*")
_TRAILING_FENCE_RE = re.compile(r"\s*```\s*$")
_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_CLOSERS = {"{": "}", "[": "]"}


def clean_json_response(raw: Optional[str]) -> str:
    """
    Extract the JSON payload from a completion.

    Strips an enclosing markdown fence and outer backticks (backticks inside
    the payload are kept), then slices from the first opening brace/bracket to
    the last matching closer. If that slice does not decode, the text is scanned
    for the first decodable object or array.

    Returns:
        JSON text, or "{}" when nothing recognizable is found
    """
    if not raw:
        return "{}"

    text = _TRAILING_FENCE_RE.sub("", _LEADING_FENCE_RE.sub("", raw)).strip().strip("`").strip()
    if not text:
        return "{}"

    starts = [pos for pos in (text.find("{"), text.find("[")) if pos >= 0]
    if not starts:
        return "{}"

    start = min(starts)
    end = text.rfind(_CLOSERS[text[start]])
    if end > start:
        candidate = text[start:end + 1]
        try:
            json.loads(candidate)
            return candidate
        except ValueError:
            pass

    decoder = json.JSONDecoder()
    for index, char in enumerate(text):
        if char not in _CLOSERS:
            continue
        try:
            _, consumed = decoder.raw_decode(text, index)
        except ValueError:
            continue
        return text[index:consumed]

    logger.debug("No decodable JSON found in completion (%d chars)", len(raw))
    return "{}"


def to_snake_case(key: str) -> str:
    """Collapse PascalCase/camelCase/kebab-case keys to snake_case"""
    key = key.strip().replace("-", "_").replace(" ", "_")
    return _CAMEL_BOUNDARY_RE.sub("_", key).lower()


def normalize_keys(value: Any) -> Any:
    """Recursively rewrite every mapping key to snake_case"""
    if isinstance(value, dict):
        return {to_snake_case(str(k)): normalize_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [normalize_keys(item) for item in value]
    return value


class JsonView:
    """
    Read-only, forgiving accessor over a decoded JSON value.

    Every getter returns the caller's default when the field is missing or of
    an unexpected type. Lookups accept any key casing.
    """

    def __init__(self, data: Any = None):
        self._data = data if data is not None else {}

    @property
    def raw(self) -> Any:
        return self._data

    @property
    def is_empty(self) -> bool:
        return not self._data

    def _lookup(self, key: str) -> Any:
        if not isinstance(self._data, dict):
            return None
        return self._data.get(to_snake_case(key))

    def has(self, key: str) -> bool:
        return self._lookup(key) is not None

    def get_str(self, key: str, default: str = "") -> str:
        value = self._lookup(key)
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return default

    def get_int(self, key: str, default: int = 0) -> int:
        value = self._lookup(key)
        if isinstance(value, bool):
            return default
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            try:
                value = float(value.strip())
            except ValueError:
                return default
        if isinstance(value, float):
            if not math.isfinite(value):
                return default
            return int(round(value))
        return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self._lookup(key)
        if isinstance(value, bool):
            return default
        if isinstance(value, str):
            try:
                value = float(value.strip())
            except ValueError:
                return default
        if isinstance(value, int):
            return float(value)
        if isinstance(value, float) and math.isfinite(value):
            return value
        return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._lookup(key)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ("true", "yes", "1"):
                return True
            if lowered in ("false", "no", "0"):
                return False
        return default

    def get_list(self, key: str) -> List[Any]:
        value = self._lookup(key)
        return list(value) if isinstance(value, list) else []

    def get_str_list(self, key: str) -> List[str]:
        return [item.strip() for item in self.get_list(key) if isinstance(item, str) and item.strip()]

    def get_view(self, key: str) -> "JsonView":
        value = self._lookup(key)
        return JsonView(value if isinstance(value, dict) else {})

    def get_views(self, key: Optional[str] = None) -> List["JsonView"]:
        """Views over every object in a list field (or over this view, when it is a list)"""
        items = self._data if key is None and isinstance(self._data, list) else self.get_list(key or "")
        return [JsonView(item) for item in items if isinstance(item, dict)]

    def get_datetime(self, key: str, default: Optional[datetime] = None) -> Optional[datetime]:
        value = self._lookup(key)
        if not isinstance(value, str) or not value.strip():
            return default
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return default
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    def __repr__(self) -> str:
        return f"JsonView({type(self._data).__name__})"


def parse_json_response(raw: Optional[str]) -> JsonView:
    """Sanitize and decode a completion into a snake_case JsonView; never raises"""
    cleaned = clean_json_response(raw)
    try:
        data = json.loads(cleaned)
    except ValueError:
        logger.debug("Sanitized completion failed to decode")
        return JsonView({})
    return JsonView(normalize_keys(data))
