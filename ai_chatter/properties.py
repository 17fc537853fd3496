"""
Property store: flat string-to-string mapping plus a typed adapter.

The store itself is an external collaborator. Two implementations ship
with the package: an in-memory one (tests, local runs) and a JSON file
one for a single-process deployment. Both can enforce a per-value size
limit, which is how the history ledger learns it must shrink.
"""

import json
import logging
import os
import tempfile
from typing import Any, Dict, List, Optional, Protocol

from .errors import ChatError, ErrorKind

logger = logging.getLogger(__name__)

# Keys starting with this prefix are owned by the bot itself
INTERNAL_PREFIX = "_"

DEFAULT_MAX_VALUE_SIZE = 9 * 1024


class PropertyStoreError(Exception):
    """Raised by a property store when an operation fails."""


class PropertyValueTooLargeError(PropertyStoreError):
    """Raised when a value exceeds the store's per-value size limit."""


class PropertyStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def list_keys(self) -> List[str]: ...


class InMemoryPropertyStore:
    """Dict-backed store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None, max_value_size: Optional[int] = None):
        self.values: Dict[str, str] = dict(initial or {})
        self.max_value_size = max_value_size

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        _check_size(key, value, self.max_value_size)
        self.values[key] = value

    def delete(self, key: str) -> None:
        self.values.pop(key, None)

    def list_keys(self) -> List[str]:
        return list(self.values)


class JsonFilePropertyStore:
    """Store persisted as a single JSON object, rewritten on every change."""

    def __init__(self, path: str, max_value_size: Optional[int] = DEFAULT_MAX_VALUE_SIZE):
        self.path = path
        self.max_value_size = max_value_size

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        _check_size(key, value, self.max_value_size)
        values = self._load()
        values[key] = value
        self._write(values)

    def delete(self, key: str) -> None:
        values = self._load()
        if values.pop(key, None) is not None:
            self._write(values)

    def list_keys(self) -> List[str]:
        return list(self._load())

    def _load(self) -> Dict[str, str]:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            raise PropertyStoreError(f"Failed to read properties from {self.path}") from e
        if not isinstance(data, dict):
            raise PropertyStoreError(f"Properties file is not a JSON object: {self.path}")
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, values: Dict[str, str]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(values, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PropertyStoreError(f"Failed to write properties to {self.path}") from e


def _check_size(key: str, value: str, max_value_size: Optional[int]) -> None:
    if max_value_size is not None and len(value.encode("utf-8")) > max_value_size:
        raise PropertyValueTooLargeError(
            f"Value for {key} exceeds {max_value_size} bytes"
        )


class Properties:
    """
    Typed accessors over a property store.

    Values read are cached for the lifetime of this object, which is one
    inbound event. Writes go through to the store and update the cache.
    """

    def __init__(self, store: PropertyStore):
        self.store = store
        self._cache: Dict[str, Optional[str]] = {}

    def get_string(self, key: str) -> Optional[str]:
        if key not in self._cache:
            self._cache[key] = self.store.get(key)
        return self._cache[key]

    def get_number(self, key: str) -> Optional[float]:
        value = self.get_string(key)
        if value is None or not value.strip():
            return None
        try:
            return float(value)
        except ValueError as e:
            raise ChatError(
                ErrorKind.CONFIGURATION, f"Property {key} is not a number: {value!r}", e
            )

    def get_boolean(self, key: str) -> Optional[bool]:
        value = self.get_string(key)
        if value is None or not value.strip():
            return None
        normalized = value.strip().lower()
        if normalized == "true":
            return True
        if normalized == "false":
            return False
        raise ChatError(ErrorKind.CONFIGURATION, f"Property {key} is not a boolean: {value!r}")

    def get_json(self, key: str) -> Any:
        value = self.get_string(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except ValueError as e:
            raise ChatError(ErrorKind.CONFIGURATION, f"Property {key} is not valid JSON", e)

    def set_string(self, key: str, value: str) -> None:
        self.store.set(key, value)
        self._cache[key] = value

    def set_json(self, key: str, value: Any) -> None:
        self.set_string(key, json.dumps(value, separators=(",", ":")))

    def delete(self, key: str) -> bool:
        """Delete a property. Returns False when it did not exist."""
        if self.get_string(key) is None:
            return False
        self.store.delete(key)
        self._cache[key] = None
        return True

    def keys(self) -> List[str]:
        return self.store.list_keys()

    def keys_with_prefix(self, prefix: str) -> List[str]:
        return [k for k in self.keys() if k.startswith(prefix)]

    def forget(self, key: str) -> None:
        """Drop a cached value so the next read goes to the store."""
        self._cache.pop(key, None)
