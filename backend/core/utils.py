"""
Utility functions for the workflow automation engine.

Includes:
- UTC datetime helpers
- Dot-path lookup into trigger payloads
- JSON-safe serialization of action outputs
"""

from datetime import datetime, timezone
from typing import Any


class _Missing:
    """Sentinel for a dot-path that does not resolve."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


def utc_now() -> datetime:
    """
    Get the current UTC datetime.

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.now(timezone.utc)


def utc_now_naive() -> datetime:
    """Return the current UTC time as a **naive** datetime.

    Timestamp columns are ``TIMESTAMP WITHOUT TIME ZONE``, so all stored
    values and comparisons use naive UTC.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_nested_value(data: Any, path: str) -> Any:
    """Resolve a dot-separated path like ``"user.age"`` inside nested data.

    Dict keys are looked up by name, list elements by integer index.
    Returns ``MISSING`` when any segment does not resolve.

    Example:
        get_nested_value({"user": {"age": 25}}, "user.age") -> 25
    """
    if not isinstance(path, str) or not path:
        return MISSING

    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return MISSING
        else:
            return MISSING
    return current


def safe_serialize(obj: Any, depth: int = 0) -> Any:
    """Recursively ensure all values are JSON-serializable."""
    if depth > 10:
        return str(obj)
    if obj is None or isinstance(obj, (bool, int, float)):
        return obj
    if isinstance(obj, str):
        return obj[:10000] if len(obj) > 10000 else obj
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {str(k): safe_serialize(v, depth + 1) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [safe_serialize(v, depth + 1) for v in obj]
    return str(obj)
