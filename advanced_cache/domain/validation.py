from __future__ import annotations

from typing import Any, Optional

from .constraints import MAX_KEY_LENGTH


def validate_key(key: str) -> None:
    if not isinstance(key, str):
        raise TypeError("Key must be a string")
    if not key:
        raise ValueError("Key cannot be empty")
    if len(key) > MAX_KEY_LENGTH:
        raise ValueError(f"Key is too long (max {MAX_KEY_LENGTH})")


def validate_ttl(ttl_ms: Any) -> Optional[int]:
    """Normalize a caller supplied TTL; None means "use the cache default"."""
    if ttl_ms is None:
        return None
    if isinstance(ttl_ms, bool) or not isinstance(ttl_ms, int):
        raise TypeError("ttl_ms must be an integer")
    if ttl_ms < 0:
        raise ValueError("ttl_ms must be >= 0")
    return ttl_ms
