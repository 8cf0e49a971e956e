from __future__ import annotations

from dataclasses import dataclass
from numbers import Real
from typing import Any, Mapping, Optional


@dataclass
class CacheEntry:
    data: Any
    timestamp: float
    ttl: float
    hits: int = 0

    def is_expired(self, now: float) -> bool:
        return (now - self.timestamp) > self.ttl

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "timestamp": self.timestamp,
            "ttl": self.ttl,
            "hits": self.hits,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["CacheEntry"]:
        """
        Rebuild an entry from a persisted snapshot record.

        Snapshots carry no version field, so anything that does not look like
        an entry is treated as absent instead of raising. A missing `hits`
        counter reads as 0 and unknown fields are ignored.
        """
        if not isinstance(raw, Mapping) or "data" not in raw:
            return None

        timestamp = raw.get("timestamp")
        ttl = raw.get("ttl")
        if not _is_number(timestamp) or not _is_number(ttl):
            return None

        hits = raw.get("hits", 0)
        if not isinstance(hits, int) or isinstance(hits, bool) or hits < 0:
            hits = 0

        return cls(data=raw["data"], timestamp=timestamp, ttl=ttl, hits=hits)


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)
