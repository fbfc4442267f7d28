"""
TTL Cache - In-Memory Expiring Key/Value Store

Shields the message hot path from repeated storage lookups. Entries carry an
optional absolute expiry; expired entries are evicted lazily on ``get`` or
eagerly by ``cleanup_expired``.

Structure used by the pipeline:
    guild_id -> {"servers": ServerRecord, "patterns": [...], "webhooks": [...]}
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Mapping, Optional, TypeVar

log = logging.getLogger(__name__)

T = TypeVar('T')


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


# Marks "no ttl argument given" so that an explicit None can mean "never expires".
UNSET: Any = _Unset()


@dataclass
class CacheEntry(Generic[T]):
    """A cached value and its absolute expiry (None = never expires)."""
    value: T
    expires_at: Optional[float]

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at < now


class TTLCache(Generic[T]):
    """
    Generic string-keyed cache with per-entry or default expiration.

    ``size`` counts every stored entry, including expired ones that have not
    been evicted yet.

    Example:
        cache = TTLCache(default_ttl=60)
        cache.set("123", {"servers": record})
        cache.update("123", {"patterns": rules})
        cache.get("123")  # {"servers": record, "patterns": rules}
    """

    def __init__(self, default_ttl: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the cache.

        Args:
            default_ttl: Seconds to keep entries set without an explicit ttl (None = forever)
            clock: Monotonic time source, injectable for tests
        """
        self._entries: Dict[str, CacheEntry[T]] = {}
        self.default_ttl = default_ttl
        self._clock = clock

    def _expires_at(self, ttl: Any) -> Optional[float]:
        resolved = self.default_ttl if ttl is UNSET else ttl
        if resolved is None:
            return None
        return self._clock() + resolved

    def set(self, key: str, value: T, ttl: Any = UNSET) -> None:
        """
        Store a value, replacing any previous one.

        Args:
            key: Cache key
            value: Value to store
            ttl: Seconds to live; None for no expiration; omitted for the default TTL
        """
        self._entries[key] = CacheEntry(value, self._expires_at(ttl))

    def get(self, key: str, default: Optional[T] = None) -> Optional[T]:
        """
        Get a value, evicting it if it has expired.

        Returns:
            The cached value, or default when missing or expired
        """
        entry = self._entries.get(key)
        if entry is None:
            return default

        if entry.is_expired(self._clock()):
            del self._entries[key]
            return default

        return entry.value

    def update(self, key: str, fields: Mapping[str, Any], ttl: Any = UNSET) -> Dict[str, Any]:
        """
        Merge fields into a mapping value in one synchronous step.

        Existing sub-fields that are not in ``fields`` are preserved, so two
        callers filling different sub-fields of the same key never overwrite
        each other. A missing or expired entry starts from an empty mapping.
        The entry's expiry is reset.

        Returns:
            Dict[str, Any]: The merged value now stored under key
        """
        current = self.get(key)
        merged: Dict[str, Any] = dict(current) if isinstance(current, Mapping) else {}
        merged.update(fields)
        self.set(key, merged, ttl)
        return merged

    def delete(self, key: str) -> None:
        """Remove a key if present."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Remove every entry."""
        self._entries.clear()

    def invalidate_matching(self, predicate: Callable[[str, T], bool]) -> int:
        """
        Remove every entry for which predicate(key, value) is true.

        Returns:
            int: Number of entries removed
        """
        doomed = [key for key, entry in self._entries.items() if predicate(key, entry.value)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def cleanup_expired(self) -> int:
        """
        Remove all expired entries regardless of access.

        Returns:
            int: Number of entries removed
        """
        now = self._clock()
        doomed = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in doomed:
            del self._entries[key]
        if doomed:
            log.debug("Evicted %d expired cache entries", len(doomed))
        return len(doomed)

    @property
    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key, UNSET) is not UNSET
