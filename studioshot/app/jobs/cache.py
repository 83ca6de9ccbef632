"""Processing result cache keyed by image, operation and options."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from ..config import Config

logger = logging.getLogger("studioshot.jobs.cache")


def options_hash(options: Mapping[str, Any]) -> str:
    """Stable digest of an options mapping, independent of key order."""
    encoded = json.dumps(options, sort_keys=True, default=str).encode("utf-8")
    return hashlib.md5(encoded).hexdigest()


def cache_key(image_ref: str, operation: str, opts_hash: str) -> str:
    return hashlib.md5(f"{image_ref}:{operation}:{opts_hash}".encode()).hexdigest()


@dataclass
class CacheEntry:
    key: str
    result_ref: str
    operation: str
    options_hash: str
    expires_at: float
    created_at: float
    last_accessed: float
    hit_count: int = 0


class ResultCache:
    """In-memory cache of finished effect results with expiry and hit counts."""

    def __init__(
        self,
        ttl_seconds: float = Config.CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(
        self, image_ref: str, operation: str, options: Mapping[str, Any]
    ) -> str | None:
        """Return the cached result reference, or None when absent or expired."""
        key = cache_key(image_ref, operation, options_hash(options))
        entry = self._entries.get(key)
        if entry is None:
            return None

        now = self._clock()
        if entry.expires_at <= now:
            del self._entries[key]
            return None

        entry.hit_count += 1
        entry.last_accessed = now
        logger.debug("Cache hit for %s (%d hits)", operation, entry.hit_count)
        return entry.result_ref

    def put(
        self,
        image_ref: str,
        operation: str,
        options: Mapping[str, Any],
        result_ref: str,
    ) -> CacheEntry:
        """Record a finished result, replacing any previous entry."""
        opts_hash = options_hash(options)
        key = cache_key(image_ref, operation, opts_hash)
        now = self._clock()
        entry = CacheEntry(
            key=key,
            result_ref=result_ref,
            operation=operation,
            options_hash=opts_hash,
            expires_at=now + self.ttl_seconds,
            created_at=now,
            last_accessed=now,
        )
        self._entries[key] = entry
        return entry

    def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
