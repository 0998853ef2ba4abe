"""
jobaudit Deterministic Cache

In-memory result cache keyed by what determines a processing result:
document content, template content and engine versions. Identical inputs
always map to the same key, so a hit returns exactly what a recomputation
would produce.

Key features:
- Key = SHA-256 of canonical JSON of {fileHash, templateHash, engineVersions}
- TTL expiry checked lazily on access
- Entry-count and byte-size ceilings with least-recently-accessed eviction
- Hit/miss/eviction statistics
- Thread-safe (RLock); the clock is injectable for tests

Usage:
    cache = DeterministicCache.from_settings(settings)
    components = build_cache_key_components(pdf_bytes, template, settings.engine_versions)
    lookup = cache.lookup(components)
    if not lookup.from_cache:
        cache.store(components, process(pdf_bytes))
"""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional, Union

from .canon import bytes_hash, canonical_json_bytes, content_hash, short_hash
from .config import DEFAULT_ENGINE_VERSIONS, Settings
from .exceptions import CacheError

logger = logging.getLogger(__name__)


DEFAULT_MAX_ENTRIES = 1000
DEFAULT_MAX_SIZE_BYTES = 500 * 1024 * 1024
DEFAULT_TTL = timedelta(hours=24)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Models
# =============================================================================

@dataclass(frozen=True)
class CacheKeyComponents:
    """Everything that determines a processing result."""
    file_hash: str
    template_hash: str
    engine_versions: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_ENGINE_VERSIONS)
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "fileHash": self.file_hash,
            "templateHash": self.template_hash,
            "engineVersions": dict(self.engine_versions),
        }


@dataclass
class CacheEntry:
    cache_key: str
    data: Any
    created_at: datetime
    expires_at: datetime
    last_accessed_at: datetime
    size_bytes: int
    hit_count: int = 0
    components: Optional[CacheKeyComponents] = None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "cacheKey": self.cache_key,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
            "hitCount": self.hit_count,
            "lastAccessedAt": self.last_accessed_at,
            "sizeBytes": self.size_bytes,
            "components": self.components.to_dict() if self.components else None,
        }


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    hit_rate: float
    total_entries: int
    total_size_bytes: int
    evictions: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hitRate": self.hit_rate,
            "totalEntries": self.total_entries,
            "totalSizeBytes": self.total_size_bytes,
            "evictions": self.evictions,
        }


@dataclass(frozen=True)
class CacheLookupResult:
    data: Any
    from_cache: bool
    cache_key: str


# =============================================================================
# Cache
# =============================================================================

class DeterministicCache:
    """
    LRU + TTL cache of processing results.

    Entries are kept in access order: the first entry is always the least
    recently accessed one and is evicted first.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
        ttl: timedelta = DEFAULT_TTL,
        clock: Optional[Clock] = None,
    ) -> None:
        if max_entries <= 0 or max_size_bytes <= 0:
            raise CacheError(
                "Cache ceilings must be positive",
                details={"max_entries": max_entries, "max_size_bytes": max_size_bytes},
            )
        self.max_entries = max_entries
        self.max_size_bytes = max_size_bytes
        self.ttl = ttl
        self._clock = clock or _utcnow
        self._lock = threading.RLock()
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._size_bytes = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @classmethod
    def from_settings(cls, settings: Settings, clock: Optional[Clock] = None) -> "DeterministicCache":
        return cls(
            max_entries=settings.cache_max_entries,
            max_size_bytes=settings.cache_max_size_bytes,
            ttl=timedelta(seconds=settings.cache_ttl_seconds),
            clock=clock,
        )

    @staticmethod
    def generate_key(components: CacheKeyComponents) -> str:
        return content_hash(components.to_dict())

    # -------------------------------------------------------------------------
    # Entry operations
    # -------------------------------------------------------------------------

    def get(self, key: str) -> Optional[CacheEntry]:
        """Entry for key, or None on a miss. Expired entries are dropped here."""
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(now):
                self._remove(key)
                self._misses += 1
                return None
            entry.hit_count += 1
            entry.last_accessed_at = now
            self._entries.move_to_end(key)
            self._hits += 1
            return entry

    def set(self, key: str, data: Any,
            components: Optional[CacheKeyComponents] = None) -> CacheEntry:
        """
        Store data under key, replacing any existing entry.

        Raises:
            CacheError: If the serialized data alone exceeds max_size_bytes
        """
        size = len(canonical_json_bytes(data))
        if size > self.max_size_bytes:
            raise CacheError(
                "Cache entry exceeds the byte ceiling",
                details={"size_bytes": size, "max_size_bytes": self.max_size_bytes},
            )
        with self._lock:
            if key in self._entries:
                self._remove(key)
            while self._entries and (
                len(self._entries) >= self.max_entries
                or self._size_bytes + size > self.max_size_bytes
            ):
                self._evict_oldest()

            now = self._clock()
            entry = CacheEntry(
                cache_key=key,
                data=data,
                created_at=now,
                expires_at=now + self.ttl,
                last_accessed_at=now,
                size_bytes=size,
                components=components,
            )
            self._entries[key] = entry
            self._size_bytes += size
            return entry

    def has(self, key: str) -> bool:
        """Presence check that does not count as a hit or miss."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                self._remove(key)
                return False
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            if key not in self._entries:
                return False
            self._remove(key)
            return True

    def clear(self) -> None:
        """Drop every entry and reset counters; the eviction count survives."""
        with self._lock:
            self._entries.clear()
            self._size_bytes = 0
            self._hits = 0
            self._misses = 0

    def stats(self) -> CacheStats:
        with self._lock:
            total = self._hits + self._misses
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                hit_rate=self._hits / total if total else 0.0,
                total_entries=len(self._entries),
                total_size_bytes=self._size_bytes,
                evictions=self._evictions,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # -------------------------------------------------------------------------
    # Pipeline helpers
    # -------------------------------------------------------------------------

    def lookup(self, components: CacheKeyComponents) -> CacheLookupResult:
        key = self.generate_key(components)
        entry = self.get(key)
        if entry is None:
            logger.debug("Cache miss %s", short_hash(key),
                         extra={"cache_key_short": short_hash(key)})
            return CacheLookupResult(data=None, from_cache=False, cache_key=key)
        logger.debug("Cache hit %s (hits=%d)", short_hash(key), entry.hit_count,
                     extra={"cache_key_short": short_hash(key)})
        return CacheLookupResult(data=entry.data, from_cache=True, cache_key=key)

    def store(self, components: CacheKeyComponents, data: Any) -> CacheEntry:
        key = self.generate_key(components)
        entry = self.set(key, data, components)
        logger.debug("Cached %s (%d bytes)", short_hash(key), entry.size_bytes,
                     extra={"cache_key_short": short_hash(key)})
        return entry

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _remove(self, key: str) -> None:
        entry = self._entries.pop(key)
        self._size_bytes -= entry.size_bytes

    def _evict_oldest(self) -> None:
        key, entry = self._entries.popitem(last=False)
        self._size_bytes -= entry.size_bytes
        self._evictions += 1
        logger.debug("Evicted %s", short_hash(key), extra={"cache_key_short": short_hash(key)})


# =============================================================================
# Key Helpers
# =============================================================================

def compute_file_hash(content: Union[bytes, str]) -> str:
    """SHA-256 of document content; text is hashed as UTF-8."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return bytes_hash(content)


def build_cache_key_components(
    file_content: Union[bytes, str],
    template: Any,
    engine_versions: Optional[Mapping[str, str]] = None,
) -> CacheKeyComponents:
    """
    Key components for a document processed against a template.

    template may be a Template or any canonical-JSON-serializable mapping;
    a Template hashes its normalized to_dict() form.
    """
    return CacheKeyComponents(
        file_hash=compute_file_hash(file_content),
        template_hash=content_hash(template),
        engine_versions=dict(engine_versions or DEFAULT_ENGINE_VERSIONS),
    )
