"""
Sigma Business Automation
Generation Response Cache.

In-memory TTL lookaside used only by the Generation Gateway. Entries are
keyed by operation + semantic inputs + user, expire after a fixed TTL
(15 minutes for business plans and marketing strategies) and are never
mutated by the lifecycle layer. Stale-but-bounded reads are acceptable.

Skip cache for:
    - Free-form / conversational generation (``custom``, ``conversation*``)
"""

import logging
from datetime import datetime, timedelta, timezone
from threading import Lock

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 900  # 15 minutes
MAX_MEMORY_ENTRIES = 500

# Operations that should never be cached (context-dependent output)
SKIP_CACHE_OPERATIONS = {"custom", "conversation", "business_names"}


class ResponseCacheService:
    """Generation result cache with per-entry TTL."""

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, *, max_entries: int = MAX_MEMORY_ENTRIES,
                 clock=None):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._memory: dict[str, dict] = {}  # key → {response, expires_at}
        self._lock = Lock()
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "evictions": 0}

    def get(self, key: str):
        """Cached response or None on miss / expiry."""
        now = self._clock()
        with self._lock:
            entry = self._memory.get(key)
            if entry and entry["expires_at"] > now:
                self._stats["hits"] += 1
                return entry["response"]
            if entry:
                del self._memory[key]
            self._stats["misses"] += 1
        return None

    def set(self, key: str, response, ttl_seconds: int | None = None):
        ttl = ttl_seconds or self.ttl_seconds
        with self._lock:
            self._memory[key] = {
                "response": response,
                "expires_at": self._clock() + timedelta(seconds=ttl),
            }
            self._enforce_memory_limit()
            self._stats["sets"] += 1

    def invalidate(self, key: str | None = None):
        """
        Invalidate cache entries.
        If key is None, clears everything.
        """
        with self._lock:
            if key:
                self._memory.pop(key, None)
            else:
                count = len(self._memory)
                self._memory.clear()
                self._stats["evictions"] += count

    def invalidate_user(self, user_id: str) -> int:
        suffix = f":{user_id}"
        with self._lock:
            keys = [k for k in self._memory if k.endswith(suffix)]
            for k in keys:
                del self._memory[k]
            self._stats["evictions"] += len(keys)
        return len(keys)

    def cleanup_expired(self) -> int:
        """Drop expired entries. Returns count of deleted entries."""
        now = self._clock()
        with self._lock:
            expired = [k for k, v in self._memory.items() if v["expires_at"] <= now]
            for k in expired:
                del self._memory[k]
        if expired:
            logger.debug("Generation cache: %d expired entries removed", len(expired))
        return len(expired)

    def get_stats(self) -> dict:
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total * 100) if total > 0 else 0.0
        with self._lock:
            mem_count = len(self._memory)
        return {
            "hits": self._stats["hits"],
            "misses": self._stats["misses"],
            "sets": self._stats["sets"],
            "evictions": self._stats["evictions"],
            "hit_rate_pct": round(hit_rate, 2),
            "memory_entries": mem_count,
            "ttl_seconds": self.ttl_seconds,
        }

    def should_cache(self, operation: str) -> bool:
        return operation not in SKIP_CACHE_OPERATIONS and not operation.startswith("conversation_")

    def _enforce_memory_limit(self):
        """Evict soonest-expiring entries over the limit. Must hold lock."""
        if len(self._memory) > self.max_entries:
            sorted_keys = sorted(self._memory, key=lambda k: self._memory[k]["expires_at"])
            to_remove = len(self._memory) - self.max_entries
            for key in sorted_keys[:to_remove]:
                del self._memory[key]
                self._stats["evictions"] += 1
