"""
Projection Cache Module

Host-side memoization of FTL projections in Redis, or in process memory
when Redis is not configured or not reachable.

The engine itself never caches. Keys embed a fingerprint of the daily
series and the limit table, so a changed record set is simply a miss.
"""

import json
import fnmatch
import hashlib
import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import redis

from ftl_config import CACHE_TTL_SECONDS, REDIS_URL
from limit_evaluator import LimitTable
from metrics_projection import FTLMetrics, project
from rolling_window import as_series

logger = logging.getLogger(__name__)


# =====================================================
# Stores
# =====================================================

class MemoryCache:
    """Process-local store of (value, expires_at) pairs."""

    def __init__(self):
        self._entries: Dict[str, Tuple[Any, Optional[datetime]]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and datetime.now() > expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: int = None) -> bool:
        expires_at = datetime.now() + timedelta(seconds=ttl) if ttl else None
        self._entries[key] = (value, expires_at)
        return True

    def delete(self, key: str) -> bool:
        self._entries.pop(key, None)
        return True

    def clear(self) -> bool:
        self._entries.clear()
        return True

    def keys(self, pattern: str = "*") -> List[str]:
        return [k for k in self._entries if fnmatch.fnmatch(k, pattern)]


class RedisCache:
    """
    Redis store holding JSON-encoded snapshots.

    The connection is opened on first use; every Redis error is logged
    and reported as a miss (or False) so a flaky cache never fails a
    query.
    """

    def __init__(self, url: str):
        self._url = url
        self._client = None

    @property
    def client(self):
        if self._client is None:
            try:
                client = redis.from_url(self._url)
                client.ping()
                self._client = client
                logger.info(f"Connected to Redis at {self._url}")
            except redis.RedisError as e:
                logger.warning(f"Redis unavailable ({e})")
        return self._client

    def get(self, key: str) -> Optional[Any]:
        if not self.client:
            return None
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            logger.error(f"Redis GET {key} failed: {e}")
            return None
        return json.loads(raw) if raw else None

    def set(self, key: str, value: Any, ttl: int = None) -> bool:
        if not self.client:
            return False
        payload = json.dumps(value, default=str)
        try:
            if ttl:
                self.client.setex(key, ttl, payload)
            else:
                self.client.set(key, payload)
        except redis.RedisError as e:
            logger.error(f"Redis SET {key} failed: {e}")
            return False
        return True

    def delete(self, key: str) -> bool:
        if not self.client:
            return True
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            logger.error(f"Redis DEL {key} failed: {e}")
            return False
        return True

    def clear(self) -> bool:
        if not self.client:
            return True
        try:
            self.client.flushdb()
        except redis.RedisError as e:
            logger.error(f"Redis FLUSHDB failed: {e}")
            return False
        return True

    def keys(self, pattern: str = "*") -> List[str]:
        if not self.client:
            return []
        try:
            return [k.decode() for k in self.client.keys(pattern)]
        except redis.RedisError as e:
            logger.error(f"Redis KEYS {pattern} failed: {e}")
            return []


# =====================================================
# Cache Manager
# =====================================================

class CacheManager:
    """
    Picks Redis when REDIS_URL is set and reachable, memory otherwise.

    The choice is made lazily on first use and kept for the life of the
    manager.
    """

    def __init__(self, redis_url: str = REDIS_URL, default_ttl: int = CACHE_TTL_SECONDS):
        self._redis_url = redis_url
        self._default_ttl = default_ttl
        self._backend = None
        self._backend_type = "memory"

    def _connect(self):
        if self._redis_url:
            store = RedisCache(self._redis_url)
            if store.client:
                self._backend_type = "redis"
                return store
            logger.info("Projection cache falling back to memory")
        self._backend_type = "memory"
        return MemoryCache()

    @property
    def backend(self):
        if self._backend is None:
            self._backend = self._connect()
            logger.info(f"Projection cache backend: {self._backend_type}")
        return self._backend

    def get(self, key: str) -> Optional[Any]:
        return self.backend.get(key)

    def set(self, key: str, value: Any, ttl: int = None) -> bool:
        return self.backend.set(key, value, ttl or self._default_ttl)

    def delete(self, key: str) -> bool:
        return self.backend.delete(key)

    def clear(self) -> bool:
        return self.backend.clear()

    def get_or_set(self, key: str, compute: Callable[[], Any], ttl: int = None) -> Any:
        """
        Return the cached value for key, computing and storing it on a miss.

        Args:
            key: Cache key
            compute: Zero-argument callable producing the value
            ttl: Seconds to keep the value (default: CACHE_TTL_SECONDS)

        Returns:
            Cached or freshly computed value
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = compute()
        self.set(key, value, ttl)
        return value

    def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern; returns how many were removed."""
        matched = self.backend.keys(pattern)
        for key in matched:
            self.delete(key)
        return len(matched)

    def status(self) -> dict:
        return {
            "backend": self._backend_type,
            "keys_count": len(self.backend.keys())
        }


# Shared by the API server
cache = CacheManager()


# =====================================================
# Keys & Fingerprints
# =====================================================

class CacheKeys:
    FTL_METRICS = "ftl:metrics:{staff_id}:{anchor_date}:{fingerprint}"
    FTL_METRICS_STAFF = "ftl:metrics:{staff_id}:*"

    @staticmethod
    def format(template: str, **params) -> str:
        return template.format(**params)


def fingerprint_series(daily_totals, limit_table: Optional[LimitTable] = None) -> str:
    """
    SHA-256 of a daily series (and optionally the limit table).

    Identical records give the same fingerprint regardless of input
    order; any change in a day's totals or in the table changes it.
    """
    series = as_series(daily_totals)
    payload = {
        "days": [
            [day.isoformat(), repr(totals.duty_hours), repr(totals.flight_hours)]
            for day, totals in series.items()
        ],
    }
    if limit_table is not None:
        payload["limits"] = limit_table.to_dict()
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


# =====================================================
# Projection Cache
# =====================================================

class ProjectionCache:
    """
    Memoizes project() results keyed by (staff, anchor, fingerprint).
    """

    def __init__(self, manager: CacheManager = None, ttl: int = None):
        self.manager = manager or cache
        self.ttl = ttl

    def key_for(self, staff_id: str, anchor_date: date, daily_totals, limit_table: LimitTable) -> str:
        return CacheKeys.format(
            CacheKeys.FTL_METRICS,
            staff_id=staff_id or "-",
            anchor_date=anchor_date.isoformat(),
            fingerprint=fingerprint_series(daily_totals, limit_table),
        )

    def get_or_project(
        self,
        staff_id: str,
        anchor_date: date,
        daily_totals,
        limit_table: LimitTable,
    ) -> FTLMetrics:
        """Cached FTLMetrics, computing and storing it on a miss."""
        series = as_series(daily_totals)
        key = self.key_for(staff_id, anchor_date, series, limit_table)

        data = self.manager.get_or_set(
            key,
            lambda: project(staff_id, anchor_date, series, limit_table).to_dict(),
            self.ttl,
        )
        return FTLMetrics.from_dict(data)

    def invalidate_staff(self, staff_id: str) -> int:
        """Drop every cached projection for one staff member."""
        pattern = CacheKeys.format(CacheKeys.FTL_METRICS_STAFF, staff_id=staff_id)
        removed = self.manager.invalidate_pattern(pattern)
        logger.info(f"Invalidated {removed} cached projections for {staff_id}")
        return removed
