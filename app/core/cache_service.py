"""
Caching Service
Tenant-namespaced in-memory caches with TTL and LRU eviction for carts and catalog reads
"""
import asyncio
import inspect
import time
from typing import Any, Callable, Dict, Optional

from app.core.logging_config import get_logger

logger = get_logger(__name__)


class CacheEntry:
    """Cache entry with metadata"""

    def __init__(self, data: Any, ttl: int = 300):
        self.data = data
        self.created_at = time.time()
        self.ttl = ttl
        self.access_count = 0
        self.last_accessed = time.time()

    @property
    def is_expired(self) -> bool:
        return time.time() - self.created_at > self.ttl

    def access(self) -> Any:
        self.access_count += 1
        self.last_accessed = time.time()
        return self.data


class InMemoryCache:
    """In-memory cache evicting the least recently used quarter when full"""

    def __init__(self, max_size: int = 1000, default_ttl: int = 300):
        self.cache: Dict[str, CacheEntry] = {}
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._lock = asyncio.Lock()
        self._stats = {'hits': 0, 'misses': 0, 'evictions': 0, 'sets': 0}

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        async with self._lock:
            entry = self.cache.get(key)
            if entry is None:
                self._stats['misses'] += 1
                return None

            if entry.is_expired:
                del self.cache[key]
                self._stats['misses'] += 1
                return None

            self._stats['hits'] += 1
            return entry.access()

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Set value in cache; last write wins"""
        async with self._lock:
            if key not in self.cache and len(self.cache) >= self.max_size:
                self._evict_entries()

            self.cache[key] = CacheEntry(value, ttl or self.default_ttl)
            self._stats['sets'] += 1

    async def delete(self, key: str) -> bool:
        """Delete key from cache"""
        async with self._lock:
            return self.cache.pop(key, None) is not None

    def _evict_entries(self) -> None:
        if not self.cache:
            return

        sorted_entries = sorted(self.cache.items(), key=lambda x: x[1].last_accessed)
        evict_count = max(1, len(sorted_entries) // 4)
        for key, _ in sorted_entries[:evict_count]:
            del self.cache[key]
            self._stats['evictions'] += 1

    async def cleanup_expired(self) -> int:
        """Remove expired entries"""
        async with self._lock:
            expired_keys = [key for key, entry in self.cache.items() if entry.is_expired]
            for key in expired_keys:
                del self.cache[key]
            return len(expired_keys)

    def get_stats(self) -> Dict[str, Any]:
        total_requests = self._stats['hits'] + self._stats['misses']
        hit_rate = self._stats['hits'] / total_requests if total_requests > 0 else 0

        return {
            'size': len(self.cache),
            'max_size': self.max_size,
            'hit_rate': hit_rate,
            **self._stats
        }


def cart_key(tenant_id: str, session_id: str) -> str:
    return f"cart:{tenant_id}:{session_id}"


def catalog_key(collection: str, doc_id: str) -> str:
    return f"{collection}:{doc_id}"


class CacheService:
    """Holds the cart and catalog caches and their cleanup task"""

    def __init__(self, cart_ttl: int = 86400, catalog_ttl: int = 300):
        self.cart_cache = InMemoryCache(max_size=10000, default_ttl=cart_ttl)
        self.catalog_cache = InMemoryCache(max_size=2000, default_ttl=catalog_ttl)
        self._cleanup_task: Optional[asyncio.Task] = None

    def start_cleanup_task(self, interval_seconds: float = 60) -> None:
        """Start the background expiry sweep; call from a running event loop"""
        if self._cleanup_task and not self._cleanup_task.done():
            return

        async def cleanup_loop():
            while True:
                await asyncio.sleep(interval_seconds)
                try:
                    await self.cleanup_expired_entries()
                except Exception as e:
                    logger.error(f"Cache cleanup error: {e}")

        self._cleanup_task = asyncio.create_task(cleanup_loop())

    async def stop_cleanup_task(self) -> None:
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

    async def cleanup_expired_entries(self) -> int:
        total_cleaned = 0
        for cache in (self.cart_cache, self.catalog_cache):
            total_cleaned += await cache.cleanup_expired()

        if total_cleaned > 0:
            logger.info(f"Cleaned up {total_cleaned} expired cache entries")
        return total_cleaned

    async def get_or_set(self, cache: InMemoryCache, key: str, fetch_func: Callable, ttl: Optional[int] = None) -> Any:
        """Get from cache or fetch and cache; None results are not cached"""
        cached_value = await cache.get(key)
        if cached_value is not None:
            return cached_value

        value = fetch_func()
        if inspect.isawaitable(value):
            value = await value

        if value is not None:
            await cache.set(key, value, ttl)
        return value

    def get_all_stats(self) -> Dict[str, Any]:
        return {
            'cart_cache': self.cart_cache.get_stats(),
            'catalog_cache': self.catalog_cache.get_stats(),
        }
