"""
Repository Manager
Selects the storage backend and hands out per-collection repositories with cached catalog reads
"""
from typing import Any, Dict, Optional

from app.core.cache_service import CacheService, catalog_key
from app.core.config import Settings
from app.core.logging_config import get_logger
from app.database.firestore import (
    FirestoreRepository, ORDERS_COLLECTION, ORDER_ITEMS_COLLECTION,
    MENU_ITEMS_COLLECTION, TENANTS_COLLECTION, COUNTERS_COLLECTION
)
from app.database.memory import InMemoryDatabase, InMemoryRepository

logger = get_logger(__name__)

KNOWN_COLLECTIONS = (
    ORDERS_COLLECTION, ORDER_ITEMS_COLLECTION, MENU_ITEMS_COLLECTION,
    TENANTS_COLLECTION, COUNTERS_COLLECTION,
)

# Catalog collections change rarely and are safe to serve from cache
CACHED_COLLECTIONS = (MENU_ITEMS_COLLECTION, TENANTS_COLLECTION)


class RepositoryManager:
    """Centralized repository manager"""

    def __init__(self, settings: Settings, cache_service: CacheService,
                 memory_database: Optional[InMemoryDatabase] = None):
        self.settings = settings
        self.cache_service = cache_service
        self.backend = settings.PERSISTENCE_BACKEND
        self.memory_database = memory_database or InMemoryDatabase()
        self._repositories: Dict[str, Any] = {}

    def get_repository(self, collection: str) -> Any:
        """Get the repository for a collection on the configured backend"""
        if collection not in KNOWN_COLLECTIONS:
            raise ValueError(f"Unknown repository type: {collection}")

        if collection not in self._repositories:
            if self.backend == "memory":
                self._repositories[collection] = InMemoryRepository(collection, self.memory_database)
            else:
                self._repositories[collection] = FirestoreRepository(collection)
            logger.debug(f"Created {self.backend} repository for {collection}")

        return self._repositories[collection]

    async def cached_get_by_id(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Get a catalog document by ID through the catalog cache"""
        if collection not in CACHED_COLLECTIONS:
            return await self.get_repository(collection).get_by_id(doc_id)

        repo = self.get_repository(collection)
        return await self.cache_service.get_or_set(
            self.cache_service.catalog_cache,
            catalog_key(collection, doc_id),
            lambda: repo.get_by_id(doc_id),
        )

    def get_cache_stats(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "repositories_loaded": len(self._repositories),
            **self.cache_service.get_all_stats(),
        }
