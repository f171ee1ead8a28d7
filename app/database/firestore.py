"""
Firestore Repository
Collection access for orders, order items, menu items and tenants on Google Cloud Firestore
"""
import asyncio
import time
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from app.core.config import get_firestore_client, settings
from app.core.logging_config import EnhancedLoggerMixin, log_function_call


# Collection names shared by every backend
ORDERS_COLLECTION = "orders"
ORDER_ITEMS_COLLECTION = "order_items"
MENU_ITEMS_COLLECTION = "menu_items"
TENANTS_COLLECTION = "tenants"
COUNTERS_COLLECTION = "counters"

# Firestore caps the number of values in an "in" filter
IN_FILTER_CHUNK_SIZE = 30


class FirestoreRepository(EnhancedLoggerMixin):
    """Base repository class for Firestore operations"""

    def __init__(self, collection_name: str, client: Optional[firestore.Client] = None):
        self.collection_name = collection_name
        self.db = client
        self.collection = None
        self.timeout = settings.FIRESTORE_TIMEOUT_SECONDS

    def _ensure_collection(self):
        if self.collection is None:
            try:
                self.db = self.db or get_firestore_client()
                self.collection = self.db.collection(self.collection_name)
                self.logger.info(f"Initialized Firestore collection: {self.collection_name}")
            except Exception as e:
                self.log_error(e, "initialize_collection", collection=self.collection_name)
                raise

    async def _run(self, func: Callable, operation: str) -> Any:
        """Run a blocking client call off the event loop with a timeout"""
        try:
            return await asyncio.wait_for(asyncio.to_thread(func), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(f"Database timeout for {self.collection_name}.{operation}")

    def _prepare_data_for_firestore(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Convert values Firestore cannot store (plain dates, enums)"""
        prepared_data = {}
        for key, value in data.items():
            if isinstance(value, date) and not isinstance(value, datetime):
                prepared_data[key] = datetime.combine(value, datetime.min.time()).replace(tzinfo=timezone.utc)
            elif isinstance(value, dict):
                prepared_data[key] = self._prepare_data_for_firestore(value)
            elif isinstance(value, Enum):
                prepared_data[key] = value.value
            else:
                prepared_data[key] = value
        return prepared_data

    @staticmethod
    def _doc_to_dict(doc) -> Dict[str, Any]:
        data = doc.to_dict() or {}
        data['id'] = doc.id
        return data

    @log_function_call()
    async def create(self, data: Dict[str, Any], doc_id: Optional[str] = None) -> Dict[str, Any]:
        """Create a new document; created_at is kept when the caller set it"""
        start_time = time.time()
        self._ensure_collection()

        data = self._prepare_data_for_firestore(data)
        now = datetime.now(timezone.utc)
        data.setdefault('created_at', now)
        data['updated_at'] = now

        doc_ref = self.collection.document(doc_id) if doc_id else self.collection.document()
        data['id'] = doc_ref.id

        try:
            await self._run(lambda: doc_ref.set(data), "create")
        except Exception as e:
            self.log_error(e, "create_document", collection=self.collection_name, doc_id=doc_ref.id)
            raise

        self.log_performance("create_document", (time.time() - start_time) * 1000,
                             collection=self.collection_name, doc_id=doc_ref.id)
        return data

    @log_function_call()
    async def get_by_id(self, doc_id: str) -> Optional[Dict[str, Any]]:
        """Get document by ID"""
        self._ensure_collection()

        try:
            doc = await self._run(self.collection.document(doc_id).get, "get_by_id")
        except Exception as e:
            self.log_error(e, "get_document", collection=self.collection_name, doc_id=doc_id)
            raise

        if not doc.exists:
            return None
        return self._doc_to_dict(doc)

    async def update(self, doc_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update document by ID and return the stored document"""
        self._ensure_collection()

        data = self._prepare_data_for_firestore(data)
        data.pop('id', None)
        data['updated_at'] = datetime.now(timezone.utc)

        try:
            await self._run(lambda: self.collection.document(doc_id).update(data), "update")
        except Exception as e:
            self.log_error(e, "update_document", collection=self.collection_name, doc_id=doc_id)
            raise

        self.log_operation("update_document", level="DEBUG", collection=self.collection_name, doc_id=doc_id)
        return await self.get_by_id(doc_id)

    async def delete(self, doc_id: str) -> bool:
        """Delete document by ID"""
        self._ensure_collection()
        await self._run(lambda: self.collection.document(doc_id).delete(), "delete")
        return True

    def _filtered(self, filters: List[tuple]):
        query = self.collection
        for field, operator, value in filters:
            query = query.where(filter=FieldFilter(field, operator, value))
        return query

    async def query(self, filters: List[tuple], order_by: Optional[str] = None,
                    limit: Optional[int] = None, descending: bool = False) -> List[Dict[str, Any]]:
        """Query documents with (field, operator, value) filters"""
        self._ensure_collection()

        query = self._filtered(filters)

        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)

        if limit:
            query = query.limit(limit)

        try:
            docs = await self._run(lambda: list(query.stream()), "query")
        except Exception as e:
            self.log_error(e, "query_documents", collection=self.collection_name,
                           filters=str(filters), order_by=order_by, limit=limit)
            raise

        results = [self._doc_to_dict(doc) for doc in docs]
        self.log_operation("query_documents", level="DEBUG", collection=self.collection_name,
                           filters=len(filters), count=len(results), limit=limit)
        return results

    def watch(self, filters: List[tuple], callback: Callable[[], None]) -> Callable[[], None]:
        """
        Listen for changes to documents matching ``filters``.

        ``callback`` runs on the listener thread, once for the initial
        snapshot and once per change batch. Returns the unsubscribe function.
        """
        self._ensure_collection()

        def on_snapshot(docs, changes, read_time):
            callback()

        watch = self._filtered(filters).on_snapshot(on_snapshot)
        self.log_operation("watch_documents", level="DEBUG", collection=self.collection_name, filters=len(filters))
        return watch.unsubscribe

    async def query_in(self, field: str, values: List[Any],
                       filters: Optional[List[tuple]] = None) -> List[Dict[str, Any]]:
        """Query ``field in values``, split into chunks Firestore accepts"""
        results = []
        for start in range(0, len(values), IN_FILTER_CHUNK_SIZE):
            chunk = values[start:start + IN_FILTER_CHUNK_SIZE]
            results.extend(await self.query(list(filters or []) + [(field, "in", chunk)]))
        return results

    async def create_batch(self, items_data: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Create several documents in one committed batch"""
        self._ensure_collection()

        batch = self.db.batch()
        created = []
        now = datetime.now(timezone.utc)

        for data in items_data:
            data = self._prepare_data_for_firestore(data)
            data.setdefault('created_at', now)
            data['updated_at'] = now

            doc_ref = self.collection.document()
            data['id'] = doc_ref.id
            batch.set(doc_ref, data)
            created.append(data)

        try:
            await self._run(batch.commit, "create_batch")
        except Exception as e:
            self.log_error(e, "batch_create", collection=self.collection_name, count=len(items_data))
            raise

        self.log_operation("batch_create", level="DEBUG", collection=self.collection_name, count=len(created))
        return created

    async def next_sequence(self, counter_id: str) -> int:
        """Atomically increment and return a named counter in this collection"""
        self._ensure_collection()
        doc_ref = self.collection.document(counter_id)

        @firestore.transactional
        def _increment(transaction):
            snapshot = doc_ref.get(transaction=transaction)
            value = int((snapshot.to_dict() or {}).get("value", 0)) + 1
            transaction.set(doc_ref, {"value": value, "updated_at": datetime.now(timezone.utc)})
            return value

        return await self._run(lambda: _increment(self.db.transaction()), "next_sequence")
