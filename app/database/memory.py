"""
In-Memory Repository
Process-local stand-in for Firestore used in development and tests
"""
import copy
import operator
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.core.logging_config import EnhancedLoggerMixin


_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda field_value, values: field_value in values,
    "not-in": lambda field_value, values: field_value not in values,
    "array_contains": lambda field_value, value: value in (field_value or []),
}


class InMemoryDatabase:
    """Named collections of documents keyed by id"""

    def __init__(self):
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.watchers: Dict[str, List[Tuple[List[tuple], Callable[[], None]]]] = {}

    def collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self.collections.setdefault(name, {})

    def collection_watchers(self, name: str) -> List[Tuple[List[tuple], Callable[[], None]]]:
        return self.watchers.setdefault(name, [])


def _matches(document: Dict[str, Any], filters: List[tuple]) -> bool:
    # A document without the filtered field never matches, as in Firestore
    return all(field in document and _OPERATORS[op](document[field], value) for field, op, value in filters)


class InMemoryRepository(EnhancedLoggerMixin):
    """Same contract as FirestoreRepository, backed by an InMemoryDatabase"""

    def __init__(self, collection_name: str, database: InMemoryDatabase):
        self.collection_name = collection_name
        self.database = database

    @property
    def documents(self) -> Dict[str, Dict[str, Any]]:
        return self.database.collection(self.collection_name)

    @staticmethod
    def _prepare(data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            key: value.value if isinstance(value, Enum) else copy.deepcopy(value)
            for key, value in data.items()
        }

    async def create(self, data: Dict[str, Any], doc_id: Optional[str] = None) -> Dict[str, Any]:
        data = self._prepare(data)
        now = datetime.now(timezone.utc)
        data.setdefault('created_at', now)
        data['updated_at'] = now
        data['id'] = doc_id or uuid.uuid4().hex

        self.documents[data['id']] = data
        self._notify(data)
        self.log_operation("create_document", level="DEBUG", collection=self.collection_name, doc_id=data['id'])
        return copy.deepcopy(data)

    async def get_by_id(self, doc_id: str) -> Optional[Dict[str, Any]]:
        document = self.documents.get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def update(self, doc_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if doc_id not in self.documents:
            raise KeyError(f"No document {doc_id} in {self.collection_name}")

        data = self._prepare(data)
        data.pop('id', None)
        data['updated_at'] = datetime.now(timezone.utc)
        self.documents[doc_id].update(data)
        self._notify(self.documents[doc_id])
        return copy.deepcopy(self.documents[doc_id])

    async def delete(self, doc_id: str) -> bool:
        document = self.documents.pop(doc_id, None)
        if document is None:
            return False
        self._notify(document)
        return True

    async def query(self, filters: List[tuple], order_by: Optional[str] = None,
                    limit: Optional[int] = None, descending: bool = False) -> List[Dict[str, Any]]:
        results = [document for document in self.documents.values() if _matches(document, filters)]

        if order_by:
            results = [document for document in results if document.get(order_by) is not None]
            results.sort(key=lambda document: document[order_by], reverse=descending)

        if limit:
            results = results[:limit]
        return [copy.deepcopy(document) for document in results]

    def watch(self, filters: List[tuple], callback: Callable[[], None]) -> Callable[[], None]:
        """Call ``callback`` after every write to a matching document; returns the unsubscribe function"""
        watcher = (list(filters), callback)
        watchers = self.database.collection_watchers(self.collection_name)
        watchers.append(watcher)

        def unsubscribe() -> None:
            if watcher in watchers:
                watchers.remove(watcher)

        return unsubscribe

    def _notify(self, document: Dict[str, Any]) -> None:
        for filters, callback in list(self.database.collection_watchers(self.collection_name)):
            if _matches(document, filters):
                callback()

    async def query_in(self, field: str, values: List[Any],
                       filters: Optional[List[tuple]] = None) -> List[Dict[str, Any]]:
        if not values:
            return []
        return await self.query(list(filters or []) + [(field, "in", list(values))])

    async def create_batch(self, items_data: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [await self.create(data) for data in items_data]

    async def next_sequence(self, counter_id: str) -> int:
        counter = self.documents.setdefault(counter_id, {"id": counter_id, "value": 0})
        counter["value"] += 1
        counter["updated_at"] = datetime.now(timezone.utc)
        return counter["value"]
