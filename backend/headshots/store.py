"""
Document store boundary.

``DocumentStore`` is the contract the rest of the package relies on: keyed
records, create-if-absent, field updates, atomic conditional increments,
equality queries and live subscriptions. ``InMemoryDocumentStore`` is the
in-process implementation used by the dev server and the test-suite.

Watchers are invoked synchronously after every write that touches what they
observe, outside the store lock, so a callback may write back to the store.
A watcher also receives the current state as soon as it is registered.
"""

import copy
import logging
import threading
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import DocumentExists, DocumentNotFound, PreconditionFailed

logger = logging.getLogger("headshot_studio.store")


class Subscription:
    """Handle returned by every ``watch_*``/``subscribe`` call."""

    def __init__(self, on_close: Optional[Callable[[], None]] = None):
        self._on_close = on_close
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._on_close is not None:
            self._on_close()
            self._on_close = None


class DocumentSnapshot:
    def __init__(self, key: str, data: Optional[Dict[str, Any]]):
        self.key = key
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._data)


class DocumentStore:
    def get(self, collection: str, key: str) -> DocumentSnapshot:
        raise NotImplementedError

    def create(self, collection: str, key: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    def update(self, collection: str, key: str, fields: Dict[str, Any]) -> None:
        raise NotImplementedError

    def increment(self, collection: str, key: str, field: str, delta: int,
                  floor: Optional[int] = None) -> int:
        raise NotImplementedError

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        raise NotImplementedError

    def query(self, collection: str, **equals: Any) -> List[DocumentSnapshot]:
        raise NotImplementedError

    def watch_document(self, collection: str, key: str,
                       callback: Callable[[DocumentSnapshot], None]) -> Subscription:
        raise NotImplementedError

    def watch_query(self, collection: str, equals: Dict[str, Any],
                    callback: Callable[[List[DocumentSnapshot]], None]) -> Subscription:
        raise NotImplementedError


class _Watcher:
    def __init__(self, collection: str, key: Optional[str], equals: Optional[Dict[str, Any]], callback):
        self.collection = collection
        self.key = key
        self.equals = equals
        self.callback = callback
        self.active = True


class InMemoryDocumentStore(DocumentStore):
    def __init__(self):
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._watchers: List[_Watcher] = []

    # reads

    def get(self, collection: str, key: str) -> DocumentSnapshot:
        with self._lock:
            return DocumentSnapshot(key, copy.deepcopy(self._docs(collection).get(key)))

    def query(self, collection: str, **equals: Any) -> List[DocumentSnapshot]:
        with self._lock:
            return self._query(collection, equals)

    # writes

    def create(self, collection: str, key: str, data: Dict[str, Any]) -> None:
        with self._lock:
            docs = self._docs(collection)
            if key in docs:
                raise DocumentExists(collection, key)
            docs[key] = copy.deepcopy(data)
            pending = self._pending(collection, key)
        self._notify(pending)

    def update(self, collection: str, key: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            docs = self._docs(collection)
            if key not in docs:
                raise DocumentNotFound(collection, key)
            docs[key].update(copy.deepcopy(fields))
            pending = self._pending(collection, key)
        self._notify(pending)

    def increment(self, collection: str, key: str, field: str, delta: int,
                  floor: Optional[int] = None) -> int:
        """Atomically add ``delta`` to a numeric field and return the new value.

        When ``floor`` is given the write only happens if the result stays
        at or above it; otherwise ``PreconditionFailed`` carries the stored
        value and nothing changes.
        """
        with self._lock:
            docs = self._docs(collection)
            if key not in docs:
                raise DocumentNotFound(collection, key)
            current = int(docs[key].get(field) or 0)
            new_value = current + delta
            if floor is not None and new_value < floor:
                raise PreconditionFailed(collection, key, field, current)
            docs[key][field] = new_value
            pending = self._pending(collection, key)
        self._notify(pending)
        return new_value

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        key = uuid.uuid4().hex
        with self._lock:
            self._docs(collection)[key] = copy.deepcopy(data)
            pending = self._pending(collection, key)
        self._notify(pending)
        return key

    # subscriptions

    def watch_document(self, collection: str, key: str,
                       callback: Callable[[DocumentSnapshot], None]) -> Subscription:
        watcher = _Watcher(collection, key, None, callback)
        with self._lock:
            self._watchers.append(watcher)
            initial = [(watcher, self._snapshot_for(watcher))]
        self._notify(initial)
        return Subscription(lambda: self._remove(watcher))

    def watch_query(self, collection: str, equals: Dict[str, Any],
                    callback: Callable[[List[DocumentSnapshot]], None]) -> Subscription:
        watcher = _Watcher(collection, None, dict(equals), callback)
        with self._lock:
            self._watchers.append(watcher)
            initial = [(watcher, self._snapshot_for(watcher))]
        self._notify(initial)
        return Subscription(lambda: self._remove(watcher))

    def watcher_count(self) -> int:
        with self._lock:
            return len(self._watchers)

    # internals

    def _docs(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def _query(self, collection: str, equals: Dict[str, Any]) -> List[DocumentSnapshot]:
        out = []
        for key, data in self._docs(collection).items():
            if all(data.get(f) == v for f, v in equals.items()):
                out.append(DocumentSnapshot(key, copy.deepcopy(data)))
        return out

    def _snapshot_for(self, watcher: _Watcher):
        if watcher.key is not None:
            return DocumentSnapshot(watcher.key, copy.deepcopy(self._docs(watcher.collection).get(watcher.key)))
        return self._query(watcher.collection, watcher.equals or {})

    def _pending(self, collection: str, key: str) -> List[Tuple[_Watcher, Any]]:
        pending = []
        doc = self._docs(collection).get(key) or {}
        for w in self._watchers:
            if w.collection != collection:
                continue
            if w.key is not None:
                if w.key == key:
                    pending.append((w, self._snapshot_for(w)))
            elif all(doc.get(f) == v for f, v in (w.equals or {}).items()):
                pending.append((w, self._snapshot_for(w)))
        return pending

    def _notify(self, pending: List[Tuple[_Watcher, Any]]) -> None:
        for watcher, snapshot in pending:
            # a watcher removed by an earlier callback in this batch stays silent
            if watcher.active:
                watcher.callback(snapshot)

    def _remove(self, watcher: _Watcher) -> None:
        with self._lock:
            watcher.active = False
            if watcher in self._watchers:
                self._watchers.remove(watcher)
