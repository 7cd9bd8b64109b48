"""
Per-trace key/value state.

Each scope (a traceId, or a fixed name such as "fileWatcher") holds named
JSON-serializable fields. Stages share one document per trace; every
read-modify-write goes through `transact`, which applies a mutation
atomically against the current snapshot:

- MemoryTraceStore: per-scope asyncio.Lock (single process)
- FirestoreTraceStore: one document per scope, Firestore transactions
"""

import asyncio
import copy
import logging
import weakref
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from google.cloud import firestore

from autopublisher import config

logger = logging.getLogger(__name__)

# fn(snapshot) -> fields to write (empty dict writes nothing)
Mutation = Callable[[Dict[str, Any]], Dict[str, Any]]

WATCHER_SCOPE = "fileWatcher"
KNOWN_FILES_KEY = "knownFiles"


def oauth_state_scope(state_id: str) -> str:
    return f"oauth-state:{state_id}"


class TraceStore(ABC):
    """Async key/value store scoped per trace."""

    @abstractmethod
    async def get_all(self, scope: str) -> Dict[str, Any]:
        """Return every field of the scope (empty dict if none)."""

    @abstractmethod
    async def transact(self, scope: str, fn: Mutation) -> Dict[str, Any]:
        """
        Atomically apply fn to the scope.

        fn receives a private copy of the current fields and returns the
        fields to overwrite. Returns the fields that were written.
        """

    @abstractmethod
    async def delete_scope(self, scope: str) -> None:
        """Drop every field of the scope."""

    async def get(self, scope: str, key: str) -> Any:
        data = await self.get_all(scope)
        return data.get(key)

    async def set(self, scope: str, key: str, value: Any) -> None:
        await self.transact(scope, lambda _: {key: value})

    async def update(self, scope: str, key: str, fn: Callable[[Any], Any]) -> Any:
        """Atomic read-modify-write of a single field. Returns the new value."""
        written = await self.transact(scope, lambda snapshot: {key: fn(snapshot.get(key))})
        return written.get(key)


class MemoryTraceStore(TraceStore):
    def __init__(self):
        self._data: Dict[str, Dict[str, Any]] = {}
        # a lock lives only while some transaction holds or awaits it
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, scope: str) -> asyncio.Lock:
        lock = self._locks.get(scope)
        if lock is None:
            lock = self._locks[scope] = asyncio.Lock()
        return lock

    async def get_all(self, scope: str) -> Dict[str, Any]:
        return copy.deepcopy(self._data.get(scope, {}))

    async def transact(self, scope: str, fn: Mutation) -> Dict[str, Any]:
        async with self._lock_for(scope):
            snapshot = copy.deepcopy(self._data.get(scope, {}))
            writes = fn(snapshot) or {}
            if writes:
                self._data.setdefault(scope, {}).update(copy.deepcopy(writes))
            return writes

    async def delete_scope(self, scope: str) -> None:
        async with self._lock_for(scope):
            self._data.pop(scope, None)


class FirestoreTraceStore(TraceStore):
    """
    Trace store backed by Firestore.

    Document layout: {TRACE_COLLECTION}/{scope} with one field per key.
    The Firestore SDK is blocking, so calls run in a worker thread.
    """

    def __init__(self, db: Any = None, collection: Optional[str] = None):
        if db is None:
            from autopublisher.core.firebase_client import get_firestore_client
            db = get_firestore_client()
        self.db = db
        self.collection = self.db.collection(collection or config.TRACE_COLLECTION)

    async def get_all(self, scope: str) -> Dict[str, Any]:
        def _read() -> Dict[str, Any]:
            snap = self.collection.document(scope).get()
            if not snap.exists:
                return {}
            return snap.to_dict() or {}

        return await asyncio.to_thread(_read)

    async def transact(self, scope: str, fn: Mutation) -> Dict[str, Any]:
        doc_ref = self.collection.document(scope)

        @firestore.transactional
        def _apply(transaction) -> Dict[str, Any]:
            snap = doc_ref.get(transaction=transaction)
            exists = snap.exists
            writes = fn((snap.to_dict() or {}) if exists else {}) or {}
            if writes:
                # update() replaces whole fields; set(merge=True) would deep-merge nested maps
                if exists:
                    transaction.update(doc_ref, writes)
                else:
                    transaction.set(doc_ref, writes)
            return writes

        def _run() -> Dict[str, Any]:
            return _apply(self.db.transaction())

        return await asyncio.to_thread(_run)

    async def delete_scope(self, scope: str) -> None:
        await asyncio.to_thread(self.collection.document(scope).delete)


_store: Optional[TraceStore] = None


def get_trace_store() -> TraceStore:
    global _store
    if _store is None:
        if config.STATE_BACKEND == "firestore":
            _store = FirestoreTraceStore()
        else:
            _store = MemoryTraceStore()
        logger.info("Using %s for trace state", type(_store).__name__)
    return _store
