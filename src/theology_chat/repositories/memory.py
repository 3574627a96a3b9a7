"""In-memory document store implementation."""

import asyncio
from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError

from ..config import AppConfig
from ..domain.models import Message
from .base import (
    DocumentStore,
    ErrorCallback,
    SnapshotCallback,
    Subscription,
    build_update,
    document_from_store,
)

logger = structlog.get_logger()


class _Listener:
    def __init__(self, on_snapshot: SnapshotCallback, on_error: Optional[ErrorCallback]):
        self.on_snapshot = on_snapshot
        self.on_error = on_error


class InMemorySubscription(Subscription):
    """Detaches a listener from the in-memory store."""

    def __init__(self, store: "InMemoryDocumentStore", path: str, listener: _Listener):
        self._store = store
        self._path = path
        self._listener = listener

    def unsubscribe(self) -> None:
        listeners = self._store._listeners.get(self._path, [])
        if self._listener in listeners:
            listeners.remove(self._listener)
            logger.info("subscription_closed", path=self._path)


class InMemoryDocumentStore(DocumentStore):
    """Stores documents as JSON-compatible dicts and pushes every change to listeners."""

    def __init__(self, config: Optional[AppConfig] = None) -> None:
        self._config = config or AppConfig()
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._listeners: Dict[str, List[_Listener]] = {}
        self._lock = asyncio.Lock()
        logger.info("repository_initialized", backend="memory")

    def get_raw(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Stored document data for ``user_id``, if any."""
        return self._documents.get(self._config.document_path(user_id))

    async def subscribe(
        self,
        user_id: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        path = self._config.document_path(user_id)
        listener = _Listener(on_snapshot, on_error)
        async with self._lock:
            self._listeners.setdefault(path, []).append(listener)
            raw = self._documents.get(path)
        logger.info("subscription_opened", path=path)
        self._deliver(listener, raw)
        return InMemorySubscription(self, path, listener)

    async def persist(self, user_id: str, messages: List[Message], version: int = 0) -> None:
        path = self._config.document_path(user_id)
        async with self._lock:
            document = self._documents.setdefault(path, {})
            document.update(build_update(messages, version))
            raw = dict(document)
            listeners = list(self._listeners.get(path, []))
        logger.info("document_persisted", path=path, message_count=len(messages), version=version)
        for listener in listeners:
            self._deliver(listener, raw)

    def _deliver(self, listener: _Listener, raw: Optional[Dict[str, Any]]) -> None:
        try:
            document = document_from_store(raw)
        except ValidationError as e:
            logger.error("snapshot_parse_error", error=str(e))
            if listener.on_error is not None:
                listener.on_error(e)
            return
        listener.on_snapshot(document)
