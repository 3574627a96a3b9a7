"""Cloud Firestore document store implementation."""

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


class FirestoreSubscription(Subscription):
    """Wraps the Firestore watch handle."""

    def __init__(self, watch: Any, path: str):
        self._watch = watch
        self._path = path

    def unsubscribe(self) -> None:
        self._watch.unsubscribe()
        logger.info("subscription_closed", path=self._path)


class FirestoreDocumentStore(DocumentStore):
    """Persists conversations in Firestore and listens with ``on_snapshot``.

    The Firestore client is synchronous: writes run in a worker thread and
    watch callbacks, which fire on the client's own thread, are handed back
    to the event loop before any listener sees them.
    """

    def __init__(
        self,
        config: AppConfig,
        client: Any = None,
        project: Optional[str] = None,
    ) -> None:
        if client is None:
            from google.cloud import firestore

            client = firestore.Client(project=project)
        self._client = client
        self._config = config
        logger.info("repository_initialized", backend="firestore")

    def _document(self, user_id: str) -> Any:
        return self._client.document(self._config.document_path(user_id))

    async def subscribe(
        self,
        user_id: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        loop = asyncio.get_running_loop()
        path = self._config.document_path(user_id)

        def dispatch(raw: Optional[Dict[str, Any]]) -> None:
            try:
                document = document_from_store(raw)
            except ValidationError as e:
                logger.error("snapshot_parse_error", path=path, error=str(e))
                if on_error is not None:
                    on_error(e)
                return
            on_snapshot(document)

        def watch_callback(doc_snapshots, changes, read_time) -> None:
            # A missing document can arrive as an empty snapshot list.
            if not doc_snapshots:
                loop.call_soon_threadsafe(dispatch, None)
            for snapshot in doc_snapshots:
                raw = snapshot.to_dict() if snapshot.exists else None
                loop.call_soon_threadsafe(dispatch, raw)

        watch = await asyncio.to_thread(self._document(user_id).on_snapshot, watch_callback)
        logger.info("subscription_opened", path=path)
        return FirestoreSubscription(watch, path)

    async def persist(self, user_id: str, messages: List[Message], version: int = 0) -> None:
        update = build_update(messages, version)
        await asyncio.to_thread(self._document(user_id).set, update, merge=True)
        logger.info(
            "document_persisted",
            path=self._config.document_path(user_id),
            message_count=len(messages),
            version=version,
        )
