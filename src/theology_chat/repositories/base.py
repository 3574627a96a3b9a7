"""Document store interface."""

import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from ..domain.models import ConversationDocument, Message

SnapshotCallback = Callable[[Optional[ConversationDocument]], None]
ErrorCallback = Callable[[Exception], None]


def now_ms() -> int:
    return int(time.time() * 1000)


def build_update(messages: List[Message], version: int) -> Dict[str, Any]:
    """Fields merged into the document on every write."""
    document = ConversationDocument(messages=messages, last_updated=now_ms(), version=version)
    return document.to_store()


def document_from_store(raw: Optional[Dict[str, Any]]) -> Optional[ConversationDocument]:
    """Parse stored document data; ``None`` when the document does not exist."""
    if raw is None:
        return None
    return ConversationDocument.model_validate(raw)


class Subscription(ABC):
    """Handle returned by ``DocumentStore.subscribe``."""

    @abstractmethod
    def unsubscribe(self) -> None:
        """Stop delivering snapshots."""
        pass


class DocumentStore(ABC):
    """Abstract base class for realtime conversation stores."""

    @abstractmethod
    async def subscribe(
        self,
        user_id: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Deliver the user's document now and whenever it changes."""
        pass

    @abstractmethod
    async def persist(self, user_id: str, messages: List[Message], version: int = 0) -> None:
        """Merge the transcript into the user's document."""
        pass
