"""Chat session: startup ordering and readiness around the controller."""

from typing import List, Optional

import structlog
from pydantic import ValidationError

from ..config import AppConfig, StartupConfig
from ..domain.models import ConversationDocument, Message
from ..errors import SessionNotReady, TurnInProgress
from ..repositories.base import DocumentStore, Subscription
from .controller import ConversationController
from .identity import FirebaseIdentityProvider, IdentityProvider
from .llm import CompletionClient

logger = structlog.get_logger()


def build_store(config: AppConfig, project: Optional[str] = None) -> DocumentStore:
    """Document store selected by ``config.store_backend``."""
    if config.store_backend == "firestore":
        from ..repositories.firestore import FirestoreDocumentStore

        return FirestoreDocumentStore(config, project=project)

    from ..repositories.memory import InMemoryDocumentStore

    return InMemoryDocumentStore(config)


class ChatSession:
    """One page load: a single identity, subscription and controller.

    Identity is resolved exactly once. Until it is, and until the first
    snapshot arrives, the session is not ready and refuses turns.
    """

    def __init__(
        self,
        config: AppConfig,
        identity: IdentityProvider,
        store: DocumentStore,
        completion: CompletionClient,
    ):
        self.config = config
        self._identity = identity
        self._store = store
        self._completion = completion
        self.user_id: Optional[str] = None
        self.controller: Optional[ConversationController] = None
        self.auth_ready = False
        self.loading = True
        self._started = False
        self._subscription: Optional[Subscription] = None

    @classmethod
    def from_config(cls, config: AppConfig, startup: StartupConfig) -> "ChatSession":
        """Wire the production collaborators from configuration."""
        identity = FirebaseIdentityProvider(
            startup.provider_config,
            bootstrap_token=startup.bootstrap_token,
            session_user_id=startup.session_user_id,
        )
        completion = CompletionClient(config, startup.completion_api_key)
        store = build_store(config, project=startup.provider_config.get("projectId"))
        return cls(config, identity, store, completion)

    @property
    def ready(self) -> bool:
        return self.auth_ready and not self.loading and self.controller is not None

    @property
    def pending(self) -> bool:
        return self.controller is not None and self.controller.pending

    @property
    def input_enabled(self) -> bool:
        return self.ready and not self.pending

    @property
    def transcript(self) -> List[Message]:
        return list(self.controller.transcript) if self.controller else []

    async def start(self) -> bool:
        """Resolve identity and open the store subscription.

        Returns whether identity was resolved. A failure is logged and leaves
        the session initializing; it is never retried.
        """
        if self._started:
            return self.auth_ready
        self._started = True

        try:
            user_id = await self._identity.resolve_identity()
        except Exception as e:
            logger.error("identity_resolution_failed", error=str(e))
            return False

        self.user_id = user_id
        self.controller = ConversationController(self.config, self._store, self._completion, user_id)
        self.auth_ready = True

        try:
            self._subscription = await self._store.subscribe(
                user_id, self._on_snapshot, self._on_error
            )
        except Exception as e:
            self._on_error(e)
        return True

    def _on_snapshot(self, document: Optional[ConversationDocument]) -> None:
        if document is None:
            self.controller.reconcile_remote(None)
        else:
            self.controller.reconcile_remote(document.messages, document.version)
        self.loading = False

    def _on_error(self, error: Exception) -> None:
        logger.error("store_read_failed", user_id=self.user_id, error=str(error))
        if isinstance(error, ValidationError) and self.controller is not None:
            self.controller.suspend_writes()
        self.loading = False

    async def submit(self, query: str) -> Message:
        """Run one turn through the controller, enforcing the input gate."""
        if not self.ready:
            raise SessionNotReady("Session is still initializing")
        if self.pending:
            raise TurnInProgress("A reply is already being generated")
        return await self.controller.submit_user_turn(query)

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self.controller is not None:
            await self.controller.drain()
        await self._completion.aclose()
        aclose = getattr(self._identity, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.info("session_closed", user_id=self.user_id)
