"""Conversation controller: optimistic transcript, persistence and completion turns."""

import asyncio
from datetime import datetime
from typing import List, Optional, Set

import structlog

from ..config import AppConfig
from ..domain.models import ASSISTANT_ROLE, USER_ROLE, Message, utcnow
from ..repositories.base import DocumentStore
from .llm import CompletionClient

logger = structlog.get_logger()


class ConversationController:
    """Owns the in-memory transcript for one identity.

    The caller must not submit a turn while ``pending`` is true; the
    controller itself does not lock.
    """

    def __init__(
        self,
        config: AppConfig,
        store: DocumentStore,
        completion: CompletionClient,
        user_id: str,
    ):
        self._config = config
        self._store = store
        self._completion = completion
        self.user_id = user_id
        self.transcript: List[Message] = []
        self.pending = False
        self._version = 0
        self._background: Set[asyncio.Task] = set()
        self.writes_suspended = False

    def _timestamp(self) -> datetime:
        # Keep timestamps non-decreasing even if the clock steps back.
        now = utcnow()
        if self.transcript and self.transcript[-1].timestamp > now:
            return self.transcript[-1].timestamp
        return now

    def suspend_writes(self) -> None:
        """Stop persisting until a readable snapshot arrives.

        Writes replace the stored messages; an unreadable document stays untouched.
        """
        self.writes_suspended = True
        logger.warning("writes_suspended", user_id=self.user_id)

    def seed_welcome(self) -> None:
        self.transcript = [
            Message(role=ASSISTANT_ROLE, text=self._config.welcome_message, timestamp=utcnow())
        ]
        logger.info("transcript_seeded", user_id=self.user_id)

    def reconcile_remote(
        self,
        remote_messages: Optional[List[Message]],
        version: Optional[int] = None,
    ) -> None:
        """Apply a store snapshot: a non-empty one replaces the transcript."""
        if self.writes_suspended:
            self.writes_suspended = False
            logger.info("writes_resumed", user_id=self.user_id)
        if remote_messages:
            if (
                self._config.ignore_stale_snapshots
                and version is not None
                and version < self._version
            ):
                logger.warning(
                    "stale_snapshot_ignored",
                    user_id=self.user_id,
                    snapshot_version=version,
                    local_version=self._version,
                )
                return
            self.transcript = list(remote_messages)
            if version is not None:
                self._version = max(self._version, version)
            return

        if not self.transcript:
            self.seed_welcome()

    async def _persist(self, messages: List[Message], version: int, stage: str) -> None:
        if self.writes_suspended:
            logger.warning("persist_skipped", user_id=self.user_id, stage=stage, version=version)
            return
        try:
            await self._store.persist(self.user_id, messages, version)
        except Exception as e:
            logger.error(
                "persist_failed",
                user_id=self.user_id,
                stage=stage,
                version=version,
                error=str(e),
            )

    def _next_version(self) -> int:
        self._version += 1
        return self._version

    def _persist_in_background(self, messages: List[Message]) -> asyncio.Task:
        task = asyncio.create_task(self._persist(messages, self._next_version(), "optimistic"))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def submit_user_turn(self, query: str) -> Message:
        """Run one question/answer turn and return the assistant message.

        Completion failures never escape: they become the fixed apology
        message. Raises ``ValueError`` for a blank query.
        """
        query = query.strip()
        if not query:
            raise ValueError("query must not be empty")

        user_message = Message(role=USER_ROLE, text=query, timestamp=self._timestamp())
        turn = [*self.transcript, user_message]
        self.transcript = turn
        optimistic = self._persist_in_background(list(turn))
        self.pending = True

        failed = False
        try:
            try:
                result = await self._completion.generate(turn)
                reply = Message(
                    role=ASSISTANT_ROLE,
                    text=result.render_text(),
                    timestamp=self._timestamp(),
                )
            except Exception as e:
                failed = True
                logger.error(
                    "completion_failed",
                    user_id=self.user_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                reply = Message(
                    role=ASSISTANT_ROLE,
                    text=self._config.error_message,
                    timestamp=self._timestamp(),
                )

            final = [*turn, reply]
            self.transcript = final

            # The partial transcript must not land after the final one.
            await optimistic
            await self._persist(list(final), self._next_version(), "final")
            logger.info(
                "turn_completed",
                user_id=self.user_id,
                message_count=len(final),
                failed=failed,
            )
            return reply
        finally:
            self.pending = False

    async def drain(self) -> None:
        """Wait for outstanding background writes."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
