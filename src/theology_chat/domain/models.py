"""Domain models for the chat client."""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"

# Gemini calls the assistant side of the conversation "model".
PROVIDER_ROLES: Dict[str, str] = {USER_ROLE: "user", ASSISTANT_ROLE: "model"}


def _from_provider_role(value: Any) -> Any:
    # Older documents stored assistant turns under the provider's name.
    if value == PROVIDER_ROLES[ASSISTANT_ROLE]:
        return ASSISTANT_ROLE
    return value


Role = Annotated[Literal["user", "assistant"], BeforeValidator(_from_provider_role)]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    """One conversational turn."""

    role: Role
    text: str
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("timestamp")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        """Naive timestamps are taken as UTC; aware ones are converted."""
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def to_provider(self) -> Dict[str, Any]:
        """Shape this message as a Gemini ``contents`` entry."""
        return {"role": PROVIDER_ROLES[self.role], "parts": [{"text": self.text}]}


Transcript = List[Message]


class GroundingSource(BaseModel):
    """A citation returned alongside a grounded answer."""

    title: Optional[str] = None
    uri: Optional[str] = None

    @property
    def label(self) -> str:
        # Collapse whitespace so a title cannot break out of its list item.
        title = " ".join((self.title or "").split())
        uri = " ".join((self.uri or "").split())
        if title and uri:
            return f"{title} ({uri})"
        return title or uri


class CompletionResult(BaseModel):
    """Reply text and sources extracted from a successful completion."""

    text: str
    sources: List[GroundingSource] = []

    def render_text(self) -> str:
        """Reply text with the sources appended as a plain bullet list."""
        if not self.sources:
            return self.text
        lines = [f"- {source.label}" for source in self.sources]
        return self.text + "\n\nSources:\n" + "\n".join(lines)


class ConversationDocument(BaseModel):
    """Persisted state for one identity."""

    messages: List[Message] = []
    last_updated: Optional[int] = Field(default=None, alias="lastUpdated")
    version: int = 0

    model_config = ConfigDict(populate_by_name=True)

    def to_store(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
