"""Gemini completion client with rate-limit backoff and grounded sources."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import structlog
from google.api_core import exceptions

from ..config import AppConfig
from ..domain.models import CompletionResult, GroundingSource, Message
from ..errors import (
    CompletionHTTPError,
    CompletionTransportError,
    MalformedResponseError,
)

logger = structlog.get_logger()

Sleep = Callable[[float], Awaitable[None]]


def _non_empty_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _first_candidate(body: Any) -> Dict[str, Any]:
    candidates = body.get("candidates") if isinstance(body, dict) else None
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        raise MalformedResponseError("Response has no candidates")
    return candidates[0]


def extract_text(candidate: Dict[str, Any]) -> str:
    """Reply text from a candidate.

    The first text part is the expected shape. Responses that split the reply
    across several parts, or carry a flat ``text`` field, are accepted too.
    """
    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    parts = parts if isinstance(parts, list) else []

    if parts and isinstance(parts[0], dict):
        text = _non_empty_str(parts[0].get("text"))
        if text:
            return text

    texts = [
        part["text"]
        for part in parts
        if isinstance(part, dict) and _non_empty_str(part.get("text"))
    ]
    if texts:
        return "".join(texts)

    text = _non_empty_str(candidate.get("text"))
    if text:
        return text

    raise MalformedResponseError("Received empty or malformed response from the model.")


def extract_sources(candidate: Dict[str, Any], limit: int) -> List[GroundingSource]:
    """First ``limit`` web sources from the candidate's grounding metadata."""
    metadata = candidate.get("groundingMetadata")
    if not isinstance(metadata, dict):
        return []

    entries = metadata.get("groundingAttributions") or metadata.get("groundingChunks") or []
    if not isinstance(entries, list):
        return []

    sources: List[GroundingSource] = []
    for entry in entries:
        if len(sources) >= limit:
            break
        web = entry.get("web") if isinstance(entry, dict) else None
        if not isinstance(web, dict):
            continue
        title = _non_empty_str(web.get("title"))
        uri = _non_empty_str(web.get("uri"))
        if title or uri:
            sources.append(GroundingSource(title=title, uri=uri))
    return sources


def parse_completion(body: Any, max_sources: int) -> CompletionResult:
    """Validate a ``generateContent`` response body and extract the reply."""
    candidate = _first_candidate(body)
    return CompletionResult(
        text=extract_text(candidate),
        sources=extract_sources(candidate, max_sources),
    )


class CompletionClient:
    """Calls the Gemini ``generateContent`` endpoint for a transcript."""

    def __init__(
        self,
        config: AppConfig,
        api_key: str,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self._config = config
        self._api_key = api_key
        self._owns_client = http_client is None
        # No client-side timeout: a hung request is left to the transport.
        self._http = http_client or httpx.AsyncClient(timeout=None)
        self._sleep = sleep
        logger.info("completion_client_init", model=config.model, max_attempts=config.max_attempts)

    def build_payload(self, transcript: List[Message]) -> Dict[str, Any]:
        """Request body for the whole transcript, persona and search tool."""
        return {
            "contents": [message.to_provider() for message in transcript],
            "systemInstruction": {"parts": [{"text": self._config.system_prompt}]},
            "tools": [{self._config.search_tool: {}}],
        }

    async def _post(self, payload: Dict[str, Any]) -> Any:
        try:
            response = await self._http.post(
                self._config.completion_url,
                params={"key": self._api_key},
                json=payload,
            )
        except httpx.TransportError as e:
            raise CompletionTransportError(f"Transport failure: {e}") from e

        if not response.is_success:
            raise CompletionHTTPError(
                exceptions.from_http_status(
                    response.status_code,
                    f"API Request failed with status: {response.status_code}",
                    response=response,
                )
            )

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError("Response body is not JSON") from e

    async def generate(self, transcript: List[Message]) -> CompletionResult:
        """Request a reply, retrying only rate-limited attempts.

        Raises a ``CompletionError`` subclass on terminal failure.
        """
        payload = self.build_payload(transcript)
        max_attempts = self._config.max_attempts
        attempt = 0
        while True:
            try:
                body = await self._post(payload)
            except CompletionHTTPError as e:
                if e.retryable and attempt < max_attempts - 1:
                    delay = self._config.backoff_base ** attempt
                    logger.warning(
                        "completion_rate_limited",
                        attempt=attempt,
                        status_code=e.status_code,
                        delay=delay,
                    )
                    await self._sleep(delay)
                    attempt += 1
                    continue
                raise

            result = parse_completion(body, self._config.max_sources)
            logger.info(
                "completion_succeeded",
                attempts=attempt + 1,
                reply_length=len(result.text),
                source_count=len(result.sources),
            )
            return result

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()
