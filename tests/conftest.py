"""Shared fixtures for the chat client tests."""

import json
from typing import Any, Dict, List, Optional, Union

import httpx
import pytest

from theology_chat.config import AppConfig
from theology_chat.repositories.memory import InMemoryDocumentStore
from theology_chat.services.llm import CompletionClient

Reply = Union[httpx.Response, Exception]


def gemini_body(text: str, attributions: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """A generateContent success body."""
    candidate: Dict[str, Any] = {"content": {"role": "model", "parts": [{"text": text}]}}
    if attributions is not None:
        candidate["groundingMetadata"] = {"groundingAttributions": attributions}
    return {"candidates": [candidate]}


class RecordingSleep:
    """Stands in for asyncio.sleep and records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedEndpoint:
    """MockTransport handler replaying a fixed list of replies."""

    def __init__(self, replies: List[Reply]):
        self.replies = list(replies)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    @property
    def payloads(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(app_id="test-app")


@pytest.fixture
def store(app_config) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(app_config)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_completion(app_config, recording_sleep):
    """Factory returning (client, endpoint) for a scripted list of replies."""

    def _make(*replies: Reply, config: Optional[AppConfig] = None):
        endpoint = ScriptedEndpoint(list(replies))
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(endpoint))
        client = CompletionClient(
            config or app_config,
            "test-key",
            http_client=http_client,
            sleep=recording_sleep,
        )
        return client, endpoint

    return _make


@pytest.fixture
def ok():
    """Factory for a 200 reply with the given text."""

    def _ok(text: str = "Grace is unmerited favor.", attributions=None) -> httpx.Response:
        return httpx.Response(200, json=gemini_body(text, attributions))

    return _ok


@pytest.fixture
def status():
    """Factory for an error reply with the given status code."""

    def _status(code: int) -> httpx.Response:
        return httpx.Response(code, json={"error": {"code": code, "message": "nope"}})

    return _status
