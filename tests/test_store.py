"""Test suite for the document stores."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from theology_chat.domain.models import ASSISTANT_ROLE, USER_ROLE, Message
from theology_chat.repositories.firestore import FirestoreDocumentStore

USER_ID = "user-1"


def messages():
    return [
        Message(role=ASSISTANT_ROLE, text="Welcome", timestamp=datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)),
        Message(role=USER_ROLE, text="**Why** pray?", timestamp=datetime(2025, 1, 1, 12, 1, tzinfo=timezone.utc)),
        Message(role=ASSISTANT_ROLE, text="- To listen\n- To give thanks", timestamp=datetime(2025, 1, 1, 12, 2, tzinfo=timezone.utc)),
    ]


def test_document_path(app_config):
    """Test the namespaced per-identity document path."""
    assert app_config.document_path("abc") == "artifacts/test-app/users/abc/chat_data/conversation_data"


@pytest.mark.asyncio
async def test_subscribe_delivers_absent_immediately(store):
    """Test a new subscription receives None for a missing document."""
    snapshots = []
    await store.subscribe(USER_ID, snapshots.append)
    assert snapshots == [None]


@pytest.mark.asyncio
async def test_round_trip_through_subscription(store):
    """Test persisted messages come back identical and in order."""
    snapshots = []
    await store.subscribe(USER_ID, snapshots.append)

    await store.persist(USER_ID, messages(), version=4)

    document = snapshots[-1]
    assert document.messages == messages()
    assert [(m.role, m.text, m.timestamp) for m in document.messages] == [
        (m.role, m.text, m.timestamp) for m in messages()
    ]
    assert document.version == 4
    assert document.last_updated is not None


@pytest.mark.asyncio
async def test_late_subscriber_gets_current_document(store):
    """Test subscription delivers the stored document right away."""
    await store.persist(USER_ID, messages())

    snapshots = []
    await store.subscribe(USER_ID, snapshots.append)
    assert snapshots[0].messages == messages()


@pytest.mark.asyncio
async def test_persist_merges_without_touching_other_fields(store, app_config):
    """Test the write replaces messages but keeps unrelated fields."""
    store._documents[app_config.document_path(USER_ID)] = {"theme": "dark", "messages": []}

    await store.persist(USER_ID, messages()[:1])

    raw = store.get_raw(USER_ID)
    assert raw["theme"] == "dark"
    assert len(raw["messages"]) == 1
    assert "lastUpdated" in raw


@pytest.mark.asyncio
async def test_identities_are_isolated(store):
    """Test each identity has its own document."""
    await store.persist("a", messages())
    assert store.get_raw("b") is None


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery(store):
    """Test no snapshots arrive after unsubscribing."""
    snapshots = []
    subscription = await store.subscribe(USER_ID, snapshots.append)
    subscription.unsubscribe()

    await store.persist(USER_ID, messages())
    assert snapshots == [None]


@pytest.mark.asyncio
async def test_unreadable_document_reports_error(store, app_config):
    """Test a document that fails validation goes to the error callback."""
    store._documents[app_config.document_path(USER_ID)] = {"messages": [{"role": "wizard"}]}
    snapshots, errors = [], []

    await store.subscribe(USER_ID, snapshots.append, errors.append)

    assert snapshots == []
    assert len(errors) == 1


@pytest.mark.asyncio
async def test_firestore_persist_merges(app_config):
    """Test the Firestore store writes with merge=True at the document path."""
    client = MagicMock()
    store = FirestoreDocumentStore(app_config, client=client)

    await store.persist(USER_ID, messages(), version=2)

    client.document.assert_called_with(app_config.document_path(USER_ID))
    document = client.document.return_value
    (update,), kwargs = document.set.call_args
    assert kwargs == {"merge": True}
    assert update["version"] == 2
    assert [m["text"] for m in update["messages"]] == [m.text for m in messages()]
    assert set(update) == {"messages", "lastUpdated", "version"}


@pytest.mark.asyncio
async def test_firestore_snapshots_reach_the_loop(app_config):
    """Test watch callbacks from another thread are dispatched on the event loop."""
    client = MagicMock()
    store = FirestoreDocumentStore(app_config, client=client)
    received = asyncio.Queue()

    subscription = await store.subscribe(USER_ID, received.put_nowait)
    watch_callback = client.document.return_value.on_snapshot.call_args.args[0]

    existing = MagicMock(exists=True)
    existing.to_dict.return_value = {"messages": [m.model_dump(mode="json") for m in messages()]}
    missing = MagicMock(exists=False)

    await asyncio.to_thread(watch_callback, [existing], [], None)
    await asyncio.to_thread(watch_callback, [missing], [], None)
    await asyncio.to_thread(watch_callback, [], [], None)

    assert (await asyncio.wait_for(received.get(), 1)).messages == messages()
    assert await asyncio.wait_for(received.get(), 1) is None
    assert await asyncio.wait_for(received.get(), 1) is None

    subscription.unsubscribe()
    client.document.return_value.on_snapshot.return_value.unsubscribe.assert_called_once()
