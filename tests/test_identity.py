"""Test suite for identity resolution."""

import json

import httpx
import pytest

from theology_chat.errors import IdentityError
from theology_chat.services.identity import FirebaseIdentityProvider, StaticIdentityProvider

PROVIDER_CONFIG = {"apiKey": "firebase-key", "projectId": "demo"}


def provider(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FirebaseIdentityProvider(PROVIDER_CONFIG, http_client=client, **kwargs)


@pytest.mark.asyncio
async def test_static_identity():
    """Test the fixed identity provider."""
    assert await StaticIdentityProvider("abc").resolve_identity() == "abc"


@pytest.mark.asyncio
async def test_existing_session_makes_no_calls():
    """Test a pre-existing session identity is used as-is."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    identity = provider(handler, session_user_id="existing", bootstrap_token="token")
    assert await identity.resolve_identity() == "existing"
    assert calls == []


@pytest.mark.asyncio
async def test_custom_token_sign_in():
    """Test the bootstrap token is redeemed and the uid looked up."""
    calls = []

    def handler(request):
        calls.append(request)
        body = json.loads(request.content)
        if request.url.path.endswith("accounts:signInWithCustomToken"):
            assert body == {"token": "bootstrap", "returnSecureToken": True}
            return httpx.Response(200, json={"idToken": "id-token", "refreshToken": "r"})
        assert request.url.path.endswith("accounts:lookup")
        assert body == {"idToken": "id-token"}
        return httpx.Response(200, json={"users": [{"localId": "uid-from-token"}]})

    identity = provider(handler, bootstrap_token="bootstrap")
    assert await identity.resolve_identity() == "uid-from-token"
    assert all(call.url.params["key"] == "firebase-key" for call in calls)
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_anonymous_sign_up():
    """Test anonymous sign-up when no token is supplied."""

    def handler(request):
        assert request.url.path.endswith("accounts:signUp")
        return httpx.Response(200, json={"localId": "anon-uid", "idToken": "t"})

    assert await provider(handler).resolve_identity() == "anon-uid"


@pytest.mark.asyncio
async def test_rejected_token_raises():
    """Test a rejected custom token raises IdentityError with the reason."""

    def handler(request):
        return httpx.Response(400, json={"error": {"message": "INVALID_CUSTOM_TOKEN"}})

    with pytest.raises(IdentityError, match="INVALID_CUSTOM_TOKEN"):
        await provider(handler, bootstrap_token="bad").resolve_identity()


@pytest.mark.asyncio
async def test_transport_failure_raises():
    """Test a network failure raises IdentityError."""

    def handler(request):
        raise httpx.ConnectError("offline", request=request)

    with pytest.raises(IdentityError):
        await provider(handler).resolve_identity()


@pytest.mark.asyncio
async def test_missing_local_id_raises():
    """Test a sign-up response without a uid is rejected."""

    def handler(request):
        return httpx.Response(200, json={"idToken": "t"})

    with pytest.raises(IdentityError):
        await provider(handler).resolve_identity()
