"""Session identity resolution."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
import structlog

from ..errors import IdentityError

logger = structlog.get_logger()


class IdentityProvider(ABC):
    """Abstract base class for identity providers."""

    @abstractmethod
    async def resolve_identity(self) -> str:
        """Return the opaque user id for this session."""
        pass


class StaticIdentityProvider(IdentityProvider):
    """Identity fixed up front, for local runs and tests."""

    def __init__(self, user_id: str):
        self._user_id = str(user_id)

    async def resolve_identity(self) -> str:
        return self._user_id


class FirebaseIdentityProvider(IdentityProvider):
    """Resolves identity against the Firebase Auth REST API.

    Order of preference: an existing session user id, sign-in with the
    bootstrap custom token, then anonymous sign-up.
    """

    BASE_URL = "https://identitytoolkit.googleapis.com/v1"

    def __init__(
        self,
        provider_config: Dict[str, Any],
        bootstrap_token: Optional[str] = None,
        session_user_id: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key = provider_config["apiKey"]
        self._bootstrap_token = bootstrap_token
        self._session_user_id = session_user_id
        self._http = http_client or httpx.AsyncClient()
        self._owns_client = http_client is None

    async def _call(self, method: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._http.post(
                f"{self.BASE_URL}/{method}",
                params={"key": self._api_key},
                json=body,
            )
        except httpx.TransportError as e:
            raise IdentityError(f"{method} failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not response.is_success:
            error = data.get("error") if isinstance(data, dict) else None
            reason = error.get("message") if isinstance(error, dict) else None
            raise IdentityError(
                f"{method} failed with status {response.status_code}: {reason or 'unknown error'}"
            )
        if not isinstance(data, dict):
            raise IdentityError(f"{method} returned a malformed body")
        return data

    async def _sign_in_with_custom_token(self, token: str) -> str:
        data = await self._call(
            "accounts:signInWithCustomToken",
            {"token": token, "returnSecureToken": True},
        )
        id_token = data.get("idToken")
        if not id_token:
            raise IdentityError("Custom token sign-in returned no idToken")

        # signInWithCustomToken does not echo the uid; look it up.
        lookup = await self._call("accounts:lookup", {"idToken": id_token})
        users = lookup.get("users") or []
        if not users or not users[0].get("localId"):
            raise IdentityError("Account lookup returned no user")
        return users[0]["localId"]

    async def _sign_up_anonymously(self) -> str:
        data = await self._call("accounts:signUp", {"returnSecureToken": True})
        user_id = data.get("localId")
        if not user_id:
            raise IdentityError("Anonymous sign-up returned no localId")
        return user_id

    async def resolve_identity(self) -> str:
        if self._session_user_id:
            method, user_id = "session", self._session_user_id
        elif self._bootstrap_token:
            method = "custom_token"
            user_id = await self._sign_in_with_custom_token(self._bootstrap_token)
        else:
            method = "anonymous"
            user_id = await self._sign_up_anonymously()

        logger.info("identity_resolved", method=method, user_id=user_id)
        return user_id

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()
