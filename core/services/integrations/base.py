"""Common OAuth token lifecycle for the activity and calendar providers.

Each provider adapter implements this interface so the dashboard commands can
treat connection state, token refresh and authorization failures uniformly.
Code exchange and refresh go through the trusted intermediary, which holds the
client secrets; the adapters only ever see the resulting token triple.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import httpx

from core.config import Settings
from core.errors import AuthError, NotConnectedError, ProviderError
from core.services.integrations.tokens import TokenSet, TokenStore

logger = logging.getLogger(__name__)


class OAuthAdapter(ABC):
    """Token-holding facade over one provider API."""

    PROVIDER: str = ""
    LABEL: str = ""
    # Intermediary function names
    EXCHANGE_FUNCTION: str = ""
    REFRESH_FUNCTION: str = ""

    def __init__(
        self,
        settings: Settings,
        token_store: TokenStore,
        client: httpx.AsyncClient,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self._token_store = token_store
        self._client = client
        self._clock = clock
        self._refresh_lock = asyncio.Lock()
        self.error: Optional[str] = None
        self.tokens: Optional[TokenSet] = token_store.load(self.PROVIDER)

    @property
    def is_connected(self) -> bool:
        return self.tokens is not None

    @abstractmethod
    def authorization_url(self, state: str = "") -> str:
        """Provider consent URL for a full-page redirect."""

    @abstractmethod
    def exchange_body(self, code: str) -> dict[str, Any]:
        """Intermediary request body for an authorization-code exchange."""

    @abstractmethod
    def refresh_body(self, refresh_token: str) -> dict[str, Any]:
        """Intermediary request body for a refresh-token grant."""

    # -- token persistence --

    def _save_tokens(self, tokens: TokenSet) -> None:
        self.tokens = tokens
        self._token_store.save(self.PROVIDER, tokens)

    def clear_tokens(self) -> None:
        self.tokens = None
        self._token_store.clear(self.PROVIDER)

    def disconnect(self) -> None:
        """Forget the local tokens; nothing is revoked provider-side."""
        self.clear_tokens()
        self.error = None
        logger.info("Disconnected from %s", self.PROVIDER)

    # -- intermediary calls --

    async def _call_function(self, name: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.settings.token_proxy_url.rstrip('/')}/{name}"
        try:
            resp = await self._client.post(url, json=body)
        except httpx.HTTPError as exc:
            raise ProviderError(self.PROVIDER, f"{self.LABEL} token service unreachable: {exc}") from exc
        if resp.status_code >= 400:
            try:
                message = resp.json().get("error") or resp.text
            except ValueError:
                message = resp.text
            raise ProviderError(self.PROVIDER, message or f"{self.LABEL} authentication failed", resp.status_code)
        return resp.json()

    async def handle_callback(self, code: str) -> bool:
        """Exchange an authorization code; records ``error`` and returns False on failure."""
        self.error = None
        try:
            payload = await self._call_function(self.EXCHANGE_FUNCTION, self.exchange_body(code))
            self._save_tokens(TokenSet.from_payload(payload, self._clock()))
        except (ProviderError, KeyError, ValueError) as exc:
            self.error = str(exc) or f"{self.LABEL} authentication failed"
            logger.warning("oauth_callback_failed", extra={"provider": self.PROVIDER, "error": self.error})
            return False
        logger.info("oauth_connected", extra={"provider": self.PROVIDER})
        return True

    async def refresh(self) -> bool:
        """Refresh the access token; any failure clears the tokens."""
        if self.tokens is None or not self.tokens.refresh_token:
            return False
        current = self.tokens
        try:
            payload = await self._call_function(self.REFRESH_FUNCTION, self.refresh_body(current.refresh_token))
            self._save_tokens(TokenSet.from_payload(payload, self._clock(), fallback_refresh=current.refresh_token))
        except (ProviderError, KeyError, ValueError) as exc:
            logger.warning("oauth_refresh_failed", extra={"provider": self.PROVIDER, "error": str(exc)})
            self.clear_tokens()
            return False
        return True

    async def get_valid_token(self) -> Optional[str]:
        """Current access token, refreshed first when it expires within the margin."""
        if self.tokens is None:
            return None
        async with self._refresh_lock:
            if self.tokens is not None and self.tokens.expires_within(
                self._clock(), self.settings.token_refresh_margin_sec
            ):
                if not await self.refresh():
                    return None
        return self.tokens.access_token if self.tokens else None

    async def require_token(self) -> str:
        if self.tokens is None:
            raise NotConnectedError(self.PROVIDER)
        token = await self.get_valid_token()
        if token is None:
            raise AuthError(self.PROVIDER, f"{self.LABEL} session expired, please reconnect")
        return token

    # -- provider API calls --

    async def api_request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Authorized provider request; a 401 clears the tokens and raises ``AuthError``."""
        token = await self.require_token()
        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {token}"
        try:
            resp = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderError(self.PROVIDER, f"{self.LABEL} request failed: {exc}") from exc
        if resp.status_code == 401:
            self.clear_tokens()
            self.error = f"{self.LABEL} session expired, please reconnect"
            raise AuthError(self.PROVIDER, self.error)
        return resp
