"""OAuth token triples and where they are kept between runs."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.orm import Session as DbSession
from sqlalchemy.orm import sessionmaker

from core.db import session_scope
from core.models import OAuthToken
from core.storage import JsonFileStore

logger = logging.getLogger(__name__)

# Fixed row ids of the oauth_tokens table
PROVIDER_ROW_IDS = {"strava": 1, "google": 2}


@dataclass(frozen=True)
class TokenSet:
    access_token: str
    refresh_token: str
    expires_at: int  # unix seconds

    def expires_within(self, now: float, margin_sec: int) -> bool:
        return self.expires_at < now + margin_sec

    @classmethod
    def from_payload(cls, payload: dict, now: float, fallback_refresh: str = "") -> "TokenSet":
        """Build from a token endpoint payload carrying ``expires_at`` or ``expires_in``."""
        if payload.get("expires_at") is not None:
            expires_at = int(payload["expires_at"])
        else:
            expires_at = int(now) + int(payload.get("expires_in") or 0)
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or fallback_refresh,
            expires_at=expires_at,
        )


class TokenStore(Protocol):
    def load(self, provider: str) -> Optional[TokenSet]: ...

    def save(self, provider: str, tokens: TokenSet) -> None: ...

    def clear(self, provider: str) -> None: ...


class FileTokenStore:
    """Tokens kept in the local JSON store under ``<provider>-tokens``."""

    def __init__(self, store: JsonFileStore):
        self._store = store

    @staticmethod
    def _key(provider: str) -> str:
        return f"{provider}-tokens"

    def load(self, provider: str) -> Optional[TokenSet]:
        raw = self._store.get(self._key(provider))
        if not raw:
            return None
        try:
            return TokenSet(
                access_token=raw["access_token"],
                refresh_token=raw.get("refresh_token", ""),
                expires_at=int(raw["expires_at"]),
            )
        except (KeyError, TypeError, ValueError):
            logger.warning("Ignoring malformed %s tokens in local store", provider)
            return None

    def save(self, provider: str, tokens: TokenSet) -> None:
        self._store.set(self._key(provider), asdict(tokens))

    def clear(self, provider: str) -> None:
        self._store.delete(self._key(provider))


class SqlTokenStore:
    """Tokens kept in the ``oauth_tokens`` table, one row per provider."""

    def __init__(self, session_factory: sessionmaker[DbSession]):
        self._factory = session_factory

    def load(self, provider: str) -> Optional[TokenSet]:
        with session_scope(self._factory) as db:
            row = db.execute(select(OAuthToken).where(OAuthToken.provider == provider)).scalar_one_or_none()
            if row is None:
                return None
            return TokenSet(row.access_token, row.refresh_token, int(row.expires_at))

    def save(self, provider: str, tokens: TokenSet) -> None:
        with session_scope(self._factory) as db:
            db.merge(
                OAuthToken(
                    id=PROVIDER_ROW_IDS[provider],
                    provider=provider,
                    access_token=tokens.access_token,
                    refresh_token=tokens.refresh_token,
                    expires_at=tokens.expires_at,
                )
            )

    def clear(self, provider: str) -> None:
        with session_scope(self._factory) as db:
            db.execute(delete(OAuthToken).where(OAuthToken.provider == provider))
