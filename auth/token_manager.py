from __future__ import annotations

import logging

from auth.credential_store import CredentialStore
from auth.monzo_oauth2 import OAuthExchange

LOGGER = logging.getLogger("monzo_pots.auth")


class NoRefreshTokenError(RuntimeError):
    def __init__(self, user_id: str) -> None:
        super().__init__(
            f"No refresh token stored for user {user_id}; re-authenticate via /auth/monzo."
        )
        self.status_code = 401
        self.user_id = user_id


class TokenManager:
    def __init__(self, store: CredentialStore, exchange: OAuthExchange) -> None:
        self.store = store
        self.exchange = exchange

    async def get_access_token(self, user_id: str, *, force_refresh: bool = False) -> str:
        """Return a usable access token, refreshing it when needed.

        ``force_refresh`` skips the cached token. Callers use it when upstream
        rejected a token the cache still considered valid.
        """
        if not force_refresh:
            cached = await self.store.get_access_token(user_id)
            if cached:
                return cached

        stored_refresh_token = await self.store.get_refresh_token(user_id)
        if not stored_refresh_token:
            raise NoRefreshTokenError(user_id)

        # Concurrent refreshes for one user may both land; the last write wins.
        LOGGER.info("Refreshing access token user_id=%s forced=%s", user_id, force_refresh)
        credential = await self.exchange.exchange_refresh_token(stored_refresh_token)
        return credential.access_token
