from __future__ import annotations

import logging
import secrets

from starlette.requests import Request
from starlette.responses import PlainTextResponse, RedirectResponse, Response

from auth import monzo_oauth2
from auth.credential_store import CredentialStore
from auth.monzo_oauth2 import OAuthExchange

LOGGER = logging.getLogger("monzo_pots.auth")

AUTH_PATH = "/auth/monzo"
CALLBACK_PATH = "/auth/monzo/callback"
PENDING_STATE_TTL_SECONDS = 300


class BadRequest(RuntimeError):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.status_code = 400


class InvalidOrExpiredState(BadRequest):
    def __init__(self, message: str = "invalid state token") -> None:
        super().__init__(message)


class AuthFlow:
    def __init__(
        self,
        *,
        client_id: str,
        store: CredentialStore,
        exchange: OAuthExchange,
        public_url: str | None = None,
        pending_state_ttl_seconds: int = PENDING_STATE_TTL_SECONDS,
    ) -> None:
        self.client_id = client_id
        self.store = store
        self.exchange = exchange
        self.public_url = public_url.rstrip("/") if public_url else None
        self.pending_state_ttl_seconds = pending_state_ttl_seconds

    def redirect_uri(self, request: Request) -> str:
        if self.public_url:
            return f"{self.public_url}{CALLBACK_PATH}"
        host = request.headers.get("host") or request.url.netloc
        return f"https://{host}{CALLBACK_PATH}"

    async def handle_authorize(self, request: Request) -> Response:
        state = secrets.token_urlsafe(24)
        await self.store.put_pending_state(state, self.pending_state_ttl_seconds)

        authorize_url = monzo_oauth2.build_authorization_url(
            client_id=self.client_id,
            redirect_uri=self.redirect_uri(request),
            state=state,
        )
        return RedirectResponse(url=authorize_url, status_code=302)

    async def handle_callback(self, request: Request) -> Response:
        if request.query_params.get("error"):
            LOGGER.warning(
                "Monzo authorization returned an error: %s",
                request.query_params.get("error"),
            )
            raise BadRequest("authorization was not granted")

        code = request.query_params.get("code")
        state = request.query_params.get("state")
        if not code or not state:
            raise BadRequest("invalid code or state")

        if not await self.store.consume_pending_state(state):
            LOGGER.warning("Rejected unknown, expired or reused state token")
            raise InvalidOrExpiredState()

        credential = await self.exchange.exchange_authorization_code(
            code, self.redirect_uri(request)
        )
        LOGGER.info("Stored credentials for user_id=%s", credential.user_id)
        return PlainTextResponse(f"authenticated as {credential.user_id}")
