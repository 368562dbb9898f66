from __future__ import annotations

import urllib.parse
from dataclasses import dataclass

import httpx

from auth.credential_store import CredentialStore

MONZO_AUTHORIZE_URL = "https://auth.monzo.com/"
MONZO_TOKEN_URL = "https://api.monzo.com/oauth2/token"


class UpstreamAuthError(RuntimeError):
    def __init__(self, message: str, *, upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.status_code = 502
        self.upstream_status = upstream_status


@dataclass
class Credential:
    access_token: str
    refresh_token: str
    expires_in: int
    user_id: str
    token_type: str = "Bearer"
    client_id: str | None = None

    @classmethod
    def from_payload(cls, payload: object) -> "Credential":
        if not isinstance(payload, dict):
            raise UpstreamAuthError("Token response must be a JSON object.")

        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        expires_in = payload.get("expires_in")
        user_id = payload.get("user_id")
        token_type = payload.get("token_type", "Bearer")

        if not isinstance(access_token, str) or not access_token:
            raise UpstreamAuthError("Token response missing access_token.")
        if not isinstance(refresh_token, str) or not refresh_token:
            raise UpstreamAuthError("Token response missing refresh_token.")
        if isinstance(expires_in, bool) or not isinstance(expires_in, int) or expires_in <= 0:
            raise UpstreamAuthError("Token response missing expires_in.")
        if not isinstance(user_id, str) or not user_id:
            raise UpstreamAuthError("Token response missing user_id.")
        if not isinstance(token_type, str):
            raise UpstreamAuthError("Token response token_type must be a string.")

        client_id = payload.get("client_id")
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            user_id=user_id,
            token_type=token_type,
            client_id=client_id if isinstance(client_id, str) else None,
        )


def build_authorization_url(client_id: str, redirect_uri: str, state: str) -> str:
    query = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "state": state,
    }
    return f"{MONZO_AUTHORIZE_URL}?{urllib.parse.urlencode(query)}"


async def _token_request(
    payload: dict[str, str],
    *,
    client: httpx.AsyncClient | None = None,
) -> Credential:
    own_client = client is None
    http_client = client or httpx.AsyncClient()

    try:
        response = await http_client.post(MONZO_TOKEN_URL, data=payload)
        response.raise_for_status()
    except httpx.HTTPStatusError as error:
        detail = error.response.text
        raise UpstreamAuthError(
            f"Token request failed with status {error.response.status_code}: {detail}",
            upstream_status=error.response.status_code,
        ) from error
    finally:
        if own_client:
            await http_client.aclose()

    try:
        body = response.json()
    except ValueError as error:
        raise UpstreamAuthError("Token response is not valid JSON.") from error
    return Credential.from_payload(body)


async def exchange_code(
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> Credential:
    return await _token_request(
        {
            "grant_type": "authorization_code",
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": redirect_uri,
            "code": code,
        },
        client=client,
    )


async def refresh_token(
    client_id: str,
    client_secret: str,
    refresh_token: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> Credential:
    return await _token_request(
        {
            "grant_type": "refresh_token",
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
        },
        client=client,
    )


class OAuthExchange:
    """Runs the two token grants and persists whatever they return."""

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        store: CredentialStore,
        http_client: httpx.AsyncClient | None = None,
        exchange_code_fn=exchange_code,
        refresh_token_fn=refresh_token,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.store = store
        self._http_client = http_client
        self._exchange_code_fn = exchange_code_fn
        self._refresh_token_fn = refresh_token_fn

    async def exchange_authorization_code(self, code: str, redirect_uri: str) -> Credential:
        credential = await self._exchange_code_fn(
            client_id=self.client_id,
            client_secret=self.client_secret,
            code=code,
            redirect_uri=redirect_uri,
            client=self._http_client,
        )
        await self.store.save_credential(credential)
        return credential

    async def exchange_refresh_token(self, refresh_token: str) -> Credential:
        credential = await self._refresh_token_fn(
            client_id=self.client_id,
            client_secret=self.client_secret,
            refresh_token=refresh_token,
            client=self._http_client,
        )
        await self.store.save_credential(credential)
        return credential
