from __future__ import annotations

import json

import httpx

from auth.monzo_oauth2 import Credential
from monzo_pots.env import Settings


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides) -> Settings:
    values = {
        "client_id": "client-id",
        "client_secret": "client-secret",
        "balance_shared_secret": "hunter2",
        "public_url": "https://pots.example.com",
        "store_path": None,
        "debug": False,
    }
    values.update(overrides)
    return Settings(**values)


def make_credential(
    access_token: str = "access-1",
    refresh_token: str = "refresh-1",
    expires_in: int = 3600,
    user_id: str = "user_1",
) -> Credential:
    return Credential(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=expires_in,
        user_id=user_id,
    )


class RecordingRefresh:
    """Stands in for auth.monzo_oauth2.refresh_token and counts calls."""

    def __init__(self, *credentials: Credential) -> None:
        self._credentials = list(credentials) or [make_credential("access-refreshed", "refresh-2")]
        self.calls: list[dict] = []

    async def __call__(self, **kwargs) -> Credential:
        self.calls.append(kwargs)
        index = min(len(self.calls) - 1, len(self._credentials) - 1)
        return self._credentials[index]


class FakeMonzo:
    """Scripted Monzo data API for httpx.MockTransport.

    ``routes`` maps a path to the list of (status, body) answers returned in
    order; the last answer repeats.
    """

    def __init__(self, routes: dict[str, list[tuple[int, dict]]]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def calls(self, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answers = self.routes.get(request.url.path)
        if not answers:
            return httpx.Response(404, json={"code": "not_found"})
        index = min(len(self.calls(request.url.path)) - 1, len(answers) - 1)
        status, body = answers[index]
        return httpx.Response(
            status,
            content=json.dumps(body).encode("utf-8"),
            headers={"content-type": "application/json"},
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url="https://api.monzo.com",
            transport=httpx.MockTransport(self.handler),
        )


def pots_payload(*pots: dict) -> dict:
    return {"pots": list(pots)}


def pot(pot_id: str, name: str, balance: int, currency: str = "GBP", **extra) -> dict:
    payload = {
        "id": pot_id,
        "name": name,
        "balance": balance,
        "currency": currency,
        "cover_image_url": f"https://images.example.com/{pot_id}.png",
        "deleted": False,
    }
    payload.update(extra)
    return payload
