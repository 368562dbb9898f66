from __future__ import annotations

import enum
from dataclasses import dataclass, field

import httpx

from .constants import LOGGER


class UpstreamOutcome(enum.Enum):
    OK = "ok"
    AUTH_EXPIRED = "auth_expired"
    ERROR = "error"


@dataclass
class UpstreamResult:
    outcome: UpstreamOutcome
    status_code: int
    payload: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.outcome is UpstreamOutcome.OK


class UpstreamRequestError(RuntimeError):
    def __init__(self, message: str, *, upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.status_code = 502
        self.upstream_status = upstream_status


def friendly_error_message(status_code: int) -> str:
    if status_code == 401:
        return "Authentication failed. The Monzo access token may have expired."
    if status_code == 403:
        return "The Monzo token is not permitted to read this resource."
    if status_code == 404:
        return "The requested resource was not found on Monzo."
    if status_code == 429:
        return "Monzo rate limit exceeded."
    if status_code >= 500:
        return "Monzo API is experiencing issues. Please try again later."
    return f"Monzo API request failed with status {status_code}."


def classify_response(response: httpx.Response) -> UpstreamResult:
    if response.status_code == 401:
        return UpstreamResult(UpstreamOutcome.AUTH_EXPIRED, response.status_code)
    if not response.is_success:
        return UpstreamResult(UpstreamOutcome.ERROR, response.status_code)

    try:
        payload = response.json()
    except ValueError:
        LOGGER.warning("Monzo API returned a non-JSON body endpoint=%s", response.request.url)
        return UpstreamResult(UpstreamOutcome.ERROR, response.status_code)
    if not isinstance(payload, dict):
        return UpstreamResult(UpstreamOutcome.ERROR, response.status_code)
    return UpstreamResult(UpstreamOutcome.OK, response.status_code, payload)


async def get_json(
    client: httpx.AsyncClient,
    path: str,
    *,
    access_token: str,
    params: dict[str, str] | None = None,
) -> UpstreamResult:
    response = await client.get(
        path,
        params=params,
        headers={"Authorization": f"Bearer {access_token}"},
    )
    return classify_response(response)


def raise_for_result(result: UpstreamResult, what: str) -> dict:
    if result.ok:
        return result.payload
    raise UpstreamRequestError(
        f"{what}: {friendly_error_message(result.status_code)}",
        upstream_status=result.status_code,
    )


def build_log_hooks(debug_enabled: bool) -> dict[str, list]:
    async def log_request(request: httpx.Request) -> None:
        if not debug_enabled:
            return
        LOGGER.info("Monzo API request %s %s", request.method, request.url.path)

    async def log_response(response: httpx.Response) -> None:
        if not debug_enabled:
            return
        LOGGER.info(
            "Monzo API response %s %s -> %s",
            response.request.method,
            response.request.url.path,
            response.status_code,
        )
        if response.status_code >= 400:
            body = await response.aread()
            text = body.decode("utf-8", errors="replace")
            if len(text) > 1000:
                text = text[:1000] + "...<truncated>"
            LOGGER.warning("Monzo API error body: %s", text)

    return {"request": [log_request], "response": [log_response]}


def build_http_client(
    *,
    base_url: str,
    timeout: float,
    debug_enabled: bool,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout,
        transport=transport,
        event_hooks=build_log_hooks(debug_enabled),
    )
