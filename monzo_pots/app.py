from __future__ import annotations

import base64
import binascii
import contextlib
import hmac

import httpx
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from auth import monzo_oauth2
from auth.credential_store import CredentialStore
from auth.kv_store import FileKVStore, KVStore, MemoryKVStore
from auth.monzo_oauth2 import OAuthExchange, UpstreamAuthError
from auth.oauth_routes import AUTH_PATH, CALLBACK_PATH, AuthFlow, BadRequest
from auth.token_manager import NoRefreshTokenError, TokenManager

from .accounts import AccountResolver, NoMatchingAccountError
from .balances import BalanceReporter
from .constants import APP_VERSION, BALANCES_PATH, HEALTH_PATH, LOGGER
from .env import Settings
from .http import UpstreamRequestError, build_http_client

INVALID_BALANCE_REQUEST = "invalid secret or user_id"
UPSTREAM_FAILURE = "upstream request to Monzo failed"


def decode_shared_secret(raw: str | None) -> str:
    if not raw:
        return ""
    # An unescaped "+" in the query string arrives as a space.
    raw = raw.replace(" ", "+").strip()
    raw += "=" * (-len(raw) % 4)
    try:
        return base64.b64decode(raw, validate=True).decode("utf-8").strip()
    except (binascii.Error, UnicodeDecodeError):
        raise BadRequest(INVALID_BALANCE_REQUEST)


def parse_pot_ids(raw: str | None) -> list[str]:
    if not raw:
        return []
    pot_ids: list[str] = []
    for part in raw.split(","):
        part = part.strip()
        if part and part not in pot_ids:
            pot_ids.append(part)
    return pot_ids


class BalancesEndpoint:
    def __init__(
        self,
        *,
        shared_secret: str,
        token_manager: TokenManager,
        resolver: AccountResolver,
        reporter: BalanceReporter,
    ) -> None:
        self.shared_secret = shared_secret
        self.token_manager = token_manager
        self.resolver = resolver
        self.reporter = reporter

    def _check_secret(self, presented: str) -> bool:
        if not presented:
            return False
        return hmac.compare_digest(presented.encode("utf-8"), self.shared_secret.encode("utf-8"))

    async def handle(self, request: Request) -> Response:
        secret = decode_shared_secret(request.query_params.get("secret"))
        user_id = request.query_params.get("user_id")
        pot_ids = parse_pot_ids(request.query_params.get("pot_ids"))

        if not user_id or not self._check_secret(secret):
            raise BadRequest(INVALID_BALANCE_REQUEST)

        access_token = await self.token_manager.get_access_token(user_id)
        accounts = await self.resolver.resolve_accounts(user_id, access_token)
        views = await self.reporter.fetch_balances(user_id, accounts, pot_ids)
        return JSONResponse([view.to_dict() for view in views])


async def _bad_request(request: Request, exc: Exception) -> Response:
    del request
    return PlainTextResponse(str(exc), status_code=400)


async def _reauthenticate(request: Request, exc: Exception) -> Response:
    del request
    LOGGER.warning("%s", exc)
    return PlainTextResponse(str(exc), status_code=401)


async def _upstream_failure(request: Request, exc: Exception) -> Response:
    LOGGER.warning("Upstream failure path=%s error=%s", request.url.path, exc)
    return PlainTextResponse(UPSTREAM_FAILURE, status_code=502)


async def _no_matching_account(request: Request, exc: Exception) -> Response:
    del request
    LOGGER.warning("%s", exc)
    return PlainTextResponse(str(exc), status_code=502)


def create_app(
    settings: Settings,
    *,
    kv: KVStore | None = None,
    http_client: httpx.AsyncClient | None = None,
    exchange_code_fn=monzo_oauth2.exchange_code,
    refresh_token_fn=monzo_oauth2.refresh_token,
) -> Starlette:
    if kv is None:
        kv = FileKVStore(settings.store_path) if settings.store_path else MemoryKVStore()
    own_client = http_client is None
    client = http_client or build_http_client(
        base_url=settings.api_base_url,
        timeout=settings.api_timeout,
        debug_enabled=settings.debug,
    )

    store = CredentialStore(kv)
    exchange = OAuthExchange(
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        store=store,
        http_client=client,
        exchange_code_fn=exchange_code_fn,
        refresh_token_fn=refresh_token_fn,
    )
    token_manager = TokenManager(store, exchange)
    auth_flow = AuthFlow(
        client_id=settings.client_id,
        store=store,
        exchange=exchange,
        public_url=settings.public_url,
    )
    balances = BalancesEndpoint(
        shared_secret=settings.balance_shared_secret,
        token_manager=token_manager,
        resolver=AccountResolver(store, client, account_type=settings.account_type),
        reporter=BalanceReporter(
            token_manager,
            client,
            mode=settings.report_mode,
            locale=settings.currency_locale,
        ),
    )

    async def dispatch(request: Request) -> Response:
        path = request.url.path.rstrip("/")
        if path.endswith(CALLBACK_PATH):
            return await auth_flow.handle_callback(request)
        if path.endswith(AUTH_PATH):
            return await auth_flow.handle_authorize(request)
        if path.endswith(BALANCES_PATH):
            return await balances.handle(request)
        if path.endswith(HEALTH_PATH):
            return JSONResponse({"status": "ok", "version": APP_VERSION})
        return PlainTextResponse("try /auth/monzo")

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        del app
        try:
            yield
        finally:
            if own_client:
                await client.aclose()

    app = Starlette(
        routes=[Route("/{path:path}", dispatch, methods=["GET"])],
        exception_handlers={
            BadRequest: _bad_request,
            NoRefreshTokenError: _reauthenticate,
            NoMatchingAccountError: _no_matching_account,
            UpstreamAuthError: _upstream_failure,
            UpstreamRequestError: _upstream_failure,
            httpx.HTTPError: _upstream_failure,
        },
        lifespan=lifespan,
    )
    return app
