from __future__ import annotations

import enum
from dataclasses import dataclass

import httpx

from auth.token_manager import TokenManager

from .constants import DEFAULT_CURRENCY_LOCALE, LOGGER
from .formatting import format_amount
from .http import UpstreamOutcome, UpstreamRequestError, get_json, raise_for_result


class ReportMode(enum.Enum):
    FILTERED_POTS = "pots"
    WHOLE_ACCOUNTS = "accounts"


@dataclass
class PotBalanceView:
    id: str
    balance: str
    name: str | None = None
    cover_image_url: str | None = None

    def to_dict(self) -> dict[str, str]:
        payload = {
            "name": self.name,
            "balance": self.balance,
            "cover_image_url": self.cover_image_url,
        }
        return {key: value for key, value in payload.items() if value is not None}


def _amount(entry: dict, what: str) -> tuple[int, str]:
    balance = entry.get("balance")
    currency = entry.get("currency")
    if isinstance(balance, bool) or not isinstance(balance, int):
        raise UpstreamRequestError(f"{what}: balance missing from response.")
    if not isinstance(currency, str) or not currency:
        raise UpstreamRequestError(f"{what}: currency missing from response.")
    return balance, currency


class BalanceReporter:
    """Fetches balances for resolved accounts.

    With explicit pot ids only those pots are reported, in upstream order, and
    unknown ids are dropped. Without pot ids the mode decides: whole accounts
    report one entry per account, filtered pots report every live pot.
    """

    def __init__(
        self,
        token_manager: TokenManager,
        client: httpx.AsyncClient,
        *,
        mode: ReportMode = ReportMode.FILTERED_POTS,
        locale: str = DEFAULT_CURRENCY_LOCALE,
    ) -> None:
        self.token_manager = token_manager
        self.client = client
        self.mode = mode
        self.locale = locale

    async def fetch_balances(
        self,
        user_id: str,
        accounts: list[str],
        requested_pot_ids: list[str] | None = None,
    ) -> list[PotBalanceView]:
        views: list[PotBalanceView] = []
        for account_id in accounts:
            if requested_pot_ids:
                views.extend(
                    await self._pot_views(user_id, account_id, set(requested_pot_ids))
                )
            elif self.mode is ReportMode.WHOLE_ACCOUNTS:
                views.append(await self._account_view(user_id, account_id))
            else:
                views.extend(await self._pot_views(user_id, account_id, None))
        return views

    async def _get_with_refresh(
        self,
        user_id: str,
        path: str,
        params: dict[str, str],
        what: str,
    ) -> dict:
        access_token = await self.token_manager.get_access_token(user_id)
        result = await get_json(self.client, path, access_token=access_token, params=params)

        # One forced refresh and one retry; a second 401 is final.
        if result.outcome is UpstreamOutcome.AUTH_EXPIRED:
            LOGGER.info("Monzo rejected cached token for user_id=%s; refreshing", user_id)
            access_token = await self.token_manager.get_access_token(user_id, force_refresh=True)
            result = await get_json(self.client, path, access_token=access_token, params=params)

        return raise_for_result(result, what)

    async def _account_view(self, user_id: str, account_id: str) -> PotBalanceView:
        payload = await self._get_with_refresh(
            user_id, "/balance", {"account_id": account_id}, "Reading balance failed"
        )
        balance, currency = _amount(payload, "Reading balance failed")
        return PotBalanceView(id=account_id, balance=format_amount(balance, currency, self.locale))

    async def _pot_views(
        self,
        user_id: str,
        account_id: str,
        wanted: set[str] | None,
    ) -> list[PotBalanceView]:
        payload = await self._get_with_refresh(
            user_id, "/pots", {"current_account_id": account_id}, "Listing pots failed"
        )
        pots = payload.get("pots")
        if not isinstance(pots, list):
            raise UpstreamRequestError("Listing pots failed: response has no pots list.")

        views = []
        for pot in pots:
            if not isinstance(pot, dict) or not isinstance(pot.get("id"), str):
                continue
            if wanted is None:
                if pot.get("deleted"):
                    continue
            elif pot.get("id") not in wanted:
                continue

            balance, currency = _amount(pot, "Listing pots failed")
            views.append(
                PotBalanceView(
                    id=pot["id"],
                    name=pot.get("name"),
                    balance=format_amount(balance, currency, self.locale),
                    cover_image_url=pot.get("cover_image_url"),
                )
            )
        return views
