from __future__ import annotations

import httpx

from auth.credential_store import CredentialStore

from .constants import DEFAULT_ACCOUNT_TYPE, LOGGER
from .http import UpstreamRequestError, get_json, raise_for_result


class NoMatchingAccountError(RuntimeError):
    def __init__(self, user_id: str, account_type: str) -> None:
        super().__init__(f"No open {account_type} account found for user {user_id}.")
        self.status_code = 502
        self.user_id = user_id
        self.account_type = account_type


class AccountResolver:
    def __init__(
        self,
        store: CredentialStore,
        client: httpx.AsyncClient,
        *,
        account_type: str = DEFAULT_ACCOUNT_TYPE,
    ) -> None:
        self.store = store
        self.client = client
        self.account_type = account_type

    async def resolve_accounts(self, user_id: str, access_token: str) -> list[str]:
        # A populated cache is trusted as-is and never expires; see DESIGN.md.
        cached = await self.store.get_account_ids(user_id)
        if cached:
            return cached

        result = await get_json(
            self.client,
            "/accounts",
            access_token=access_token,
            params={"account_type": self.account_type},
        )
        payload = raise_for_result(result, "Listing accounts failed")

        accounts = payload.get("accounts")
        if not isinstance(accounts, list):
            raise UpstreamRequestError("Listing accounts failed: response has no accounts list.")
        account_ids = [
            account["id"]
            for account in accounts
            if isinstance(account, dict)
            and isinstance(account.get("id"), str)
            and not account.get("closed", False)
        ]
        if not account_ids:
            raise NoMatchingAccountError(user_id, self.account_type)

        await self.store.put_account_ids(user_id, account_ids)
        LOGGER.info(
            "Cached %s %s account(s) for user_id=%s",
            len(account_ids),
            self.account_type,
            user_id,
        )
        return account_ids
