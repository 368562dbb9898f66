"""Namespaced access to the persisted OAuth state.

Every record lives in a single :class:`~auth.kv_store.KVStore`:

* ``state:<token>``: pending authorization state, short TTL, single use.
* ``access_token:<user_id>``: expires with the token's declared lifetime.
* ``refresh_token:<user_id>``: kept until the next exchange overwrites it.
* ``account_ids:<user_id>``: JSON list of resolved account ids, no TTL.

Writes are independent; there is no transaction spanning two keys.
"""

from __future__ import annotations

import json
import time
from typing import TYPE_CHECKING

from auth.kv_store import KVStore

if TYPE_CHECKING:
    from auth.monzo_oauth2 import Credential


def state_key(token: str) -> str:
    return f"state:{token}"


def access_token_key(user_id: str) -> str:
    return f"access_token:{user_id}"


def refresh_token_key(user_id: str) -> str:
    return f"refresh_token:{user_id}"


def account_ids_key(user_id: str) -> str:
    return f"account_ids:{user_id}"


class CredentialStore:
    def __init__(self, kv: KVStore) -> None:
        self.kv = kv

    async def put_pending_state(self, token: str, ttl_seconds: int) -> None:
        await self.kv.put(state_key(token), str(time.time()), ttl_seconds=ttl_seconds)

    async def consume_pending_state(self, token: str) -> bool:
        """Return True the first time a live state token is presented."""
        key = state_key(token)
        if await self.kv.get(key) is None:
            return False
        await self.kv.delete(key)
        return True

    async def get_access_token(self, user_id: str) -> str | None:
        return await self.kv.get(access_token_key(user_id))

    async def get_refresh_token(self, user_id: str) -> str | None:
        return await self.kv.get(refresh_token_key(user_id))

    async def save_credential(self, credential: "Credential") -> None:
        await self.kv.put(
            access_token_key(credential.user_id),
            credential.access_token,
            ttl_seconds=credential.expires_in,
        )
        await self.kv.put(refresh_token_key(credential.user_id), credential.refresh_token)

    async def get_account_ids(self, user_id: str) -> list[str] | None:
        raw = await self.kv.get(account_ids_key(user_id))
        if raw is None:
            return None
        ids = json.loads(raw)
        if not isinstance(ids, list) or not all(isinstance(item, str) for item in ids):
            raise RuntimeError(f"Cached account ids for {user_id} are malformed.")
        return ids

    async def put_account_ids(self, user_id: str, account_ids: list[str]) -> None:
        await self.kv.put(account_ids_key(user_id), json.dumps(account_ids))
