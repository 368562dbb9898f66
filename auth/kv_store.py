from __future__ import annotations

import json
import os
import tempfile
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable


@dataclass
class StoredValue:
    value: str
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class KVStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    async def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:
        raise NotImplementedError


def _expires_at(now: float, ttl_seconds: int | None) -> float | None:
    if ttl_seconds is None:
        return None
    return now + ttl_seconds


class MemoryKVStore(KVStore):
    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._values: dict[str, StoredValue] = {}

    async def get(self, key: str) -> str | None:
        stored = self._values.get(key)
        if stored is None:
            return None
        if stored.is_expired(self._clock()):
            del self._values[key]
            return None
        return stored.value

    async def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        now = self._clock()
        self._prune(now)
        self._values[key] = StoredValue(value, _expires_at(now, ttl_seconds))

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def _prune(self, now: float) -> None:
        expired = [key for key, stored in self._values.items() if stored.is_expired(now)]
        for key in expired:
            del self._values[key]


class FileKVStore(KVStore):
    def __init__(
        self,
        path: str | Path = ".monzo_store.json",
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = Path(path)
        self._clock = clock

    async def get(self, key: str) -> str | None:
        payload = self._read_all().get(key)
        if payload is None:
            return None
        stored = StoredValue(**payload)
        if stored.is_expired(self._clock()):
            return None
        return stored.value

    async def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        all_values = self._read_all()
        all_values[key] = asdict(StoredValue(value, _expires_at(self._clock(), ttl_seconds)))
        self._write_all(all_values)

    async def delete(self, key: str) -> None:
        all_values = self._read_all()
        if all_values.pop(key, None) is not None:
            self._write_all(all_values)

    def _read_all(self) -> dict[str, dict]:
        if not self._path.exists():
            return {}

        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise RuntimeError("Store file is invalid; expected top-level JSON object.")
        return raw

    def _write_all(self, payload: dict[str, dict]) -> None:
        now = self._clock()
        live = {
            key: entry
            for key, entry in payload.items()
            if not StoredValue(**entry).is_expired(now)
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        tmp_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(live, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
