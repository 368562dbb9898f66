from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from babel import Locale, UnknownLocaleError
from dotenv import load_dotenv
from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from .balances import ReportMode
from .constants import (
    DEFAULT_ACCOUNT_TYPE,
    DEFAULT_CURRENCY_LOCALE,
    DEFAULT_STORE_PATH,
    LOGGER,
    MONZO_API_BASE_URL,
)

REQUIRED_ENV = (
    "MONZO_CLIENT_ID",
    "MONZO_CLIENT_SECRET",
    "BALANCE_SHARED_SECRET",
)
REPORT_MODES = {
    "pots": ReportMode.FILTERED_POTS,
    "accounts": ReportMode.WHOLE_ACCOUNTS,
}


@dataclass
class Settings:
    client_id: str
    client_secret: str
    balance_shared_secret: str
    public_url: str | None = None
    api_base_url: str = MONZO_API_BASE_URL
    api_timeout: float = 30.0
    account_type: str = DEFAULT_ACCOUNT_TYPE
    report_mode: ReportMode = ReportMode.FILTERED_POTS
    store_path: str | None = DEFAULT_STORE_PATH
    currency_locale: str = DEFAULT_CURRENCY_LOCALE
    debug: bool = True


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=True)


def _validate_public_url(raw: str) -> str:
    try:
        url = TypeAdapter(AnyHttpUrl).validate_python(raw)
    except ValidationError:
        raise RuntimeError(
            "MONZO_PUBLIC_URL must be an absolute http(s) URL (for example: "
            "https://pots.example.com)."
        )
    return str(url).rstrip("/")


def validate_env() -> None:
    missing = [key for key in REQUIRED_ENV if not os.getenv(key, "").strip()]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    public_url = os.getenv("MONZO_PUBLIC_URL", "").strip()
    if public_url:
        _validate_public_url(public_url)
    else:
        LOGGER.warning(
            "MONZO_PUBLIC_URL is not set; the OAuth redirect URI will be built from the Host header."
        )

    mode = os.getenv("MONZO_REPORT_MODE", "pots").strip().lower()
    if mode not in REPORT_MODES:
        raise RuntimeError(
            f"MONZO_REPORT_MODE must be one of: {', '.join(sorted(REPORT_MODES))}."
        )

    locale = os.getenv("MONZO_CURRENCY_LOCALE", DEFAULT_CURRENCY_LOCALE).strip()
    try:
        Locale.parse(locale)
    except (UnknownLocaleError, ValueError):
        raise RuntimeError(f"MONZO_CURRENCY_LOCALE {locale!r} is not a known locale.")


def load_settings() -> Settings:
    validate_env()

    public_url = os.getenv("MONZO_PUBLIC_URL", "").strip()
    store_path = os.getenv("MONZO_STORE_PATH", DEFAULT_STORE_PATH).strip()
    return Settings(
        client_id=os.getenv("MONZO_CLIENT_ID", "").strip(),
        client_secret=os.getenv("MONZO_CLIENT_SECRET", "").strip(),
        balance_shared_secret=os.getenv("BALANCE_SHARED_SECRET", "").strip(),
        public_url=_validate_public_url(public_url) if public_url else None,
        api_base_url=os.getenv("MONZO_API_BASE_URL", MONZO_API_BASE_URL).strip(),
        api_timeout=_get_env_float("MONZO_API_TIMEOUT", 30.0),
        account_type=os.getenv("MONZO_ACCOUNT_TYPE", DEFAULT_ACCOUNT_TYPE).strip(),
        report_mode=REPORT_MODES[os.getenv("MONZO_REPORT_MODE", "pots").strip().lower()],
        store_path=store_path or None,
        currency_locale=os.getenv("MONZO_CURRENCY_LOCALE", DEFAULT_CURRENCY_LOCALE).strip(),
        debug=is_truthy(os.getenv("MONZO_API_DEBUG", "1")),
    )


def get_listen_address() -> tuple[str, int]:
    host = os.getenv("MONZO_POTS_HOST", "127.0.0.1")
    port = _get_env_int("MONZO_POTS_PORT", 8000)
    return host, port


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("MONZO_API_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
