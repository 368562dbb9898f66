from __future__ import annotations

import logging

LOGGER = logging.getLogger("monzo_pots.api")
APP_VERSION = "0.1.0"

MONZO_API_BASE_URL = "https://api.monzo.com"
DEFAULT_ACCOUNT_TYPE = "uk_retail_joint"
DEFAULT_CURRENCY_LOCALE = "en_GB"
DEFAULT_STORE_PATH = ".monzo_store.json"

BALANCES_PATH = "/balances"
HEALTH_PATH = "/health"
