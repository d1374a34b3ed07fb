"""Cache timings, upstream endpoints and environment settings for the dashboard API."""

import os
from typing import Tuple

from dotenv import find_dotenv, load_dotenv

load_dotenv(find_dotenv())

# ── Cache ─────────────────────────────────────────────────────────────────────

DEFAULT_TTL: int = 600                 # 10 minutes when the caller gives no TTL
SWEEP_INTERVAL: int = 120              # background eviction of expired keys
STATS_LOG_INTERVAL: int = 300          # cache statistics logged every 5 minutes

EXCHANGE_RATES_TTL: int = 3600
STOCK_MARKET_HOURS_TTL: int = 300
STOCK_AFTER_HOURS_TTL: int = 3600
MARKET_OPEN_HOUR: int = 9              # local wall clock, no timezone or holidays
MARKET_CLOSE_HOUR: int = 16            # inclusive

# ── Upstream providers ────────────────────────────────────────────────────────

RATES_TIMEOUT: int = 10
QUOTE_TIMEOUT: int = 15
HTTP_USER_AGENT = "Finance-Dashboard/1.0"

EXCHANGE_RATE_KEYED_URL = "https://v6.exchangerate-api.com/v6"
EXCHANGE_RATE_PUBLIC_URL = "https://api.exchangerate-api.com/v4/latest"
ALPHA_VANTAGE_URL = "https://www.alphavantage.co/query"
ALPHA_VANTAGE_DEMO_KEY = "demo"

TARGET_CURRENCIES: Tuple[str, ...] = ("EUR", "GBP", "JPY", "CAD", "AUD", "CHF")
SUPPORTED_CURRENCIES: Tuple[str, ...] = (
    "USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "CNY",
)
DEFAULT_BASE_CURRENCY = "USD"

# ── Request surface ───────────────────────────────────────────────────────────

RECENT_TRANSACTIONS_LIMIT: int = 10
MOCK_MONTHLY_CHANGE: float = 2.4
DEV_FRONTEND_ORIGIN = "http://localhost:3000"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def exchange_rate_api_key() -> str:
    return os.getenv("EXCHANGE_RATE_API_KEY", "").strip()


def alpha_vantage_api_key() -> str:
    return os.getenv("ALPHA_VANTAGE_API_KEY", "").strip()


def environment() -> str:
    """Return ``production`` or ``development`` (the default)."""
    env = os.getenv("ENVIRONMENT", "development").strip().lower()
    return "production" if env == "production" else "development"


def is_production() -> bool:
    return environment() == "production"


def frontend_origin() -> str:
    if is_production():
        return os.getenv("FRONTEND_URL", "").strip() or DEV_FRONTEND_ORIGIN
    return DEV_FRONTEND_ORIGIN


def log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"


def rate_limit_max() -> int:
    return _int_env("RATE_LIMIT_MAX", 100)


def rate_limit_window() -> int:
    return _int_env("RATE_LIMIT_WINDOW_SECONDS", 900)


def trust_proxy() -> bool:
    """Honour X-Forwarded-For only when running behind a known reverse proxy."""
    return os.getenv("TRUST_PROXY", "").strip().lower() in ("1", "true", "yes")
