"""
gateway.py — single outbound calls to the two upstream data providers.

Providers
---------
  exchangerate-api.com   latest rates for a base currency (keyed v6 or public v4)
  Alpha Vantage          GLOBAL_QUOTE for one equity symbol

Each call is bounded by a timeout and never raises.  The outcome is a
GatewayResult that carries either the parsed payload or a FailureKind:

  network / timeout / connection error   → UPSTREAM_UNAVAILABLE
  provider "invalid symbol" payload      → INVALID_SYMBOL
  provider "rate limited" payload / 429  → RATE_LIMITED
  anything else malformed or missing     → UPSTREAM_UNAVAILABLE

No retries happen here; fallback policy belongs to the market data service.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

import requests

from . import config

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FailureKind(str, Enum):
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    INVALID_SYMBOL = "invalid_symbol"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class GatewayResult(Generic[T]):
    value: Optional[T] = None
    failure: Optional[FailureKind] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> "GatewayResult[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: FailureKind, detail: str = "") -> "GatewayResult[T]":
        return cls(failure=kind, detail=detail)


# ── Provider payloads, parsed but not yet canonical records ──────────────────

@dataclass(frozen=True)
class RateQuote:
    currency: str
    rate: float


@dataclass(frozen=True)
class QuoteSnapshot:
    symbol: str
    price: float
    previous_close: float
    change: float
    change_percent: float
    volume: int


# ── Helpers ──────────────────────────────────────────────────────────────────

def _to_float(value: Any) -> float:
    """Parse an Alpha Vantage numeric string ("189.84", "-0.47%"). 0.0 if unparseable."""
    if value is None:
        return 0.0
    try:
        return float(str(value).replace("%", "").replace(",", "").strip())
    except (TypeError, ValueError):
        return 0.0


def _to_int(value: Any) -> int:
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return 0


def _get_json(url: str, params: Optional[Dict[str, str]], timeout: int, tag: str) -> GatewayResult[Any]:
    """GET ``url`` and decode JSON, folding transport failures into a GatewayResult."""
    try:
        resp = requests.get(
            url, params=params, timeout=timeout,
            headers={"User-Agent": config.HTTP_USER_AGENT},
        )
    except requests.Timeout as exc:
        return GatewayResult.fail(FailureKind.UPSTREAM_UNAVAILABLE, f"{tag} timed out: {exc}")
    except requests.RequestException as exc:
        return GatewayResult.fail(
            FailureKind.UPSTREAM_UNAVAILABLE, f"{tag} request failed — {type(exc).__name__}: {exc}"
        )

    logger.debug("[%s] GET %s → %s", tag, resp.url, resp.status_code)
    if resp.status_code == 429:
        return GatewayResult.fail(FailureKind.RATE_LIMITED, f"{tag} returned HTTP 429")

    try:
        data = resp.json()
    except ValueError:
        data = None

    # The rates provider reports its own errors with 4xx codes and a JSON body,
    # so the body is classified before the status code.
    if isinstance(data, dict):
        return GatewayResult.success(data)
    if resp.status_code >= 400:
        return GatewayResult.fail(FailureKind.UPSTREAM_UNAVAILABLE, f"{tag} returned HTTP {resp.status_code}")
    return GatewayResult.fail(FailureKind.UPSTREAM_UNAVAILABLE, f"{tag} returned a non-JSON body")


# ── Gateway ──────────────────────────────────────────────────────────────────

class UpstreamGateway:
    """Outbound calls to the exchange rate and stock quote providers."""

    def __init__(
        self,
        exchange_rate_api_key: Optional[str] = None,
        alpha_vantage_api_key: Optional[str] = None,
    ) -> None:
        self.exchange_rate_api_key = (
            config.exchange_rate_api_key() if exchange_rate_api_key is None else exchange_rate_api_key
        )
        self.alpha_vantage_api_key = (
            config.alpha_vantage_api_key() if alpha_vantage_api_key is None else alpha_vantage_api_key
        )
        if not self.exchange_rate_api_key:
            logger.warning("EXCHANGE_RATE_API_KEY not set, using free tier")
        if not self.alpha_vantage_api_key:
            logger.warning("ALPHA_VANTAGE_API_KEY not set, using demo key")

    def rates_url(self, base_currency: str) -> str:
        if self.exchange_rate_api_key:
            return f"{config.EXCHANGE_RATE_KEYED_URL}/{self.exchange_rate_api_key}/latest/{base_currency}"
        return f"{config.EXCHANGE_RATE_PUBLIC_URL}/{base_currency}"

    def fetch_rates(self, base_currency: str) -> GatewayResult[List[RateQuote]]:
        """
        Fetch the latest rates for ``base_currency``.

        On success the value lists the configured target currencies that the
        provider returned, in TARGET_CURRENCIES order.
        """
        result = _get_json(self.rates_url(base_currency), None, config.RATES_TIMEOUT, "rates")
        if not result.ok:
            return result
        data = result.value

        if data.get("result") == "error":
            error_type = str(data.get("error-type", ""))
            if error_type == "quota-reached":
                return GatewayResult.fail(FailureKind.RATE_LIMITED, "exchange rate quota reached")
            if error_type in ("unsupported-code", "malformed-request"):
                return GatewayResult.fail(
                    FailureKind.INVALID_SYMBOL, f"unsupported base currency: {base_currency}"
                )
            return GatewayResult.fail(FailureKind.UPSTREAM_UNAVAILABLE, f"exchange rate error: {error_type}")

        # v4 public endpoint uses "rates", v6 keyed endpoint "conversion_rates"
        rates = data.get("rates") or data.get("conversion_rates")
        if not isinstance(rates, dict):
            return GatewayResult.fail(FailureKind.UPSTREAM_UNAVAILABLE, "no rates in provider response")

        quotes = [
            RateQuote(currency=currency, rate=float(rates[currency]))
            for currency in config.TARGET_CURRENCIES
            if isinstance(rates.get(currency), (int, float)) and rates[currency]
        ]
        return GatewayResult.success(quotes)

    def fetch_quote(self, symbol: str) -> GatewayResult[QuoteSnapshot]:
        """Fetch the Alpha Vantage GLOBAL_QUOTE for ``symbol``."""
        params = {
            "function": "GLOBAL_QUOTE",
            "symbol": symbol,
            "apikey": self.alpha_vantage_api_key or config.ALPHA_VANTAGE_DEMO_KEY,
        }
        result = _get_json(config.ALPHA_VANTAGE_URL, params, config.QUOTE_TIMEOUT, "quote")
        if not result.ok:
            return result
        data = result.value

        if data.get("Error Message"):
            return GatewayResult.fail(FailureKind.INVALID_SYMBOL, f"Invalid stock symbol: {symbol}")
        # "Note" is the classic throttling message, "Information" the current one.
        if data.get("Note") or data.get("Information"):
            return GatewayResult.fail(FailureKind.RATE_LIMITED, "API rate limit exceeded")

        quote = data.get("Global Quote")
        if not isinstance(quote, dict) or not quote:
            return GatewayResult.fail(FailureKind.UPSTREAM_UNAVAILABLE, "No stock data available")

        return GatewayResult.success(QuoteSnapshot(
            symbol         = quote.get("01. symbol") or symbol,
            price          = _to_float(quote.get("05. price")),
            previous_close = _to_float(quote.get("08. previous close")),
            change         = _to_float(quote.get("09. change")),
            change_percent = _to_float(quote.get("10. change percent")),
            volume         = _to_int(quote.get("06. volume")),
        ))
