"""
market_data.py — exchange rates and stock quotes served through the response
cache.

Every fetch follows the same chain and always returns data:

  1. fresh cache entry                       → returned as is
  2. upstream call succeeds                  → cached with its TTL, returned
  3. upstream fails, expired entry resident  → stale value returned (degraded)
  4. nothing at all                          → synthetic placeholder returned

Functions
---------
exchange_rates_key(base)   -> str    cache key for a base currency
stock_key(symbol)          -> str    cache key for a symbol
stock_ttl(now)             -> int    300 s in market hours, 3600 s otherwise
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from . import config
from .cache import ResponseCache
from .gateway import GatewayResult, QuoteSnapshot, RateQuote, UpstreamGateway

logger = logging.getLogger(__name__)

EXCHANGE_RATES_PREFIX = "exchange_rates_"
STOCK_PREFIX = "stock_"


# ── Canonical records ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExchangeRate:
    currency: str
    rate: float
    change_24h: float          # percent; the provider has no history, so this is simulated
    last_updated: datetime


@dataclass(frozen=True)
class StockQuote:
    symbol: str
    name: str
    current_price: float
    previous_close: float
    change: float
    change_percent: float
    volume: int
    last_updated: datetime


# Placeholder rates used when no live or stale data exists.  Kept at four
# currencies with EUR first for compatibility with existing clients.
_FALLBACK_RATES = (
    ("EUR", 0.8456, -0.12),
    ("GBP", 0.7834, 0.08),
    ("JPY", 149.23, -0.34),
    ("CAD", 1.3456, 0.15),
)


# ── Keys and TTL policy ──────────────────────────────────────────────────────

def exchange_rates_key(base_currency: str) -> str:
    return f"{EXCHANGE_RATES_PREFIX}{base_currency.strip().upper()}"


def stock_key(symbol: str) -> str:
    return f"{STOCK_PREFIX}{symbol.strip().upper()}"


def is_market_hours(now: datetime) -> bool:
    """Weekday and local hour in [9, 16]. No timezone or holiday calendar."""
    return (
        now.weekday() < 5
        and config.MARKET_OPEN_HOUR <= now.hour <= config.MARKET_CLOSE_HOUR
    )


def stock_ttl(now: datetime) -> int:
    if is_market_hours(now):
        return config.STOCK_MARKET_HOURS_TTL
    return config.STOCK_AFTER_HOURS_TTL


# ── Synthetic fallbacks ──────────────────────────────────────────────────────

def fallback_exchange_rates() -> List[ExchangeRate]:
    now = datetime.now(timezone.utc)
    return [
        ExchangeRate(currency=currency, rate=rate, change_24h=change, last_updated=now)
        for currency, rate, change in _FALLBACK_RATES
    ]


def fallback_stock_quote(symbol: str, rng: Optional[random.Random] = None) -> StockQuote:
    rng = rng or random.Random()
    return StockQuote(
        symbol         = symbol,
        name           = f"{symbol} Inc.",
        current_price  = round(rng.uniform(50, 250), 2),
        previous_close = round(rng.uniform(50, 250), 2),
        change         = round((rng.random() - 0.5) * 10, 2),
        change_percent = round((rng.random() - 0.5) * 5, 2),
        volume         = rng.randrange(10_000_000),
        last_updated   = datetime.now(timezone.utc),
    )


# ── Service ──────────────────────────────────────────────────────────────────

class MarketDataService:
    """Cache-aside access to upstream market data with stale and synthetic fallback."""

    def __init__(
        self,
        cache: ResponseCache,
        gateway: UpstreamGateway,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.cache = cache
        self.gateway = gateway
        self._now = now

    # ----------------------------------------------------------------------
    # Exchange rates
    # ----------------------------------------------------------------------

    def get_exchange_rates(self, base_currency: str = config.DEFAULT_BASE_CURRENCY) -> List[ExchangeRate]:
        base_currency = base_currency.strip().upper()
        key = exchange_rates_key(base_currency)

        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)

        result: GatewayResult[List[RateQuote]] = self.gateway.fetch_rates(base_currency)
        if result.ok:
            fetched_at = datetime.now(timezone.utc)
            rates = [
                ExchangeRate(
                    currency     = quote.currency,
                    rate         = quote.rate,
                    change_24h   = round(random.uniform(-1, 1), 4),
                    last_updated = fetched_at,
                )
                for quote in result.value
            ]
            # Stored as a tuple so callers cannot mutate the cached table.
            self.cache.set(key, tuple(rates), config.EXCHANGE_RATES_TTL)
            logger.info("Fetched exchange rates for %s: %d currencies", base_currency, len(rates))
            return rates

        logger.error(
            "Failed to fetch exchange rates for %s (%s): %s",
            base_currency, result.failure.value, result.detail,
        )
        stale = self.cache.get_stale(key)
        if stale is not None:
            logger.warning("Returning stale exchange rate data for %s", base_currency)
            return list(stale)

        logger.warning("Returning placeholder exchange rates for %s", base_currency)
        return fallback_exchange_rates()

    def refresh_exchange_rates(self) -> int:
        """Drop every cached rate table so the next request goes upstream."""
        return self.cache.invalidate(EXCHANGE_RATES_PREFIX)

    # ----------------------------------------------------------------------
    # Stock quotes
    # ----------------------------------------------------------------------

    def get_stock_quote(self, symbol: str) -> StockQuote:
        symbol = symbol.strip().upper()
        key = stock_key(symbol)

        cached = self.cache.get(key)
        if cached is not None:
            return cached

        result: GatewayResult[QuoteSnapshot] = self.gateway.fetch_quote(symbol)
        if result.ok:
            snap = result.value
            stock = StockQuote(
                symbol         = snap.symbol,
                name           = f"{symbol} Inc.",   # GLOBAL_QUOTE carries no company name
                current_price  = snap.price,
                previous_close = snap.previous_close,
                change         = snap.change,
                change_percent = snap.change_percent,
                volume         = snap.volume,
                last_updated   = datetime.now(timezone.utc),
            )
            # TTL is recomputed on every write so it tracks the market session.
            self.cache.set(key, stock, stock_ttl(self._now()))
            logger.info("Fetched stock data for %s: $%.2f", symbol, stock.current_price)
            return stock

        logger.error(
            "Failed to fetch stock data for %s (%s): %s",
            symbol, result.failure.value, result.detail,
        )
        stale = self.cache.get_stale(key)
        if stale is not None:
            logger.warning("Returning stale stock data for %s", symbol)
            return stale

        logger.warning("Returning placeholder stock data for %s", symbol)
        return fallback_stock_quote(symbol)

    async def get_portfolio(self, symbols: Iterable[str]) -> List[StockQuote]:
        """
        Fetch every symbol concurrently.  A symbol whose fetch raises is
        dropped from the result instead of failing the whole batch.
        """
        symbols = list(symbols)
        results = await asyncio.gather(
            *(asyncio.to_thread(self.get_stock_quote, symbol) for symbol in symbols),
            return_exceptions=True,
        )

        stocks: List[StockQuote] = []
        for symbol, result in zip(symbols, results):
            if isinstance(result, BaseException):
                logger.warning("Failed to fetch %s: %s: %s", symbol, type(result).__name__, result)
                continue
            stocks.append(result)
        return stocks
