"""Shared fixtures: a controllable clock, a scripted gateway and an app client."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Tuple

import pytest
from fastapi.testclient import TestClient

from dashboard.cache import ResponseCache
from dashboard.gateway import FailureKind, GatewayResult, QuoteSnapshot, RateQuote
from dashboard.market_data import MarketDataService
from dashboard.rate_limit import FixedWindowRateLimiter

# Monday, inside market hours.
MARKET_OPEN = datetime(2025, 1, 6, 10, 30)


class FakeTime:
    """Deterministic clock usable wherever a ``time.time`` callable is expected."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += float(seconds)


class FakeGateway:
    """Gateway stand-in. Unscripted calls fail as UPSTREAM_UNAVAILABLE."""

    def __init__(self) -> None:
        self.exchange_rate_api_key = ""
        self.alpha_vantage_api_key = ""
        self.rates: Dict[str, GatewayResult] = {}
        self.quotes: Dict[str, GatewayResult] = {}
        self.calls: List[Tuple[str, str]] = []

    def fetch_rates(self, base_currency: str) -> GatewayResult:
        self.calls.append(("rates", base_currency))
        return self.rates.get(
            base_currency, GatewayResult.fail(FailureKind.UPSTREAM_UNAVAILABLE, "offline")
        )

    def fetch_quote(self, symbol: str) -> GatewayResult:
        self.calls.append(("quote", symbol))
        return self.quotes.get(
            symbol, GatewayResult.fail(FailureKind.UPSTREAM_UNAVAILABLE, "offline")
        )

    def serve_rates(self, base: str, **rates: float) -> None:
        self.rates[base] = GatewayResult.success(
            [RateQuote(currency=c, rate=r) for c, r in rates.items()]
        )

    def serve_quote(self, symbol: str, price: float, previous_close: float = 100.0) -> None:
        self.quotes[symbol] = GatewayResult.success(QuoteSnapshot(
            symbol=symbol,
            price=price,
            previous_close=previous_close,
            change=round(price - previous_close, 2),
            change_percent=round((price - previous_close) / previous_close * 100, 2),
            volume=1_000_000,
        ))

    def fail_quote(self, symbol: str, kind: FailureKind) -> None:
        self.quotes[symbol] = GatewayResult.fail(kind, "scripted failure")

    def fail_rates(self, base: str, kind: FailureKind) -> None:
        self.rates[base] = GatewayResult.fail(kind, "scripted failure")


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def cache(fake_time: FakeTime) -> ResponseCache:
    return ResponseCache(clock=fake_time)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def service(cache: ResponseCache, gateway: FakeGateway) -> MarketDataService:
    return MarketDataService(cache, gateway, now=lambda: MARKET_OPEN)


@pytest.fixture
def client(service: MarketDataService) -> TestClient:
    from main import create_app

    app = create_app(service=service, rate_limiter=FixedWindowRateLimiter(1_000, 60))
    with TestClient(app) as test_client:
        yield test_client
