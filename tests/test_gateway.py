"""Tests for upstream failure classification in the gateway."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest
import requests

from dashboard import config
from dashboard.gateway import FailureKind, QuoteSnapshot, RateQuote, UpstreamGateway

_SENTINEL = object()


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = _SENTINEL, url: str = "https://upstream") -> None:
        self.status_code = status_code
        self._body = body
        self.url = url

    def json(self) -> Any:
        if self._body is _SENTINEL:
            raise ValueError("No JSON object could be decoded")
        return self._body


class RecordingGet:
    def __init__(self, response: Optional[FakeResponse] = None, exc: Optional[Exception] = None) -> None:
        self.response = response
        self.exc = exc
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        if self.exc is not None:
            raise self.exc
        return self.response


@pytest.fixture
def gateway() -> UpstreamGateway:
    return UpstreamGateway(exchange_rate_api_key="", alpha_vantage_api_key="")


def _patch(monkeypatch: pytest.MonkeyPatch, **kwargs: Any) -> RecordingGet:
    fake = RecordingGet(**kwargs)
    monkeypatch.setattr("dashboard.gateway.requests.get", fake)
    return fake


GLOBAL_QUOTE = {
    "Global Quote": {
        "01. symbol": "AAPL",
        "05. price": "189.8400",
        "06. volume": "52164539",
        "08. previous close": "190.7200",
        "09. change": "-0.8800",
        "10. change percent": "-0.4614%",
    }
}


# ── Stock quotes ─────────────────────────────────────────────────────────────

def test_fetch_quote_parses_global_quote(monkeypatch, gateway) -> None:
    fake = _patch(monkeypatch, response=FakeResponse(body=GLOBAL_QUOTE))

    result = gateway.fetch_quote("AAPL")

    assert result.ok
    assert result.value == QuoteSnapshot(
        symbol="AAPL", price=189.84, previous_close=190.72,
        change=-0.88, change_percent=-0.4614, volume=52164539,
    )
    call = fake.calls[0]
    assert call["url"] == config.ALPHA_VANTAGE_URL
    assert call["params"]["apikey"] == "demo"
    assert call["params"]["function"] == "GLOBAL_QUOTE"
    assert call["timeout"] == config.QUOTE_TIMEOUT


def test_fetch_quote_uses_configured_key(monkeypatch) -> None:
    fake = _patch(monkeypatch, response=FakeResponse(body=GLOBAL_QUOTE))

    UpstreamGateway(exchange_rate_api_key="", alpha_vantage_api_key="secret").fetch_quote("AAPL")

    assert fake.calls[0]["params"]["apikey"] == "secret"


def test_error_message_payload_is_invalid_symbol(monkeypatch, gateway) -> None:
    _patch(monkeypatch, response=FakeResponse(body={"Error Message": "Invalid API call."}))

    result = gateway.fetch_quote("INVALID")

    assert result.failure is FailureKind.INVALID_SYMBOL
    assert result.value is None


@pytest.mark.parametrize("key", ["Note", "Information"])
def test_throttling_payload_is_rate_limited(monkeypatch, gateway, key: str) -> None:
    _patch(monkeypatch, response=FakeResponse(body={key: "Thank you for using Alpha Vantage!"}))

    assert gateway.fetch_quote("AAPL").failure is FailureKind.RATE_LIMITED


def test_http_429_is_rate_limited(monkeypatch, gateway) -> None:
    _patch(monkeypatch, response=FakeResponse(status_code=429))

    assert gateway.fetch_quote("AAPL").failure is FailureKind.RATE_LIMITED


@pytest.mark.parametrize("body", [{}, {"Global Quote": {}}, {"Global Quote": "n/a"}])
def test_missing_quote_is_upstream_unavailable(monkeypatch, gateway, body) -> None:
    _patch(monkeypatch, response=FakeResponse(body=body))

    assert gateway.fetch_quote("AAPL").failure is FailureKind.UPSTREAM_UNAVAILABLE


@pytest.mark.parametrize(
    "exc",
    [
        requests.Timeout("read timed out"),
        requests.ConnectionError("connection refused"),
        requests.RequestException("boom"),
    ],
)
def test_transport_errors_are_upstream_unavailable(monkeypatch, gateway, exc) -> None:
    _patch(monkeypatch, exc=exc)

    result = gateway.fetch_quote("AAPL")

    assert result.failure is FailureKind.UPSTREAM_UNAVAILABLE
    assert result.detail


def test_non_json_body_is_upstream_unavailable(monkeypatch, gateway) -> None:
    _patch(monkeypatch, response=FakeResponse(status_code=502))

    assert gateway.fetch_quote("AAPL").failure is FailureKind.UPSTREAM_UNAVAILABLE


# ── Exchange rates ───────────────────────────────────────────────────────────

def test_fetch_rates_keeps_target_currencies_in_order(monkeypatch, gateway) -> None:
    body = {"base": "USD", "rates": {
        "MXN": 17.1, "CHF": 0.88, "AUD": 1.52, "CAD": 1.35,
        "JPY": 149.2, "GBP": 0.79, "EUR": 0.92, "USD": 1,
    }}
    fake = _patch(monkeypatch, response=FakeResponse(body=body))

    result = gateway.fetch_rates("USD")

    assert result.ok
    assert [q.currency for q in result.value] == ["EUR", "GBP", "JPY", "CAD", "AUD", "CHF"]
    assert result.value[0] == RateQuote(currency="EUR", rate=0.92)
    assert fake.calls[0]["url"] == f"{config.EXCHANGE_RATE_PUBLIC_URL}/USD"
    assert fake.calls[0]["timeout"] == config.RATES_TIMEOUT


def test_fetch_rates_reads_keyed_endpoint_shape(monkeypatch) -> None:
    body = {"result": "success", "conversion_rates": {"EUR": 0.92, "GBP": 0.79}}
    fake = _patch(monkeypatch, response=FakeResponse(body=body))

    result = UpstreamGateway(exchange_rate_api_key="k123", alpha_vantage_api_key="").fetch_rates("USD")

    assert [q.currency for q in result.value] == ["EUR", "GBP"]
    assert fake.calls[0]["url"] == f"{config.EXCHANGE_RATE_KEYED_URL}/k123/latest/USD"


@pytest.mark.parametrize(
    ("error_type", "kind"),
    [
        ("quota-reached", FailureKind.RATE_LIMITED),
        ("unsupported-code", FailureKind.INVALID_SYMBOL),
        ("invalid-key", FailureKind.UPSTREAM_UNAVAILABLE),
    ],
)
def test_rates_provider_errors_are_classified(monkeypatch, gateway, error_type, kind) -> None:
    _patch(monkeypatch, response=FakeResponse(status_code=403, body={"result": "error", "error-type": error_type}))

    assert gateway.fetch_rates("USD").failure is kind


def test_rates_without_table_is_upstream_unavailable(monkeypatch, gateway) -> None:
    _patch(monkeypatch, response=FakeResponse(body={"base": "USD"}))

    assert gateway.fetch_rates("USD").failure is FailureKind.UPSTREAM_UNAVAILABLE


def test_missing_credentials_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level("WARNING", logger="dashboard.gateway"):
        UpstreamGateway(exchange_rate_api_key="", alpha_vantage_api_key="")

    assert "EXCHANGE_RATE_API_KEY not set" in caplog.text
    assert "ALPHA_VANTAGE_API_KEY not set" in caplog.text
