"""
validation.py — request input parsing and record schema checks.

Request parsers raise ValidationError (HTTP 400) before any market data is
fetched.  The is_* record checks return booleans and are used to confirm that
live, stale and placeholder records share one shape.
"""

import math
import re
from datetime import date, datetime
from typing import Any, List, Optional

from .config import DEFAULT_BASE_CURRENCY, SUPPORTED_CURRENCIES
from .errors import ErrorCode, ValidationError
from .market_data import ExchangeRate, StockQuote
from .transactions import (
    TRANSACTION_TYPES,
    Transaction,
    TransactionCategory,
    TransactionFilters,
)

# Strict form used for record checks; request symbols also allow digits,
# dots and dashes (BRK.B, RDS-A).
_STRICT_SYMBOL_RE = re.compile(r"^[A-Z]{1,5}$")
_REQUEST_SYMBOL_RE = re.compile(r"^[A-Z][A-Z0-9.\-]{0,9}$")


# ── Primitive checks ─────────────────────────────────────────────────────────

def is_valid_currency(currency: Any) -> bool:
    return isinstance(currency, str) and currency.upper() in SUPPORTED_CURRENCIES


def is_valid_stock_symbol(symbol: Any) -> bool:
    """1–5 upper-case letters. Lower-case input is rejected, not normalised."""
    return isinstance(symbol, str) and bool(_STRICT_SYMBOL_RE.match(symbol))


def is_valid_amount(amount: Any) -> bool:
    return (
        isinstance(amount, (int, float))
        and not isinstance(amount, bool)
        and math.isfinite(amount)
    )


def is_valid_category(category: Any) -> bool:
    return category in {c.value for c in TransactionCategory}


# ── Record checks ────────────────────────────────────────────────────────────

def is_exchange_rate(obj: Any) -> bool:
    return (
        isinstance(obj, ExchangeRate)
        and is_valid_currency(obj.currency)
        and is_valid_amount(obj.rate)
        and obj.rate > 0
        and is_valid_amount(obj.change_24h)
        and isinstance(obj.last_updated, datetime)
    )


def is_stock_quote(obj: Any) -> bool:
    return (
        isinstance(obj, StockQuote)
        and isinstance(obj.symbol, str) and bool(obj.symbol)
        and isinstance(obj.name, str)
        and is_valid_amount(obj.current_price)
        and is_valid_amount(obj.previous_close)
        and is_valid_amount(obj.change)
        and is_valid_amount(obj.change_percent)
        and isinstance(obj.volume, int) and obj.volume >= 0
        and isinstance(obj.last_updated, datetime)
    )


def is_transaction(obj: Any) -> bool:
    return (
        isinstance(obj, Transaction)
        and isinstance(obj.id, str)
        and isinstance(obj.user_id, str)
        and isinstance(obj.date, datetime)
        and is_valid_amount(obj.amount)
        and isinstance(obj.description, str)
        and isinstance(obj.category, TransactionCategory)
        and obj.type in TRANSACTION_TYPES
        and is_valid_currency(obj.currency)
    )


# ── Request parsers ──────────────────────────────────────────────────────────

def parse_base_currency(raw: Optional[str]) -> str:
    if raw is None or not raw.strip():
        return DEFAULT_BASE_CURRENCY
    base = raw.strip().upper()
    if base not in SUPPORTED_CURRENCIES:
        raise ValidationError.for_field(
            "base", f"unsupported currency '{raw}'; expected one of {', '.join(SUPPORTED_CURRENCIES)}"
        )
    return base


def parse_symbol(raw: str) -> str:
    symbol = (raw or "").strip().upper()
    if not _REQUEST_SYMBOL_RE.match(symbol):
        raise ValidationError.for_field("symbol", f"invalid stock symbol '{raw}'")
    return symbol


def parse_symbol_list(raw: Optional[str]) -> List[str]:
    """Split ``A,B,C`` into upper-case symbols, duplicates removed in order."""
    parts = [part.strip() for part in (raw or "").split(",") if part.strip()]
    if not parts:
        raise ValidationError(
            "Stock symbols are required. Use ?symbols=AAPL,GOOGL,MSFT",
            code=ErrorCode.MISSING_SYMBOLS,
        )
    symbols: List[str] = []
    for part in parts:
        symbol = parse_symbol(part)
        if symbol not in symbols:
            symbols.append(symbol)
    return symbols


def _parse_date(field: str, raw: Optional[str]) -> Optional[date]:
    if raw is None or not raw.strip():
        return None
    try:
        return datetime.fromisoformat(raw.strip()).date()
    except ValueError:
        raise ValidationError.for_field(field, f"'{raw}' is not an ISO date (YYYY-MM-DD)")


def parse_transaction_filters(
    category: Optional[str] = None,
    type_: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
) -> TransactionFilters:
    parsed_category = None
    if category:
        if not is_valid_category(category.lower()):
            raise ValidationError.for_field("category", f"unknown category '{category}'")
        parsed_category = TransactionCategory(category.lower())

    parsed_type = None
    if type_:
        if type_.lower() not in TRANSACTION_TYPES:
            raise ValidationError.for_field(
                "type", f"expected one of {', '.join(TRANSACTION_TYPES)}"
            )
        parsed_type = type_.lower()

    parsed_from = _parse_date("dateFrom", date_from)
    parsed_to = _parse_date("dateTo", date_to)
    if parsed_from and parsed_to and parsed_from > parsed_to:
        raise ValidationError.for_field("dateFrom", "must not be after dateTo")

    return TransactionFilters(
        category    = parsed_category,
        type        = parsed_type,
        search_term = search.strip() if search and search.strip() else None,
        date_from   = parsed_from,
        date_to     = parsed_to,
    )
