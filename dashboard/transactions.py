"""
transactions.py — static transaction history and the dashboard summary.

There is no transaction source behind this module: the records below are
fixed and only ever filtered, never created or changed.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from .config import MOCK_MONTHLY_CHANGE

TRANSACTION_TYPES: Tuple[str, ...] = ("income", "expense", "transfer")


class TransactionCategory(str, Enum):
    FOOD = "food"
    TRANSPORT = "transport"
    ENTERTAINMENT = "entertainment"
    UTILITIES = "utilities"
    SALARY = "salary"
    INVESTMENT = "investment"
    OTHER = "other"


@dataclass(frozen=True)
class Transaction:
    id: str
    user_id: str
    date: datetime
    amount: float              # signed: income positive, expenses negative
    description: str
    category: TransactionCategory
    type: str                  # one of TRANSACTION_TYPES
    currency: str


@dataclass(frozen=True)
class TransactionFilters:
    """Recognised transaction filters. Unset fields do not filter."""

    category: Optional[TransactionCategory] = None
    type: Optional[str] = None
    search_term: Optional[str] = None
    date_from: Optional[date] = None       # inclusive
    date_to: Optional[date] = None         # inclusive


@dataclass(frozen=True)
class FinancialSummary:
    total_balance: float
    portfolio_value: float      # computed client-side from the selected stocks
    monthly_income: float
    monthly_expenses: float
    monthly_change: float
    currency: str
    last_updated: datetime


def _utc(y: int, m: int, d: int) -> datetime:
    return datetime(y, m, d, tzinfo=timezone.utc)


# Newest first.
MOCK_TRANSACTIONS: Tuple[Transaction, ...] = (
    Transaction("1", "user1", _utc(2025, 1, 8), 8500.00, "Monthly Salary",
                TransactionCategory.SALARY, "income", "USD"),
    Transaction("2", "user1", _utc(2025, 1, 7), -85.50, "Grocery Shopping - Whole Foods",
                TransactionCategory.FOOD, "expense", "USD"),
    Transaction("3", "user1", _utc(2025, 1, 6), -45.00, "Gas Station Fill-up",
                TransactionCategory.TRANSPORT, "expense", "USD"),
    Transaction("4", "user1", _utc(2025, 1, 5), -1200.00, "Monthly Rent Payment",
                TransactionCategory.UTILITIES, "expense", "USD"),
    Transaction("5", "user1", _utc(2025, 1, 4), -25.99, "Netflix Subscription",
                TransactionCategory.ENTERTAINMENT, "expense", "USD"),
)


def _matches(txn: Transaction, filters: TransactionFilters) -> bool:
    if filters.category is not None and txn.category != filters.category:
        return False
    if filters.type is not None and txn.type != filters.type:
        return False
    if filters.date_from is not None and txn.date.date() < filters.date_from:
        return False
    if filters.date_to is not None and txn.date.date() > filters.date_to:
        return False
    if filters.search_term:
        needle = filters.search_term.lower()
        return needle in txn.description.lower() or needle in txn.category.value
    return True


def filter_transactions(
    filters: Optional[TransactionFilters] = None,
    transactions: Iterable[Transaction] = MOCK_TRANSACTIONS,
) -> List[Transaction]:
    filters = filters or TransactionFilters()
    return [txn for txn in transactions if _matches(txn, filters)]


def summarize(transactions: Iterable[Transaction], currency: str = "USD") -> FinancialSummary:
    transactions = list(transactions)
    income = sum(t.amount for t in transactions if t.type == "income")
    expenses = sum(abs(t.amount) for t in transactions if t.type == "expense")
    return FinancialSummary(
        total_balance    = round(income - expenses, 2),
        portfolio_value  = 0.0,
        monthly_income   = round(income, 2),
        monthly_expenses = round(expenses, 2),
        monthly_change   = MOCK_MONTHLY_CHANGE,
        currency         = currency,
        last_updated     = datetime.now(timezone.utc),
    )
