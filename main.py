"""
Finance Dashboard API — FastAPI entry point.

Wires together:
  - dashboard.cache         (in-memory response cache with stale reads)
  - dashboard.gateway       (exchange rate + stock quote providers)
  - dashboard.market_data   (cache-aside fetches with stale / placeholder fallback)
  - dashboard.transactions  (static transaction history and summary)

Every response uses the envelope {success, data?, error?, timestamp}.

Run with:
    uvicorn main:app --reload
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Optional, TypeVar

import requests
from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException

from dashboard import config
from dashboard.cache import ResponseCache
from dashboard.errors import (
    ApiError,
    ErrorCode,
    ExternalApiFailure,
    NotFoundError,
    RateLimitExceeded,
    ValidationError,
)
from dashboard.gateway import UpstreamGateway
from dashboard.logging_utils import configure_default_logging
from dashboard.market_data import MarketDataService
from dashboard.rate_limit import FixedWindowRateLimiter
from dashboard.transactions import TransactionCategory, filter_transactions, summarize
from dashboard.validation import (
    parse_base_currency,
    parse_symbol,
    parse_symbol_list,
    parse_transaction_filters,
)

logger = logging.getLogger("dashboard.api")

T = TypeVar("T")

API_ENDPOINTS = [
    "GET /health - Health check",
    "GET /api/dashboard - Dashboard data",
    "GET /api/exchange-rates?base=USD - Currency exchange rates",
    "POST /api/exchange-rates/refresh?base=USD - Drop cached rates and refetch",
    "GET /api/portfolio?symbols=AAPL,GOOGL - Portfolio data",
    "GET /api/stock/:symbol - Individual stock data",
    "GET /api/transactions?category=&type=&search=&dateFrom=&dateTo= - Transaction history",
    "GET /api/cache/stats - Cache statistics",
    "DELETE /api/cache?pattern= - Invalidate cached keys containing pattern",
]


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ── Response schemas ───────────────────────────────────────────────────────────


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorBody(CamelModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ApiResponse(CamelModel, Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[ErrorBody] = None
    timestamp: datetime


class ExchangeRateModel(CamelModel):
    currency: str
    rate: float
    change_24h: float = Field(alias="change24h")
    last_updated: datetime


class StockModel(CamelModel):
    symbol: str
    name: str
    current_price: float
    previous_close: float
    change: float
    change_percent: float
    volume: int
    last_updated: datetime


class TransactionModel(CamelModel):
    id: str
    user_id: str
    date: datetime
    amount: float
    description: str
    category: TransactionCategory
    type: str
    currency: str


class SummaryModel(CamelModel):
    total_balance: float
    portfolio_value: float
    monthly_income: float
    monthly_expenses: float
    monthly_change: float
    currency: str
    last_updated: datetime


class DashboardModel(CamelModel):
    summary: SummaryModel
    exchange_rates: List[ExchangeRateModel]
    recent_transactions: List[TransactionModel]


class CacheStatsModel(CamelModel):
    key_count: int
    hit_count: int
    miss_count: int


class InvalidationModel(CamelModel):
    pattern: str
    removed: int


class HealthResponse(CamelModel):
    success: bool
    message: str
    uptime: float
    sources: Dict[str, str]
    timestamp: datetime


class IndexResponse(CamelModel):
    success: bool
    message: str
    endpoints: List[str]
    timestamp: datetime


def _models(model_cls, records) -> list:
    return [model_cls(**asdict(record)) for record in records]


def _ok(data: Any) -> ApiResponse:
    return ApiResponse(success=True, data=data, timestamp=_now())


def _error_response(status_code: int, code: str, message: str,
                    details: Optional[Dict[str, Any]] = None) -> JSONResponse:
    body = ApiResponse(
        success=False,
        error=ErrorBody(code=code, message=message, details=details),
        timestamp=_now(),
    )
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body, by_alias=True, exclude_none=True),
    )


def _service(request: Request) -> MarketDataService:
    return request.app.state.market_data


def _client_id(request: Request) -> str:
    # The header is caller-controlled unless a trusted proxy sets it.
    if config.trust_proxy():
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()
            if client_ip:
                return f"ip:{client_ip}"
    client = request.client
    if client and client.host:
        return f"ip:{client.host}"
    return "ip:unknown"


# ── Routes ─────────────────────────────────────────────────────────────────────

meta = APIRouter(tags=["meta"])
api = APIRouter(prefix="/api", tags=["api"])

_ENVELOPE = {"response_model_exclude_none": True}


@meta.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Liveness check plus credential status per provider (no network calls)."""
    gateway = _service(request).gateway
    sources = {
        "exchange_rates": "ok" if gateway.exchange_rate_api_key else "demo_tier",
        "stock_quotes": "ok" if gateway.alpha_vantage_api_key else "demo_tier",
    }
    return HealthResponse(
        success=True,
        message="Finance Dashboard API is running",
        uptime=round(time.monotonic() - request.app.state.started_at, 3),
        sources=sources,
        timestamp=_now(),
    )


@api.get("", response_model=IndexResponse)
async def index() -> IndexResponse:
    return IndexResponse(
        success=True,
        message="Finance Dashboard API v1.0",
        endpoints=API_ENDPOINTS,
        timestamp=_now(),
    )


@api.get("/exchange-rates", response_model=ApiResponse[List[ExchangeRateModel]], **_ENVELOPE)
async def exchange_rates(request: Request, base: Optional[str] = None) -> ApiResponse:
    base_currency = parse_base_currency(base)
    logger.info("Fetching exchange rates for base currency: %s", base_currency)
    rates = await asyncio.to_thread(_service(request).get_exchange_rates, base_currency)
    return _ok(_models(ExchangeRateModel, rates))


@api.post("/exchange-rates/refresh", response_model=ApiResponse[List[ExchangeRateModel]], **_ENVELOPE)
async def refresh_exchange_rates(request: Request, base: Optional[str] = None) -> ApiResponse:
    base_currency = parse_base_currency(base)
    service = _service(request)
    removed = service.refresh_exchange_rates()
    logger.info("Forced exchange rate refresh (%d cached tables dropped)", removed)
    rates = await asyncio.to_thread(service.get_exchange_rates, base_currency)
    return _ok(_models(ExchangeRateModel, rates))


@api.get("/stock/{symbol}", response_model=ApiResponse[StockModel], **_ENVELOPE)
async def stock(request: Request, symbol: str) -> ApiResponse:
    symbol = parse_symbol(symbol)
    logger.info("Fetching stock data for symbol: %s", symbol)
    quote = await asyncio.to_thread(_service(request).get_stock_quote, symbol)
    return _ok(StockModel(**asdict(quote)))


@api.get("/portfolio", response_model=ApiResponse[List[StockModel]], **_ENVELOPE)
async def portfolio(request: Request, symbols: Optional[str] = None) -> ApiResponse:
    symbol_list = parse_symbol_list(symbols)
    logger.info("Fetching portfolio data for symbols: %s", ", ".join(symbol_list))
    stocks = await _service(request).get_portfolio(symbol_list)
    return _ok(_models(StockModel, stocks))


@api.get("/transactions", response_model=ApiResponse[List[TransactionModel]], **_ENVELOPE)
async def transactions(
    category: Optional[str] = None,
    type_: Optional[str] = Query(None, alias="type"),
    search: Optional[str] = None,
    date_from: Optional[str] = Query(None, alias="dateFrom"),
    date_to: Optional[str] = Query(None, alias="dateTo"),
) -> ApiResponse:
    filters = parse_transaction_filters(category, type_, search, date_from, date_to)
    logger.info("Fetching transactions with filters: %s", filters)
    return _ok(_models(TransactionModel, filter_transactions(filters)))


@api.get("/dashboard", response_model=ApiResponse[DashboardModel], **_ENVELOPE)
async def dashboard(request: Request) -> ApiResponse:
    logger.info("Fetching dashboard data")
    rates, txns = await asyncio.gather(
        asyncio.to_thread(_service(request).get_exchange_rates, config.DEFAULT_BASE_CURRENCY),
        asyncio.to_thread(filter_transactions),
    )
    data = DashboardModel(
        summary=SummaryModel(**asdict(summarize(txns))),
        exchange_rates=_models(ExchangeRateModel, rates),
        recent_transactions=_models(TransactionModel, txns[: config.RECENT_TRANSACTIONS_LIMIT]),
    )
    return _ok(data)


@api.get("/cache/stats", response_model=ApiResponse[CacheStatsModel], **_ENVELOPE)
async def cache_stats(request: Request) -> ApiResponse:
    stats = _service(request).cache.get_stats()
    return _ok(CacheStatsModel(key_count=stats.keys, hit_count=stats.hits, miss_count=stats.misses))


@api.delete("/cache", response_model=ApiResponse[InvalidationModel], **_ENVELOPE)
async def invalidate_cache(request: Request, pattern: Optional[str] = None) -> ApiResponse:
    if not pattern or not pattern.strip():
        raise ValidationError.for_field("pattern", "a non-empty substring is required")
    removed = _service(request).cache.invalidate(pattern.strip())
    return _ok(InvalidationModel(pattern=pattern.strip(), removed=removed))


# ── App ────────────────────────────────────────────────────────────────────────


def _register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        logger.warning("%s %s → %s: %s", request.method, request.url.path, exc.code.value, exc.message)
        return _error_response(exc.status_code, exc.code.value, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(
            400, ErrorCode.VALIDATION_ERROR.value, "Invalid request parameters",
            {"errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            err = NotFoundError(f"Route {request.method} {request.url.path} not found")
            return _error_response(err.status_code, err.code.value, err.message)
        if exc.status_code == 405:
            return _error_response(405, ErrorCode.METHOD_NOT_ALLOWED.value, str(exc.detail))
        return _error_response(exc.status_code, ErrorCode.INTERNAL_ERROR.value, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled error on %s %s", request.method, request.url.path,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        if isinstance(exc, requests.ConnectionError):
            err = ExternalApiFailure("External service unavailable")
            return _error_response(err.status_code, err.code.value, err.message)
        if config.is_production():
            return _error_response(500, ErrorCode.INTERNAL_ERROR.value, "Internal server error")
        return _error_response(
            500, ErrorCode.INTERNAL_ERROR.value, f"Internal server error: {exc}",
            {"type": type(exc).__name__},
        )


def create_app(
    service: Optional[MarketDataService] = None,
    rate_limiter: Optional[FixedWindowRateLimiter] = None,
) -> FastAPI:
    """Build the application. Tests pass their own service and limiter."""
    configure_default_logging(config.log_level())

    if service is None:
        service = MarketDataService(ResponseCache(), UpstreamGateway())
    if rate_limiter is None:
        rate_limiter = FixedWindowRateLimiter(config.rate_limit_max(), config.rate_limit_window())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service.cache.start()
        logger.info("Finance Dashboard API started (%s)", config.environment())
        try:
            yield
        finally:
            service.cache.stop()

    app = FastAPI(
        title="Finance Dashboard API",
        description=(
            "Exchange rates, stock quotes and transaction history for the personal "
            "finance dashboard, with cached and fault-tolerant upstream access."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.market_data = service
    app.state.rate_limiter = rate_limiter
    app.state.started_at = time.monotonic()

    # Middleware added last runs first: CORS wraps the limiter so 429s keep CORS headers.
    @app.middleware("http")
    async def rate_limit_api(request: Request, call_next):
        if request.url.path.startswith("/api") and not app.state.rate_limiter.allow(_client_id(request)):
            err = RateLimitExceeded("Too many requests from this IP, please try again later.")
            return _error_response(err.status_code, err.code.value, err.message)
        return await call_next(request)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.frontend_origin()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)
    app.include_router(meta)
    app.include_router(api)
    return app


app = create_app()
