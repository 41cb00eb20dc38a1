from __future__ import annotations

import time

from fastapi import FastAPI, Path, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import TradingError
from .models import (
    Account,
    ApiErrorPayload,
    FeaturedTicksResponse,
    OpenAccountRequest,
    PortfolioSnapshot,
    StockTick,
    TradeRequest,
    TradeResult,
    TransactionsPage,
)
from .store import get_store

app = FastAPI(title="Papertrade API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:3000",
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    payload = ApiErrorPayload(
        code=code,
        message=message,
        trace_id=str(time.time_ns()),
    )
    return JSONResponse(status_code=status_code, content=payload.model_dump(exclude_none=True))


@app.exception_handler(RequestValidationError)
def handle_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
    detail = exc.errors()[0].get("msg") if exc.errors() else "Invalid request parameters"
    return error_response(422, "VALIDATION_ERROR", str(detail))


@app.exception_handler(TradingError)
def handle_trading_error(_: Request, exc: TradingError) -> JSONResponse:
    return error_response(exc.status_code, exc.code, exc.message)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/accounts", response_model=Account, status_code=201)
def post_account(payload: OpenAccountRequest) -> Account:
    return get_store().open_account(payload.user_id, payload.initial_balance)


@app.get("/api/accounts/{user_id}", response_model=Account)
def get_account(user_id: int = Path(gt=0)) -> Account:
    return get_store().get_account(user_id)


@app.post("/api/users/{user_id}/trades/buy", response_model=TradeResult)
def post_buy(payload: TradeRequest, user_id: int = Path(gt=0)) -> TradeResult:
    return get_store().buy(user_id, payload.symbol, payload.quantity)


@app.post("/api/users/{user_id}/trades/sell", response_model=TradeResult)
def post_sell(payload: TradeRequest, user_id: int = Path(gt=0)) -> TradeResult:
    return get_store().sell(user_id, payload.symbol, payload.quantity)


@app.get("/api/users/{user_id}/portfolio", response_model=PortfolioSnapshot)
def get_portfolio(user_id: int = Path(gt=0)) -> PortfolioSnapshot:
    return get_store().get_portfolio(user_id)


@app.get("/api/users/{user_id}/transactions", response_model=TransactionsPage)
def get_transactions(
    user_id: int = Path(gt=0),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> TransactionsPage:
    return get_store().get_transactions(user_id, limit=limit, offset=offset)


@app.get("/api/stocks/featured", response_model=FeaturedTicksResponse)
def get_featured_stocks() -> FeaturedTicksResponse:
    return get_store().list_featured_ticks()


@app.get("/api/stocks/{symbol}/tick", response_model=StockTick)
def get_stock_tick(symbol: str = Path(min_length=1, max_length=16)) -> StockTick:
    return get_store().get_tick(symbol)
