from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

TransactionType = Literal["BUY", "SELL"]

# Largest share count an sqlite INTEGER column can hold.
MAX_SHARE_QUANTITY = 2**63 - 1


class ApiErrorPayload(BaseModel):
    code: str
    message: str
    trace_id: str | None = None


class Account(BaseModel):
    user_id: int
    balance: Decimal
    created_at: str


class Stock(BaseModel):
    id: int
    symbol: str
    name: str | None = None
    market_type: str = "REG"


class Position(BaseModel):
    user_id: int
    stock_id: int
    quantity: int = Field(gt=0)
    avg_price: Decimal
    created_at: str
    updated_at: str


class PositionView(Position):
    symbol: str
    name: str | None = None


class Transaction(BaseModel):
    id: int
    user_id: int
    stock_id: int
    type: TransactionType
    quantity: int = Field(gt=0)
    price: Decimal
    total: Decimal
    created_at: str


class TransactionView(Transaction):
    symbol: str
    name: str | None = None


class OpenAccountRequest(BaseModel):
    user_id: int = Field(gt=0)
    initial_balance: Decimal | None = Field(default=None, ge=0)


class TradeRequest(BaseModel):
    symbol: str = Field(min_length=1, max_length=16)
    quantity: int = Field(ge=1, le=MAX_SHARE_QUANTITY)


class TradeResult(BaseModel):
    account: Account
    position: Position | None = None
    transaction: Transaction


class PortfolioPosition(BaseModel):
    symbol: str
    name: str | None = None
    quantity: int
    avg_price: Decimal
    current_price: Decimal
    invested: Decimal
    current_value: Decimal
    unrealized_pnl: Decimal
    pnl_percentage: Decimal
    created_at: str


class TopPerformer(BaseModel):
    symbol: str
    pnl_percentage: Decimal


class PortfolioStats(BaseModel):
    total_trades: int = 0
    portfolio_diversity: int = 0
    top_performer: TopPerformer | None = None


class PortfolioSnapshot(BaseModel):
    user_id: int
    balance: Decimal
    total_invested: Decimal
    total_portfolio_value: Decimal
    total_unrealized_pnl: Decimal
    total_pnl_percentage: Decimal
    total_account_value: Decimal
    positions: list[PortfolioPosition]
    stats: PortfolioStats = Field(default_factory=PortfolioStats)


class TransactionsPage(BaseModel):
    transactions: list[TransactionView]
    total: int
    limit: int
    offset: int


class StockTick(BaseModel):
    symbol: str
    price: Decimal | None = None
    change: Decimal | None = None
    change_percent: Decimal | None = None
    volume: int | None = None
    available: bool = False


class FeaturedTicksResponse(BaseModel):
    items: list[StockTick]


class AppConfig(BaseModel):
    ledger_path: str = ""
    price_api_base: str = "https://psxterminal.com"
    price_board: str = "REG"
    price_timeout_sec: float = Field(default=5.0, gt=0, le=60)
    default_initial_balance: Decimal = Field(default=Decimal("100000"), gt=0)
    trade_max_attempts: int = Field(default=3, ge=1, le=10)
    valuation_max_workers: int = Field(default=8, ge=1, le=64)
    featured_symbols: list[str] = Field(default_factory=lambda: ["HBL", "UBL", "MCB", "HUBC", "FFC"])
