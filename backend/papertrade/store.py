from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path
from threading import RLock
from typing import Any

from .config import ConfigManager, ConfigValidator, apply_env_overrides, create_config_manager, resolve_ledger_path
from .errors import AccountNotFound, InvalidOrder, PricingUnavailable
from .history import TransactionHistoryReader
from .ledger import LedgerStore
from .models import (
    Account,
    AppConfig,
    FeaturedTicksResponse,
    PortfolioSnapshot,
    StockTick,
    TradeResult,
    TransactionsPage,
)
from .portfolio import PortfolioValuationEngine
from .providers.base import PriceOracle
from .providers.psx_provider import PSXPriceOracle
from .trade_engine import TradeEngine
from .utils.money import Money

logger = logging.getLogger(__name__)


def _optional_decimal(raw: Any) -> Decimal | None:
    try:
        value = Money.to_decimal(raw)
    except ValueError:
        return None
    return value if value.is_finite() else None


def _optional_int(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


class TradingStore:
    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        ledger_path: str | Path | None = None,
        oracle: PriceOracle | None = None,
        config_manager: ConfigManager | None = None,
    ) -> None:
        self._config_manager = config_manager or create_config_manager()
        self._config = config or apply_env_overrides(self._config_manager.get_config())
        problems = ConfigValidator.validate_app_config(self._config)
        if problems:
            raise ValueError("invalid configuration: " + "; ".join(problems))

        path = Path(ledger_path) if ledger_path else resolve_ledger_path(self._config)
        self._ledger = LedgerStore(path)
        self._oracle = oracle or PSXPriceOracle(
            base_url=self._config.price_api_base,
            timeout=self._config.price_timeout_sec,
            board=self._config.price_board,
        )
        self._trade_engine = TradeEngine(self._ledger, self._oracle, max_attempts=self._config.trade_max_attempts)
        self._portfolio_engine = PortfolioValuationEngine(
            self._ledger,
            self._oracle,
            max_workers=self._config.valuation_max_workers,
        )
        self._history = TransactionHistoryReader(self._ledger)
        logger.info("Trading store ready, ledger at %s", path)

    @property
    def ledger(self) -> LedgerStore:
        return self._ledger

    def get_config(self) -> AppConfig:
        return self._config

    def open_account(self, user_id: int, initial_balance: Decimal | None = None) -> Account:
        balance = self._config.default_initial_balance if initial_balance is None else initial_balance
        if not balance.is_finite():
            raise InvalidOrder("initial_balance must be a finite number")
        if balance < 0:
            raise InvalidOrder("initial_balance must not be negative")
        return self._ledger.open_account(user_id, balance)

    def get_account(self, user_id: int) -> Account:
        account = self._ledger.get_account(user_id)
        if account is None:
            raise AccountNotFound(user_id)
        return account

    def buy(self, user_id: int, symbol: str, quantity: int) -> TradeResult:
        return self._trade_engine.buy(user_id, symbol, quantity)

    def sell(self, user_id: int, symbol: str, quantity: int) -> TradeResult:
        return self._trade_engine.sell(user_id, symbol, quantity)

    def get_portfolio(self, user_id: int) -> PortfolioSnapshot:
        return self._portfolio_engine.get_portfolio(user_id)

    def get_transactions(self, user_id: int, limit: int = 50, offset: int = 0) -> TransactionsPage:
        return self._history.get_transactions(user_id, limit=limit, offset=offset)

    @staticmethod
    def _to_stock_tick(symbol: str, tick: dict[str, Any] | None) -> StockTick:
        if not isinstance(tick, dict):
            return StockTick(symbol=symbol)
        price = Money.parse_price(tick.get("price"))
        return StockTick(
            symbol=symbol,
            price=price,
            change=_optional_decimal(tick.get("change")),
            change_percent=_optional_decimal(tick.get("changePercent")),
            volume=_optional_int(tick.get("volume")),
            available=price is not None,
        )

    def get_tick(self, symbol: str) -> StockTick:
        normalized = TradeEngine.normalize_symbol(symbol)
        tick = self._to_stock_tick(normalized, self._oracle.get_tick(normalized))
        if not tick.available:
            raise PricingUnavailable(normalized)
        return tick

    def list_featured_ticks(self) -> FeaturedTicksResponse:
        symbols = [TradeEngine.normalize_symbol(item) for item in self._config.featured_symbols]
        ticks = self._oracle.get_ticks(symbols, max_workers=self._config.valuation_max_workers)
        return FeaturedTicksResponse(items=[self._to_stock_tick(symbol, ticks.get(symbol)) for symbol in symbols])


_store: TradingStore | None = None
_store_lock = RLock()


def get_store() -> TradingStore:
    global _store
    with _store_lock:
        if _store is None:
            _store = TradingStore()
        return _store


def set_store(instance: TradingStore | None) -> None:
    global _store
    with _store_lock:
        _store = instance
