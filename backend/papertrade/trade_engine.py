from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, Literal, TypeVar

from .errors import (
    AccountNotFound,
    InsufficientFunds,
    InsufficientShares,
    InvalidOrder,
    NoPosition,
    PricingUnavailable,
    StorageConflict,
    TradingError,
)
from .ledger import LedgerStore, LedgerTransaction
from .models import MAX_SHARE_QUANTITY, TradeResult
from .providers.base import PriceOracle
from .utils.money import Money

logger = logging.getLogger(__name__)

OrderSide = Literal["buy", "sell"]
T = TypeVar("T")


class TradeEngine:
    def __init__(self, ledger: LedgerStore, oracle: PriceOracle, *, max_attempts: int = 3) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._ledger = ledger
        self._oracle = oracle
        self._max_attempts = int(max_attempts)

    @staticmethod
    def normalize_symbol(symbol: str) -> str:
        normalized = str(symbol or "").strip().upper()
        if not normalized:
            raise InvalidOrder("symbol must not be empty")
        return normalized

    @staticmethod
    def _validate_quantity(quantity: int) -> int:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidOrder("quantity must be a positive integer")
        if quantity > MAX_SHARE_QUANTITY:
            raise InvalidOrder(f"quantity must not exceed {MAX_SHARE_QUANTITY}")
        return quantity

    def _fetch_fill_price(self, symbol: str) -> Decimal:
        try:
            tick = self._oracle.get_tick(symbol)
        except Exception as exc:
            logger.warning("Price oracle raised for %s: %s", symbol, exc)
            tick = None
        price = Money.parse_price(tick.get("price")) if isinstance(tick, dict) else None
        if price is None:
            raise PricingUnavailable(symbol)
        return price

    def _run_atomically(self, user_id: int, stock_id: int, fn: Callable[[LedgerTransaction], T]) -> T:
        attempt = 1
        while True:
            try:
                return self._ledger.with_account_and_position(user_id, stock_id, fn)
            except StorageConflict:
                if attempt >= self._max_attempts:
                    logger.error(
                        "Ledger conflict for user_id=%s stock_id=%s persisted after %s attempts",
                        user_id,
                        stock_id,
                        attempt,
                    )
                    raise
                logger.warning(
                    "Ledger conflict for user_id=%s stock_id=%s, retrying (%s/%s)",
                    user_id,
                    stock_id,
                    attempt,
                    self._max_attempts,
                )
                attempt += 1

    def _execute(self, side: OrderSide, user_id: int, symbol: str, quantity: int) -> TradeResult:
        symbol = self.normalize_symbol(symbol)
        quantity = self._validate_quantity(quantity)
        try:
            price = self._fetch_fill_price(symbol)
            stock = self._ledger.find_or_create_stock(symbol)
            total = Money.multiply(price, quantity)
            if side == "buy":
                result = self._run_atomically(
                    user_id,
                    stock.id,
                    lambda txn: self._apply_buy(txn, price, quantity, total),
                )
            else:
                result = self._run_atomically(
                    user_id,
                    stock.id,
                    lambda txn: self._apply_sell(txn, symbol, price, quantity, total),
                )
        except TradingError as exc:
            logger.info(
                "Rejected %s user_id=%s symbol=%s quantity=%s: %s",
                side,
                user_id,
                symbol,
                quantity,
                exc.code,
            )
            raise
        logger.info(
            "Filled %s user_id=%s symbol=%s quantity=%s price=%s total=%s balance=%s",
            side,
            user_id,
            symbol,
            quantity,
            price,
            total,
            result.account.balance,
        )
        return result

    @staticmethod
    def _apply_buy(txn: LedgerTransaction, price: Decimal, quantity: int, total_cost: Decimal) -> TradeResult:
        account = txn.get_account()
        if account is None:
            raise AccountNotFound(txn.user_id)
        if account.balance < total_cost:
            raise InsufficientFunds()

        account = txn.set_balance(Money.subtract(account.balance, total_cost))
        existing = txn.get_position()
        if existing is None:
            position = txn.save_position(quantity, price)
        else:
            if existing.quantity + quantity > MAX_SHARE_QUANTITY:
                raise InvalidOrder(f"position would exceed {MAX_SHARE_QUANTITY} shares")
            avg_price = Money.weighted_average(existing.avg_price, existing.quantity, price, quantity)
            position = txn.save_position(existing.quantity + quantity, avg_price)
        transaction = txn.append_transaction("BUY", quantity, price, total_cost)
        return TradeResult(account=account, position=position, transaction=transaction)

    @staticmethod
    def _apply_sell(
        txn: LedgerTransaction,
        symbol: str,
        price: Decimal,
        quantity: int,
        total_sale: Decimal,
    ) -> TradeResult:
        account = txn.get_account()
        if account is None:
            raise AccountNotFound(txn.user_id)
        existing = txn.get_position()
        if existing is None:
            raise NoPosition(symbol)
        if existing.quantity < quantity:
            raise InsufficientShares(existing.quantity, quantity)

        account = txn.set_balance(Money.add(account.balance, total_sale))
        remaining = existing.quantity - quantity
        if remaining == 0:
            txn.delete_position()
            position = None
        else:
            position = txn.save_position(remaining, existing.avg_price)
        transaction = txn.append_transaction("SELL", quantity, price, total_sale)
        return TradeResult(account=account, position=position, transaction=transaction)

    def buy(self, user_id: int, symbol: str, quantity: int) -> TradeResult:
        return self._execute("buy", user_id, symbol, quantity)

    def sell(self, user_id: int, symbol: str, quantity: int) -> TradeResult:
        return self._execute("sell", user_id, symbol, quantity)
