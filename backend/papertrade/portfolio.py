"""
Point-in-time portfolio valuation.

Combines the ledger's positions with live prices into per-position and
aggregate value, invested cost and unrealized P&L figures.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from .errors import AccountNotFound
from .ledger import LedgerStore
from .models import PortfolioPosition, PortfolioSnapshot, PortfolioStats, PositionView, TopPerformer
from .providers.base import PriceOracle
from .utils.money import ZERO, Money

logger = logging.getLogger(__name__)


class PortfolioValuationEngine:
    """Builds read-only portfolio snapshots. Never mutates the ledger."""

    def __init__(self, ledger: LedgerStore, oracle: PriceOracle, *, max_workers: int = 8) -> None:
        self._ledger = ledger
        self._oracle = oracle
        self._max_workers = max(1, int(max_workers))

    def _current_prices(self, symbols: list[str]) -> dict[str, Decimal]:
        ticks = self._oracle.get_ticks(symbols, max_workers=self._max_workers)
        prices: dict[str, Decimal] = {}
        for symbol in symbols:
            tick = ticks.get(symbol)
            price = Money.parse_price(tick.get("price")) if isinstance(tick, dict) else None
            if price is None:
                logger.warning("No usable price for %s, valuing position at 0", symbol)
                price = ZERO
            prices[symbol] = price
        return prices

    @staticmethod
    def value_position(position: PositionView, current_price: Decimal) -> PortfolioPosition:
        invested = Money.multiply(position.avg_price, position.quantity)
        current_value = Money.multiply(current_price, position.quantity)
        unrealized_pnl = Money.subtract(current_value, invested)
        return PortfolioPosition(
            symbol=position.symbol,
            name=position.name,
            quantity=position.quantity,
            avg_price=position.avg_price,
            current_price=current_price,
            invested=invested,
            current_value=current_value,
            unrealized_pnl=unrealized_pnl,
            pnl_percentage=Money.percentage(unrealized_pnl, invested),
            created_at=position.created_at,
        )

    def get_portfolio(self, user_id: int) -> PortfolioSnapshot:
        account = self._ledger.get_account(user_id)
        if account is None:
            raise AccountNotFound(user_id)

        holdings = self._ledger.list_positions(user_id)
        prices = self._current_prices([row.symbol for row in holdings])
        positions = [self.value_position(row, prices[row.symbol]) for row in holdings]
        positions.sort(key=lambda row: (-row.current_value, row.symbol))

        total_invested = Money.total([row.invested for row in positions])
        total_value = Money.total([row.current_value for row in positions])
        total_pnl = Money.total([row.unrealized_pnl for row in positions])

        top = max(positions, key=lambda row: row.pnl_percentage, default=None)
        stats = PortfolioStats(
            total_trades=self._ledger.count_transactions(user_id),
            portfolio_diversity=len(positions),
            top_performer=TopPerformer(symbol=top.symbol, pnl_percentage=top.pnl_percentage) if top else None,
        )
        return PortfolioSnapshot(
            user_id=user_id,
            balance=account.balance,
            total_invested=total_invested,
            total_portfolio_value=total_value,
            total_unrealized_pnl=total_pnl,
            total_pnl_percentage=Money.percentage(total_pnl, total_invested),
            total_account_value=Money.add(account.balance, total_value),
            positions=positions,
            stats=stats,
        )
