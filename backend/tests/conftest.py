from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path
from threading import Lock
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from papertrade.ledger import LedgerStore
from papertrade.providers.base import PriceOracle


class StaticPriceOracle(PriceOracle):
    """In-memory oracle: prices are set by the test, unknown symbols have no quote."""

    def __init__(self, prices: dict[str, Any] | None = None) -> None:
        self._lock = Lock()
        self._prices: dict[str, Any] = dict(prices or {})
        self._raising: set[str] = set()
        self.calls: list[str] = []

    def set_price(self, symbol: str, price: Any) -> None:
        with self._lock:
            self._prices[symbol] = price

    def remove(self, symbol: str) -> None:
        with self._lock:
            self._prices.pop(symbol, None)

    def raise_for(self, symbol: str) -> None:
        with self._lock:
            self._raising.add(symbol)

    def get_tick(self, symbol: str) -> dict[str, Any] | None:
        with self._lock:
            self.calls.append(symbol)
            if symbol in self._raising:
                raise RuntimeError(f"quote backend down for {symbol}")
            if symbol not in self._prices:
                return None
            return {"price": self._prices[symbol], "change": 0.0, "volume": 1000}


@pytest.fixture
def oracle() -> StaticPriceOracle:
    return StaticPriceOracle()


@pytest.fixture
def ledger(tmp_path: Path) -> LedgerStore:
    return LedgerStore(tmp_path / "ledger.sqlite")


@pytest.fixture
def funded_user(ledger: LedgerStore) -> int:
    ledger.open_account(1, Decimal("1000.00"))
    return 1
