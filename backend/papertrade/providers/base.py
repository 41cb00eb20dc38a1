"""
Base interfaces for price providers.
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

logger = logging.getLogger(__name__)


class PriceOracle(ABC):
    """
    Abstract base class for live price sources.

    Implementations wrap a quote API and are best-effort: any failure is
    reported as None rather than raised, and the trading core treats the
    returned price as current.
    """

    @abstractmethod
    def get_tick(self, symbol: str) -> Optional[dict[str, Any]]:
        """
        Get the latest tick for a symbol.

        Args:
            symbol: Ticker symbol (e.g., "HBL")

        Returns:
            Tick mapping with at least a numeric "price" key, or None when
            the quote is unavailable
        """
        pass

    def get_ticks(self, symbols: list[str], max_workers: int = 8) -> dict[str, Optional[dict[str, Any]]]:
        """
        Fetch ticks for several symbols in parallel.

        A failing lookup only affects its own symbol, which maps to None.

        Args:
            symbols: Ticker symbols, duplicates are fetched once
            max_workers: Upper bound on concurrent lookups

        Returns:
            Mapping of symbol to tick (or None)
        """
        unique = list(dict.fromkeys(symbols))
        if not unique:
            return {}
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(unique)))) as pool:
            ticks = list(pool.map(self._safe_get_tick, unique))
        return dict(zip(unique, ticks))

    def _safe_get_tick(self, symbol: str) -> Optional[dict[str, Any]]:
        try:
            return self.get_tick(symbol)
        except Exception as e:
            logger.warning("Price lookup for %s failed: %s", symbol, e)
            return None
