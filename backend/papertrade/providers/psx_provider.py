"""
Pakistan Stock Exchange tick provider backed by the psxterminal.com REST API.
"""

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from .base import PriceOracle

logger = logging.getLogger(__name__)

DEFAULT_PSX_API_BASE = "https://psxterminal.com"
FEATURED_SYMBOLS = ("HBL", "UBL", "MCB", "HUBC", "FFC")


class PSXPriceOracle(PriceOracle):
    """
    Fetches live ticks from psxterminal.com.

    The endpoint answers ``{"success": true, "data": {...}}``; anything else,
    including transport errors and malformed JSON, is treated as no quote.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_PSX_API_BASE,
        timeout: float = 5.0,
        board: str = "REG",
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the PSX price oracle.

        Args:
            base_url: API root, without trailing slash
            timeout: HTTP request timeout in seconds
            board: Market board segment, "REG" for the regular market
            transport: Optional httpx transport, used to stub the network in tests
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.board = board
        self._transport = transport

    def tick_url(self, symbol: str) -> str:
        return f"{self.base_url}/api/ticks/{quote(self.board, safe='')}/{quote(symbol, safe='')}"

    def get_tick(self, symbol: str) -> Optional[dict[str, Any]]:
        url = self.tick_url(symbol)
        try:
            timeout = httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0))
            with httpx.Client(timeout=timeout, transport=self._transport) as client:
                response = client.get(url)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            logger.warning("Failed to fetch tick for %s from %s: %s", symbol, url, e)
            return None
        except ValueError as e:
            logger.warning("Malformed tick payload for %s: %s", symbol, e)
            return None

        if not isinstance(payload, dict) or not payload.get("success"):
            return None
        data = payload.get("data")
        if not isinstance(data, dict):
            return None
        return data
