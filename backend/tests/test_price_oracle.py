from __future__ import annotations

import httpx

from papertrade.providers.psx_provider import PSXPriceOracle


def _oracle(handler) -> PSXPriceOracle:
    return PSXPriceOracle(base_url="https://psx.test/", timeout=1.0, transport=httpx.MockTransport(handler))


def test_get_tick_returns_data_on_success() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json={"success": True, "data": {"symbol": "HBL", "price": 96.5, "change": 1.2}})

    tick = _oracle(handler).get_tick("HBL")
    assert tick == {"symbol": "HBL", "price": 96.5, "change": 1.2}
    assert seen == ["/api/ticks/REG/HBL"]


def test_get_tick_none_when_api_reports_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "message": "unknown symbol"})

    assert _oracle(handler).get_tick("NOPE") is None


def test_get_tick_none_on_http_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="maintenance")

    assert _oracle(handler).get_tick("HBL") is None


def test_get_tick_none_on_malformed_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>not json</html>")

    assert _oracle(handler).get_tick("HBL") is None


def test_get_tick_none_on_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    assert _oracle(handler).get_tick("HBL") is None


def test_get_ticks_fetches_each_symbol_once() -> None:
    prices = {"HBL": 96.5, "UBL": 210.0}

    def handler(request: httpx.Request) -> httpx.Response:
        symbol = request.url.path.rsplit("/", 1)[-1]
        if symbol not in prices:
            return httpx.Response(404, json={"success": False})
        return httpx.Response(200, json={"success": True, "data": {"price": prices[symbol]}})

    ticks = _oracle(handler).get_ticks(["HBL", "UBL", "HBL", "MCB"], max_workers=4)
    assert ticks == {"HBL": {"price": 96.5}, "UBL": {"price": 210.0}, "MCB": None}


def test_tick_url_uses_board_and_escapes_symbol() -> None:
    oracle = PSXPriceOracle(base_url="https://psx.test", board="FUT")
    assert oracle.tick_url("A B") == "https://psx.test/api/ticks/FUT/A%20B"
