"""
Tests for the Binance adapter: payload parsing and request shaping.
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from ocobot.core.errors import GatewayError
from ocobot.config.config import Settings
from ocobot.core.models import OrderKind, Side
from ocobot.infra.binance_exchange import (
    BinanceExchange,
    parse_execution_report,
    parse_order_ack,
    parse_symbol_filters,
    parse_trade_message,
)

D = Decimal

SYMBOL_INFO = {
    "symbol": "BNBBTC",
    "filters": [
        {"filterType": "PRICE_FILTER", "minPrice": "0.00000100", "maxPrice": "100000.00000000",
         "tickSize": "0.00000100"},
        {"filterType": "LOT_SIZE", "minQty": "0.01000000", "maxQty": "9000000.00000000",
         "stepSize": "0.01000000"},
        {"filterType": "NOTIONAL", "minNotional": "0.00010000", "applyMinToMarket": True},
    ],
}

EXECUTION_REPORT = {
    "e": "executionReport", "E": 1499405658658, "s": "BNBBTC", "c": "oco-entry-0011223344556677",
    "S": "BUY", "o": "LIMIT", "f": "GTC", "q": "1.00000000", "p": "0.00200000", "P": "0.00000000",
    "x": "TRADE", "X": "FILLED", "r": "NONE", "i": 4293153, "l": "1.00000000", "z": "1.00000000",
    "L": "0.00200000", "n": "0.00100000", "N": "BNB",
}


class FakeSocket:
    """Async context manager yielding queued messages from recv()."""

    def __init__(self, messages):
        self.messages = list(messages)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def recv(self):
        return self.messages.pop(0)


def make_exchange(client=None, bsm=None) -> BinanceExchange:
    return BinanceExchange(client or MagicMock(), bsm or MagicMock())


class TestParsing:

    def test_symbol_filters(self):
        f = parse_symbol_filters(SYMBOL_INFO, "BNBBTC")
        assert f.step_size == D("0.01")
        assert f.min_qty == D("0.01")
        assert f.tick_size == D("0.000001")
        assert f.min_price == D("0.000001")
        assert f.min_notional == D("0.0001")

    def test_legacy_min_notional_filter(self):
        info = dict(SYMBOL_INFO, filters=SYMBOL_INFO["filters"][:2] + [
            {"filterType": "MIN_NOTIONAL", "minNotional": "0.00100000"},
        ])
        assert parse_symbol_filters(info, "BNBBTC").min_notional == D("0.001")

    def test_unknown_symbol(self):
        with pytest.raises(GatewayError, match="unknown symbol NOPE"):
            parse_symbol_filters(None, "NOPE")

    def test_order_ack_with_fills(self):
        ack = parse_order_ack({
            "symbol": "BNBBTC", "orderId": 28, "clientOrderId": "oco-entry-aa", "status": "FILLED",
            "type": "MARKET", "fills": [
                {"price": "0.00200000", "qty": "1.00000000", "commission": "0.00075000",
                 "commissionAsset": "BNB"},
            ],
        })
        assert ack.order_id == 28
        assert ack.status == "FILLED"
        assert ack.commission_asset == "BNB"
        assert ack.fills[0].price == D("0.002")

    def test_order_ack_without_fills(self):
        ack = parse_order_ack({"orderId": 29, "status": "NEW", "type": "LIMIT", "fills": []})
        assert ack.commission_asset is None

    def test_trade_message(self):
        tick = parse_trade_message({"e": "trade", "s": "BNBBTC", "p": "0.00210000", "q": "5"})
        assert tick.symbol == "BNBBTC"
        assert tick.price == D("0.0021")

    def test_trade_stream_error(self):
        with pytest.raises(GatewayError, match="Max reconnect retries reached"):
            parse_trade_message({"e": "error", "m": "Max reconnect retries reached"})

    def test_execution_report(self):
        update = parse_execution_report(EXECUTION_REPORT)
        assert update.order_id == 4293153
        assert update.status == "FILLED"
        assert update.side == "BUY"
        assert update.order_type == "LIMIT"
        assert update.commission_asset == "BNB"
        assert update.reject_reason is None
        assert update.quantity == D("1")

    def test_execution_report_reject_reason(self):
        update = parse_execution_report(dict(EXECUTION_REPORT, X="REJECTED", r="INSUFFICIENT_BALANCE", N=None))
        assert update.reject_reason == "INSUFFICIENT_BALANCE"
        assert update.commission_asset is None

    def test_other_user_events_skipped(self):
        assert parse_execution_report({"e": "outboundAccountPosition", "B": []}) is None


class TestRequests:

    @pytest.mark.asyncio
    async def test_place_stop_limit_order(self):
        client = MagicMock()
        client.get_symbol_info = AsyncMock(return_value=SYMBOL_INFO)
        client.create_order = AsyncMock(return_value={
            "orderId": 5, "status": "NEW", "type": "STOP_LOSS_LIMIT", "clientOrderId": "oco-stop-1", "fills": [],
        })
        exchange = make_exchange(client)
        await exchange.get_symbol_filters("BNBBTC")

        ack = await exchange.place_order(
            "BNBBTC", Side.SELL, D("0.5994"), D("0.00100000"), OrderKind.STOP_LOSS_LIMIT,
            stop_price=D("0.001"), client_order_id="oco-stop-1",
        )
        assert ack.order_id == 5
        client.create_order.assert_awaited_once_with(
            symbol="BNBBTC", side="SELL", type="STOP_LOSS_LIMIT", quantity="0.59",
            newOrderRespType="FULL", timeInForce="GTC", price="0.001", stopPrice="0.001",
            newClientOrderId="oco-stop-1",
        )

    @pytest.mark.asyncio
    async def test_place_market_order(self):
        client = MagicMock()
        client.create_order = AsyncMock(return_value={"orderId": 6, "status": "FILLED", "type": "MARKET"})
        exchange = make_exchange(client)
        await exchange.place_order("BNBBTC", Side.BUY, D("1"), None, OrderKind.MARKET)
        kwargs = client.create_order.await_args.kwargs
        assert kwargs["type"] == "MARKET"
        assert kwargs["side"] == "BUY"
        assert "price" not in kwargs
        assert "timeInForce" not in kwargs

    @pytest.mark.asyncio
    async def test_current_price(self):
        client = MagicMock()
        client.get_symbol_ticker = AsyncMock(return_value={"symbol": "BNBBTC", "price": "0.00250000"})
        assert await make_exchange(client).get_current_price("BNBBTC") == D("0.0025")

    @pytest.mark.asyncio
    async def test_cancel_order(self):
        client = MagicMock()
        client.cancel_order = AsyncMock(return_value={"orderId": 7, "status": "CANCELED"})
        await make_exchange(client).cancel_order("BNBBTC", 7)
        client.cancel_order.assert_awaited_once_with(symbol="BNBBTC", orderId=7)

    @pytest.mark.asyncio
    async def test_timeout_becomes_gateway_error(self):
        client = MagicMock()
        client.get_symbol_info = AsyncMock(side_effect=asyncio.TimeoutError())
        with pytest.raises(GatewayError, match="get_symbol_filters failed: TimeoutError"):
            await make_exchange(client).get_symbol_filters("BNBBTC")

    @pytest.mark.asyncio
    async def test_transport_error_becomes_gateway_error(self):
        client = MagicMock()
        client.cancel_order = AsyncMock(side_effect=aiohttp.ClientConnectionError("connection reset"))
        with pytest.raises(GatewayError, match="cancel_order failed: connection reset") as exc:
            await make_exchange(client).cancel_order("BNBBTC", 7)
        assert isinstance(exc.value.cause, aiohttp.ClientError)

    @pytest.mark.asyncio
    async def test_connect_error_becomes_gateway_error(self):
        settings = Settings(
            api_key="key", api_secret="secret", testnet=True, fee_discount_asset="BNB",
            non_discount_fee_rate=D("0.001"), http_timeout=1.0, log_level="INFO", log_file=None,
            tick_log_cooldown_sec=0.0, metrics_port=0,
        )
        failing = AsyncMock(side_effect=aiohttp.ClientError("api.binance.com unreachable"))
        with patch("ocobot.infra.binance_exchange.AsyncClient.create", failing):
            with pytest.raises(GatewayError, match="connect failed"):
                await BinanceExchange.create(settings)

    @pytest.mark.asyncio
    async def test_close(self):
        client = MagicMock()
        client.close_connection = AsyncMock()
        await make_exchange(client).close()
        client.close_connection.assert_awaited_once()


class TestStreams:

    @pytest.mark.asyncio
    async def test_price_ticks(self):
        bsm = MagicMock()
        bsm.trade_socket.return_value = FakeSocket([
            {"e": "trade", "s": "BNBBTC", "p": "0.002"},
            None,
            {"e": "trade", "s": "BNBBTC", "p": "0.0021"},
        ])
        stream = make_exchange(bsm=bsm).price_ticks("BNBBTC")
        first = await stream.__anext__()
        second = await stream.__anext__()
        assert [first.price, second.price] == [D("0.002"), D("0.0021")]
        bsm.trade_socket.assert_called_once_with("BNBBTC")
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_order_updates_skip_account_events(self):
        bsm = MagicMock()
        bsm.user_socket.return_value = FakeSocket([
            {"e": "outboundAccountPosition", "B": []},
            EXECUTION_REPORT,
        ])
        stream = make_exchange(bsm=bsm).order_updates()
        update = await stream.__anext__()
        assert update.order_id == 4293153
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_stream_error_raises(self):
        bsm = MagicMock()
        bsm.user_socket.return_value = FakeSocket([{"e": "error", "m": "read loop closed"}])
        stream = make_exchange(bsm=bsm).order_updates()
        with pytest.raises(GatewayError, match="user_stream failed: read loop closed"):
            await stream.__anext__()

    @pytest.mark.asyncio
    async def test_order_updates_reports_connection(self):
        bsm = MagicMock()
        bsm.user_socket.return_value = FakeSocket([EXECUTION_REPORT])
        connected = []
        stream = make_exchange(bsm=bsm).order_updates(on_connected=lambda: connected.append(True))
        update = await stream.__anext__()
        assert connected == [True]
        assert update.status == "FILLED"
        await stream.aclose()
