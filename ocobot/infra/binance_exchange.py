"""
Binance spot adapter over python-binance's AsyncClient and socket manager.

Converts exchange payloads to the bot's Decimal value types at this
boundary and every failure to GatewayError. Nothing here retries: a
place/cancel whose outcome is unknown must not be repeated blindly.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any, AsyncIterator, Callable, Dict, Optional

import aiohttp

from binance import AsyncClient, BinanceSocketManager
from binance.enums import (
    ORDER_RESP_TYPE_FULL,
    ORDER_TYPE_LIMIT,
    ORDER_TYPE_MARKET,
    ORDER_TYPE_STOP_LOSS_LIMIT,
    SIDE_BUY,
    SIDE_SELL,
    TIME_IN_FORCE_GTC,
)
from binance.exceptions import BinanceAPIException, BinanceRequestException

from ocobot.config.config import Settings
from ocobot.core.errors import GatewayError
from ocobot.core.models import (
    Fill,
    OrderAck,
    OrderKind,
    OrderUpdate,
    PriceTick,
    Side,
    SymbolFilters,
)
from ocobot.core.rounding import format_decimal, round_to_step, to_decimal
from ocobot.infra.logging_cfg import log_event

log = logging.getLogger("ocobot")

# REST failures surfaced as GatewayError: exchange rejections, transport errors, timeouts
REQUEST_ERRORS = (BinanceAPIException, BinanceRequestException, aiohttp.ClientError, asyncio.TimeoutError)

_ORDER_TYPES = {
    OrderKind.MARKET: ORDER_TYPE_MARKET,
    OrderKind.LIMIT: ORDER_TYPE_LIMIT,
    OrderKind.STOP_LOSS_LIMIT: ORDER_TYPE_STOP_LOSS_LIMIT,
}


# ---------- payload parsing ----------

def parse_symbol_filters(symbol_info: Optional[Dict[str, Any]], symbol: str) -> SymbolFilters:
    """Read LOT_SIZE, PRICE_FILTER and MIN_NOTIONAL/NOTIONAL from get_symbol_info()."""
    if not symbol_info:
        raise GatewayError("get_symbol_filters", f"unknown symbol {symbol}")
    filters = {f.get("filterType"): f for f in symbol_info.get("filters", [])}
    lot = filters.get("LOT_SIZE")
    price = filters.get("PRICE_FILTER")
    notional = filters.get("MIN_NOTIONAL") or filters.get("NOTIONAL")
    if lot is None or price is None:
        raise GatewayError("get_symbol_filters", f"{symbol} is missing LOT_SIZE or PRICE_FILTER")
    min_notional = Decimal("0")
    if notional is not None:
        min_notional = to_decimal(notional.get("minNotional", "0"))
    return SymbolFilters(
        step_size=to_decimal(lot["stepSize"]),
        min_qty=to_decimal(lot["minQty"]),
        tick_size=to_decimal(price["tickSize"]),
        min_price=to_decimal(price["minPrice"]),
        min_notional=min_notional,
    )


def parse_order_ack(response: Dict[str, Any]) -> OrderAck:
    fills = [
        Fill(
            price=to_decimal(f.get("price", "0")),
            quantity=to_decimal(f.get("qty", "0")),
            commission=to_decimal(f.get("commission", "0")),
            commission_asset=f.get("commissionAsset"),
        )
        for f in response.get("fills") or []
    ]
    return OrderAck(
        order_id=int(response["orderId"]),
        status=response.get("status", ""),
        order_type=response.get("type", ""),
        client_order_id=response.get("clientOrderId"),
        fills=fills,
    )


def _check_stream_error(msg: Dict[str, Any], stream: str) -> None:
    if msg.get("e") == "error":
        raise GatewayError(stream, str(msg.get("m") or msg.get("message") or msg))


def parse_trade_message(msg: Dict[str, Any]) -> Optional[PriceTick]:
    """Trade stream message -> PriceTick (None for anything that is not a trade)."""
    _check_stream_error(msg, "trade_stream")
    if "s" not in msg or "p" not in msg:
        return None
    return PriceTick(symbol=msg["s"], price=to_decimal(msg["p"]))


def parse_execution_report(msg: Dict[str, Any]) -> Optional[OrderUpdate]:
    """User data stream message -> OrderUpdate (None for non order events)."""
    _check_stream_error(msg, "user_stream")
    if msg.get("e") != "executionReport":
        return None
    reject = msg.get("r")
    return OrderUpdate(
        symbol=msg["s"],
        order_id=int(msg["i"]),
        side=msg.get("S", ""),
        order_type=msg.get("o", ""),
        status=msg["X"],
        price=to_decimal(msg.get("p", "0")),
        quantity=to_decimal(msg.get("q", "0")),
        commission_asset=msg.get("N"),
        reject_reason=None if reject in (None, "NONE") else reject,
    )


# ---------- adapter ----------

class BinanceExchange:
    """ExchangeClient implementation for Binance spot."""

    def __init__(self, client: AsyncClient, socket_manager: Optional[BinanceSocketManager] = None) -> None:
        self.client = client
        self.bsm = socket_manager or BinanceSocketManager(client)
        self._step_sizes: Dict[str, Decimal] = {}

    @classmethod
    async def create(cls, settings: Settings) -> "BinanceExchange":
        settings.require_credentials()
        try:
            client = await AsyncClient.create(
                settings.api_key,
                settings.api_secret,
                requests_params={"timeout": settings.http_timeout},
                testnet=settings.testnet,
            )
        except REQUEST_ERRORS as exc:
            raise GatewayError("connect", str(exc) or type(exc).__name__, cause=exc) from exc
        log_event(log, "exchange_connected", testnet=settings.testnet)
        return cls(client)

    async def get_symbol_filters(self, symbol: str) -> SymbolFilters:
        try:
            info = await self.client.get_symbol_info(symbol)
        except REQUEST_ERRORS as exc:
            raise GatewayError("get_symbol_filters", str(exc) or type(exc).__name__, cause=exc) from exc
        filters = parse_symbol_filters(info, symbol)
        self._step_sizes[symbol] = filters.step_size
        return filters

    async def get_current_price(self, symbol: str) -> Decimal:
        try:
            ticker = await self.client.get_symbol_ticker(symbol=symbol)
        except REQUEST_ERRORS as exc:
            raise GatewayError("get_current_price", str(exc) or type(exc).__name__, cause=exc) from exc
        return to_decimal(ticker["price"])

    async def place_order(
        self,
        symbol: str,
        side: Side,
        quantity: Decimal,
        price: Optional[Decimal],
        kind: OrderKind,
        stop_price: Optional[Decimal] = None,
        client_order_id: Optional[str] = None,
    ) -> OrderAck:
        step = self._step_sizes.get(symbol)
        sent_qty = round_to_step(quantity, step) if step else quantity
        if sent_qty != quantity:
            log.debug("quantity_floored symbol=%s qty=%s sent=%s", symbol, quantity, sent_qty)

        params: Dict[str, Any] = {
            "symbol": symbol,
            "side": SIDE_BUY if side == Side.BUY else SIDE_SELL,
            "type": _ORDER_TYPES[kind],
            "quantity": format_decimal(sent_qty),
            "newOrderRespType": ORDER_RESP_TYPE_FULL,
        }
        if kind != OrderKind.MARKET:
            params["timeInForce"] = TIME_IN_FORCE_GTC
            params["price"] = format_decimal(price)
        if kind == OrderKind.STOP_LOSS_LIMIT:
            params["stopPrice"] = format_decimal(stop_price)
        if client_order_id:
            params["newClientOrderId"] = client_order_id

        try:
            response = await self.client.create_order(**params)
        except REQUEST_ERRORS as exc:
            raise GatewayError("place_order", str(exc) or type(exc).__name__, cause=exc) from exc
        return parse_order_ack(response)

    async def cancel_order(self, symbol: str, order_id: int) -> Dict[str, Any]:
        try:
            return await self.client.cancel_order(symbol=symbol, orderId=order_id)
        except REQUEST_ERRORS as exc:
            raise GatewayError("cancel_order", str(exc) or type(exc).__name__, cause=exc) from exc

    async def price_ticks(self, symbol: str) -> AsyncIterator[PriceTick]:
        async with self.bsm.trade_socket(symbol) as stream:
            while True:
                msg = await stream.recv()
                if not msg:
                    continue
                tick = parse_trade_message(msg)
                if tick is not None:
                    yield tick

    async def order_updates(self, on_connected: Optional[Callable[[], None]] = None) -> AsyncIterator[OrderUpdate]:
        """User data stream; `on_connected` runs once the socket is open, before the first message."""
        async with self.bsm.user_socket() as stream:
            if on_connected is not None:
                on_connected()
            while True:
                msg = await stream.recv()
                if not msg:
                    continue
                update = parse_execution_report(msg)
                if update is not None:
                    yield update

    async def close(self) -> None:
        await self.client.close_connection()
