"""
ExecutionGateway: the only component that talks to the exchange.

Handlers on the event bus must not block on exchange calls, and must not
mutate state from a call completion running concurrently with another
handler. So every call here is fired as an asyncio task and its outcome is
published back onto the bus as an event:

    quote_price()  -> PRICE_QUOTED    | GATEWAY_ERROR
    place(order)   -> ORDER_PLACED    | GATEWAY_ERROR
    cancel(order)  -> ORDER_CANCELLED | GATEWAY_ERROR

The controllers react to those events on the single consumer.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol, Set

from ocobot.core.errors import GatewayError, OrderStateError
from ocobot.core.event_bus import EventBus, EventType
from ocobot.core.models import OrderAck, OrderKind, OrderUpdate, PriceTick, Side, SymbolFilters
from ocobot.execution.order_state_machine import OrderStatus, TrackedOrder
from ocobot.infra.logging_cfg import log_event
from ocobot.monitoring.metrics import PositionMetrics

log = logging.getLogger("ocobot")


class ExchangeClient(Protocol):
    """What the bot needs from an exchange."""

    async def get_symbol_filters(self, symbol: str) -> SymbolFilters: ...

    async def get_current_price(self, symbol: str) -> Decimal: ...

    async def place_order(
        self,
        symbol: str,
        side: Side,
        quantity: Decimal,
        price: Optional[Decimal],
        kind: OrderKind,
        stop_price: Optional[Decimal] = None,
        client_order_id: Optional[str] = None,
    ) -> OrderAck: ...

    async def cancel_order(self, symbol: str, order_id: int) -> Any: ...

    def price_ticks(self, symbol: str) -> AsyncIterator[PriceTick]: ...

    def order_updates(self, on_connected: Optional[Callable[[], None]] = None) -> AsyncIterator[OrderUpdate]: ...

    async def close(self) -> None: ...


@dataclass
class ExecutionGatewayConfig:
    """Configuration for ExecutionGateway."""
    log_order_intent: bool = True


class ExecutionGateway:
    """
    Fire-and-publish wrapper around an ExchangeClient for one symbol.

    Guards:
    - an order is submitted at most once (by client order id)
    - a cancel is only sent for an acknowledged order in CANCELLING
    """

    def __init__(
        self,
        symbol: str,
        exchange: ExchangeClient,
        event_bus: EventBus,
        metrics: Optional[PositionMetrics] = None,
        config: Optional[ExecutionGatewayConfig] = None,
    ) -> None:
        self.symbol = symbol
        self.exchange = exchange
        self.event_bus = event_bus
        self.metrics = metrics
        self.config = config or ExecutionGatewayConfig()
        self._submitted: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

    # ========== Calls ==========

    def quote_price(self) -> None:
        """Fetch the current price; publishes PRICE_QUOTED."""
        self._spawn(self._quote_price(), "quote_price")

    def place(self, order: TrackedOrder) -> None:
        """Submit a tracked order; publishes ORDER_PLACED."""
        if order.status != OrderStatus.PENDING_SUBMIT:
            raise OrderStateError(f"cannot submit {order.role.value} order in {order.status.name}")
        if order.client_order_id in self._submitted:
            raise OrderStateError(f"duplicate submission of {order.client_order_id}")
        self._submitted.add(order.client_order_id)

        if self.config.log_order_intent:
            log_event(log, "order_intent", symbol=self.symbol, **order.describe())
        self._spawn(self._place(order), f"place_{order.role.value}")

    def cancel(self, order: TrackedOrder) -> None:
        """Cancel an acknowledged order; publishes ORDER_CANCELLED."""
        if order.status != OrderStatus.CANCELLING or not order.order_id:
            raise OrderStateError(
                f"cannot cancel {order.role.value} order {order.order_id} in {order.status.name}"
            )
        log_event(log, "order_cancel_intent", symbol=self.symbol, role=order.role.value, oid=order.order_id)
        self._spawn(self._cancel(order), f"cancel_{order.role.value}")

    async def close(self) -> None:
        """Cancel in-flight call tasks (abrupt shutdown, results are not awaited)."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # ========== Task bodies ==========

    async def _quote_price(self) -> None:
        try:
            price = await self.exchange.get_current_price(self.symbol)
        except Exception as exc:
            self._publish_error("quote_price", exc)
            return
        log_event(log, "price_quoted", symbol=self.symbol, price=price)
        self.event_bus.emit(EventType.PRICE_QUOTED, source="gateway", price=price)

    async def _place(self, order: TrackedOrder) -> None:
        try:
            ack = await self.exchange.place_order(
                self.symbol,
                order.side,
                order.quantity,
                order.price,
                order.kind,
                stop_price=order.stop_price,
                client_order_id=order.client_order_id,
            )
        except Exception as exc:
            self._publish_error("place_order", exc, order)
            return
        if self.metrics:
            self.metrics.orders_submitted.labels(symbol=self.symbol, role=order.role.value).inc()
        log_event(
            log, "order_placed", symbol=self.symbol, role=order.role.value,
            oid=ack.order_id, status=ack.status, type=ack.order_type,
        )
        self.event_bus.emit(
            EventType.ORDER_PLACED,
            source="gateway",
            role=order.role,
            client_order_id=order.client_order_id,
            ack=ack,
        )

    async def _cancel(self, order: TrackedOrder) -> None:
        order_id = order.order_id
        try:
            response = await self.exchange.cancel_order(self.symbol, order_id)
        except Exception as exc:
            self._publish_error("cancel_order", exc, order)
            return
        if self.metrics:
            self.metrics.orders_cancelled.labels(symbol=self.symbol, role=order.role.value).inc()
        log_event(log, "order_cancelled", symbol=self.symbol, role=order.role.value, oid=order_id, response=response)
        self.event_bus.emit(
            EventType.ORDER_CANCELLED,
            source="gateway",
            role=order.role,
            client_order_id=order.client_order_id,
            order_id=order_id,
        )

    # ========== Helpers ==========

    def _spawn(self, coro: Awaitable[None], name: str) -> None:
        task = asyncio.ensure_future(coro)
        task.set_name(f"gateway-{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _publish_error(self, operation: str, exc: BaseException, order: Optional[TrackedOrder] = None) -> None:
        role = order.role if order else None
        if self.metrics:
            self.metrics.gateway_errors.labels(symbol=self.symbol, operation=operation).inc()
        if isinstance(exc, GatewayError):
            error = exc
        else:
            error = GatewayError(operation, str(exc), role=role, cause=exc)
        self.event_bus.emit(EventType.GATEWAY_ERROR, source="gateway", error=error, role=role)
