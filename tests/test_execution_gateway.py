"""
Tests for ExecutionGateway - fire-and-publish exchange calls.

Tests cover:
- Placement and cancel completions published as events
- Duplicate submission guard
- Failures published as GATEWAY_ERROR
- Metrics
"""

import asyncio
from decimal import Decimal

import pytest
from prometheus_client import CollectorRegistry

from fakes import FakeExchange, wait_for
from ocobot.core.errors import GatewayError, OrderStateError
from ocobot.core.event_bus import EventBus, EventType
from ocobot.core.models import OrderKind, OrderRole, Side
from ocobot.execution.execution_gateway import ExecutionGateway
from ocobot.execution.order_state_machine import TrackedOrder
from ocobot.monitoring.metrics import PositionMetrics

D = Decimal


def make_order(role=OrderRole.ENTRY, kind=OrderKind.LIMIT) -> TrackedOrder:
    side = Side.BUY if role == OrderRole.ENTRY else Side.SELL
    return TrackedOrder(role=role, side=side, kind=kind, quantity=D("1"), price=D("0.002"))


def build(exchange=None, metrics=None):
    exchange = exchange or FakeExchange()
    bus = EventBus()
    events = []
    for event_type in (EventType.PRICE_QUOTED, EventType.ORDER_PLACED,
                       EventType.ORDER_CANCELLED, EventType.GATEWAY_ERROR):
        bus.subscribe(event_type, events.append)
    gateway = ExecutionGateway("BNBBTC", exchange, bus, metrics)
    return gateway, exchange, bus, events


async def settle(gateway: ExecutionGateway, bus: EventBus) -> None:
    await wait_for(lambda: gateway.in_flight == 0)
    await bus.drain()


class TestPlace:

    @pytest.mark.asyncio
    async def test_place_publishes_ack(self):
        gateway, exchange, bus, events = build()
        order = make_order()
        gateway.place(order)
        await settle(gateway, bus)

        assert len(exchange.placed) == 1
        call = exchange.placed[0]
        assert call.client_order_id == order.client_order_id
        assert call.kind == OrderKind.LIMIT
        (event,) = events
        assert event.type == EventType.ORDER_PLACED
        assert event.data["role"] == OrderRole.ENTRY
        assert event.data["client_order_id"] == order.client_order_id
        assert event.data["ack"].order_id == call.order_id

    @pytest.mark.asyncio
    async def test_duplicate_submission_rejected(self):
        gateway, exchange, bus, _ = build()
        order = make_order()
        gateway.place(order)
        with pytest.raises(OrderStateError):
            gateway.place(order)
        await settle(gateway, bus)
        assert len(exchange.placed) == 1

    @pytest.mark.asyncio
    async def test_place_requires_pending_submit(self):
        gateway, _, _, _ = build()
        order = make_order()
        order.acknowledge(5)
        with pytest.raises(OrderStateError):
            gateway.place(order)

    @pytest.mark.asyncio
    async def test_place_failure_published(self):
        exchange = FakeExchange()
        exchange.fail_on["place_order"] = RuntimeError("insufficient balance")
        metrics = PositionMetrics(registry=CollectorRegistry())
        gateway, _, bus, events = build(exchange, metrics)
        gateway.place(make_order(OrderRole.STOP, OrderKind.STOP_LOSS_LIMIT))
        await settle(gateway, bus)

        (event,) = events
        assert event.type == EventType.GATEWAY_ERROR
        error = event.data["error"]
        assert isinstance(error, GatewayError)
        assert error.operation == "place_order"
        assert error.role == OrderRole.STOP
        assert "insufficient balance" in str(error)
        value = metrics.registry.get_sample_value(
            "gateway_errors_total", {"symbol": "BNBBTC", "operation": "place_order"}
        )
        assert value == 1

    @pytest.mark.asyncio
    async def test_submitted_counted(self):
        metrics = PositionMetrics(registry=CollectorRegistry())
        gateway, _, bus, _ = build(metrics=metrics)
        gateway.place(make_order())
        await settle(gateway, bus)
        value = metrics.registry.get_sample_value(
            "orders_submitted_total", {"symbol": "BNBBTC", "role": "entry"}
        )
        assert value == 1


class TestCancel:

    @pytest.mark.asyncio
    async def test_cancel_publishes_completion(self):
        gateway, exchange, bus, events = build()
        order = make_order(OrderRole.TARGET)
        order.acknowledge(77)
        order.begin_cancel()
        gateway.cancel(order)
        await settle(gateway, bus)

        assert exchange.cancelled == [77]
        (event,) = events
        assert event.type == EventType.ORDER_CANCELLED
        assert event.data["order_id"] == 77
        assert event.data["role"] == OrderRole.TARGET

    @pytest.mark.asyncio
    async def test_cancel_requires_cancelling(self):
        gateway, _, _, _ = build()
        order = make_order()
        order.acknowledge(77)
        with pytest.raises(OrderStateError):
            gateway.cancel(order)

    @pytest.mark.asyncio
    async def test_cancel_failure_published(self):
        exchange = FakeExchange()
        exchange.fail_on["cancel_order"] = GatewayError("cancel_order", "Unknown order sent.")
        gateway, _, bus, events = build(exchange)
        order = make_order()
        order.acknowledge(77)
        order.begin_cancel()
        gateway.cancel(order)
        await settle(gateway, bus)
        assert events[0].type == EventType.GATEWAY_ERROR
        assert events[0].data["error"] is exchange.fail_on["cancel_order"]


class TestQuoteAndClose:

    @pytest.mark.asyncio
    async def test_quote_price(self):
        gateway, exchange, bus, events = build(FakeExchange(price=D("0.0025")))
        gateway.quote_price()
        await settle(gateway, bus)
        assert events[0].type == EventType.PRICE_QUOTED
        assert events[0].data["price"] == D("0.0025")

    @pytest.mark.asyncio
    async def test_close_cancels_in_flight(self):
        class SlowExchange(FakeExchange):
            async def get_current_price(self, symbol):
                await asyncio.sleep(10)

        gateway, _, _, events = build(SlowExchange())
        gateway.quote_price()
        await asyncio.sleep(0)
        assert gateway.in_flight == 1
        await gateway.close()
        assert gateway.in_flight == 0
        assert events == []
