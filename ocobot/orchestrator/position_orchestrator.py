"""
PositionOrchestrator: wires one position together and runs it to an outcome.

Architecture:
    The orchestrator owns the control flow but not the trading logic:
    - EntryController / ExitController: decide which order comes next
    - PriceMonitor: trade ticks -> cancel/cross decisions
    - OrderStatusDispatcher: order-status pushes -> fills
    - ExecutionGateway: the only component calling the exchange

    Stream pumps and gateway call completions publish onto the EventBus;
    the bus consumer is the only place handlers run.

Usage:
    orchestrator = PositionOrchestrator(intent, exchange, adjuster=adjuster, metrics=metrics)
    outcome = await orchestrator.run()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

from ocobot.config.intent_validator import validate_intent
from ocobot.core.errors import GatewayError, OcoBotError
from ocobot.core.event_bus import Event, EventBus, EventType
from ocobot.core.models import STATUS_FILLED, OrderRole, PositionIntent
from ocobot.execution.entry_controller import EntryController
from ocobot.execution.execution_gateway import ExchangeClient, ExecutionGateway, ExecutionGatewayConfig
from ocobot.execution.exit_controller import ExitController
from ocobot.execution.order_status_dispatcher import OrderStatusDispatcher
from ocobot.execution.price_monitor import PriceMonitor
from ocobot.execution.quantity import QuantityAdjuster
from ocobot.infra.logging_cfg import log_event
from ocobot.monitoring.metrics import PositionMetrics
from ocobot.state.position_state import Outcome, PositionState

log = logging.getLogger("ocobot")


@dataclass
class OrchestratorConfig:
    """Configuration for PositionOrchestrator."""
    # Start the trade and user data streams
    start_streams: bool = True
    # Event history kept by the bus
    event_history_size: int = EventBus.DEFAULT_HISTORY_SIZE


class PositionOrchestrator:

    def __init__(
        self,
        intent: PositionIntent,
        exchange: ExchangeClient,
        adjuster: Optional[QuantityAdjuster] = None,
        metrics: Optional[PositionMetrics] = None,
        event_bus: Optional[EventBus] = None,
        config: Optional[OrchestratorConfig] = None,
        gateway_config: Optional[ExecutionGatewayConfig] = None,
    ) -> None:
        self.intent = intent
        self.exchange = exchange
        self.adjuster = adjuster or QuantityAdjuster()
        self.metrics = metrics
        self.config = config or OrchestratorConfig()
        self.bus = event_bus or EventBus(history_size=self.config.event_history_size)
        self.gateway_config = gateway_config

        self.state = PositionState()
        self.gateway: Optional[ExecutionGateway] = None
        self.entry: Optional[EntryController] = None
        self.exits: Optional[ExitController] = None
        self.monitor: Optional[PriceMonitor] = None
        self.dispatcher: Optional[OrderStatusDispatcher] = None
        self._pumps: List[asyncio.Task] = []
        self._started = False

    # ========== Lifecycle ==========

    async def run(self) -> Outcome:
        """
        Validate, start and drive the position until a terminal outcome.

        Raises:
            ValidationError: intent fails the symbol filters (nothing was placed)
            GatewayError: an exchange call or stream failed
            UnexpectedOrderStatus / OrderStateError: position is no longer automatable
        """
        symbol = self.intent.symbol
        filters = await self.exchange.get_symbol_filters(symbol)
        log_event(
            log, "symbol_filters", symbol=symbol, step=filters.step_size, min_qty=filters.min_qty,
            tick=filters.tick_size, min_price=filters.min_price, min_notional=filters.min_notional,
        )
        self.intent = validate_intent(self.intent, filters)
        log_event(log, "position_intent", **_describe_intent(self.intent))

        self._build()
        self._subscribe()
        if self.config.start_streams:
            # the entry goes out once the user stream is open, so no fill push is missed
            self._start_streams()
        else:
            self._position_start()
        try:
            await self.bus.run(until=lambda: self.state.is_terminal)
        finally:
            await self._shutdown()

        if self.state.outcome is None:
            raise OcoBotError("event loop stopped before the position reached an outcome")
        log_event(log, "position_outcome", symbol=symbol, **self.state.snapshot())
        return self.state.outcome

    def stop(self) -> None:
        self.bus.stop()

    def _build(self) -> None:
        intent, state = self.intent, self.state
        self.gateway = ExecutionGateway(intent.symbol, self.exchange, self.bus, self.metrics, self.gateway_config)
        self.exits = ExitController(intent, state, self.gateway, self.adjuster)
        self.entry = EntryController(intent, state, self.gateway, self.exits)
        self.monitor = PriceMonitor(intent, state, self.entry, self.exits, self.metrics)
        self.dispatcher = OrderStatusDispatcher(intent.symbol, state, self.entry, self.exits, self.metrics)

    def _subscribe(self) -> None:
        bus = self.bus
        bus.subscribe(EventType.POSITION_START, lambda e: self.entry.start(), name="entry_start")
        bus.subscribe(EventType.PRICE_QUOTED, lambda e: self.entry.on_price_quoted(e.data["price"]), name="entry_quote")
        bus.subscribe(EventType.PRICE_TICK, lambda e: self.monitor.on_tick(e.data["tick"]), name="price_monitor")
        bus.subscribe(EventType.ORDER_UPDATE, lambda e: self.dispatcher.on_update(e.data["update"]), name="dispatcher")
        bus.subscribe(EventType.ORDER_PLACED, self._on_order_placed, name="order_placed")
        bus.subscribe(EventType.ORDER_CANCELLED, self._on_order_cancelled, name="order_cancelled")
        bus.subscribe(EventType.GATEWAY_ERROR, self._on_gateway_error, name="gateway_error")

    async def _shutdown(self) -> None:
        for task in self._pumps:
            task.cancel()
        if self._pumps:
            await asyncio.gather(*self._pumps, return_exceptions=True)
        self._pumps.clear()
        if self.gateway is not None:
            await self.gateway.close()

    # ========== Handlers ==========

    def _on_order_placed(self, event: Event) -> None:
        role: OrderRole = event.data["role"]
        cloid: str = event.data["client_order_id"]
        ack = event.data["ack"]
        if role == OrderRole.ENTRY:
            self.entry.on_placed(cloid, ack)
        else:
            self.exits.on_placed(role, cloid, ack)
        if ack.status == STATUS_FILLED:
            self.dispatcher.discard(ack.order_id)
        else:
            self.dispatcher.replay(ack.order_id)

    def _on_order_cancelled(self, event: Event) -> None:
        role: OrderRole = event.data["role"]
        cloid: str = event.data["client_order_id"]
        if role == OrderRole.ENTRY:
            self.entry.on_cancelled(cloid)
        else:
            self.exits.on_cancelled(role, cloid)

    def _on_gateway_error(self, event: Event) -> None:
        error: GatewayError = event.data["error"]
        log_event(
            log, "gateway_error", level=logging.ERROR, symbol=self.intent.symbol,
            error=str(error), **self.state.snapshot(),
        )
        raise error

    # ========== Streams ==========

    def _start_streams(self) -> None:
        symbol = self.intent.symbol
        self._pumps.append(asyncio.ensure_future(
            self._pump("trade_stream", self.exchange.price_ticks(symbol), EventType.PRICE_TICK, "tick")
        ))
        self._pumps.append(asyncio.ensure_future(self._pump(
            "user_stream", self.exchange.order_updates(on_connected=self._position_start),
            EventType.ORDER_UPDATE, "update",
        )))

    def _position_start(self) -> None:
        if self._started:
            return
        self._started = True
        log_event(log, "position_start", symbol=self.intent.symbol)
        self.bus.emit(EventType.POSITION_START, source="orchestrator")

    async def _pump(self, name: str, stream: AsyncIterator, event_type: EventType, key: str) -> None:
        """Forward a stream onto the bus; a stream failure or end becomes GATEWAY_ERROR."""
        try:
            async for item in stream:
                self.bus.emit(event_type, source=name, **{key: item})
        except asyncio.CancelledError:
            raise
        except GatewayError as exc:
            self._stream_failed(name, exc)
            return
        except Exception as exc:
            self._stream_failed(name, GatewayError(name, str(exc), cause=exc))
            return
        self._stream_failed(name, GatewayError(name, "stream closed"))

    def _stream_failed(self, name: str, error: GatewayError) -> None:
        if self.metrics:
            self.metrics.gateway_errors.labels(symbol=self.intent.symbol, operation=name).inc()
        self.bus.emit(EventType.GATEWAY_ERROR, source=name, error=error, role=None)


def _describe_intent(intent: PositionIntent) -> dict:
    return {
        "symbol": intent.symbol,
        "amount": intent.amount,
        "buy": intent.buy_price,
        "trigger": intent.trigger_price,
        "stop": intent.stop_price,
        "limit": intent.limit_price,
        "target": intent.target_price,
        "cancel": intent.cancel_price,
        "scale_out": intent.scale_out_amount,
    }
