"""
PriceMonitor: evaluates every trade tick against the position.

Pre-fill: withdraw the entry once price has left the intended range
towards the cancel price, on either side of the trigger.
Post-fill: let the exit controller swap legs on a cross.

Ticks may be stale or duplicated relative to order-status pushes, so every
check re-reads the current slot, requires an acknowledged order and a
clear cancel guard before acting. Ticks that cross nothing cause no calls.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from ocobot.core.models import PositionIntent, PriceTick
from ocobot.infra.logging_cfg import log_event
from ocobot.monitoring.metrics import PositionMetrics
from ocobot.state.position_state import PositionState

if TYPE_CHECKING:
    from ocobot.execution.entry_controller import EntryController
    from ocobot.execution.exit_controller import ExitController

log = logging.getLogger("ocobot")


def should_cancel_entry(price: Decimal, trigger_price: Decimal, cancel_price: Decimal) -> bool:
    """Price moved away from the trigger, to or past the cancel price (inclusive)."""
    return (
        (price < trigger_price and price <= cancel_price)
        or (price > trigger_price and price >= cancel_price)
    )


class PriceMonitor:

    def __init__(
        self,
        intent: PositionIntent,
        state: PositionState,
        entry: "EntryController",
        exits: "ExitController",
        metrics: Optional[PositionMetrics] = None,
    ) -> None:
        self.intent = intent
        self.state = state
        self.entry = entry
        self.exits = exits
        self.metrics = metrics

    def on_tick(self, tick: PriceTick) -> None:
        if tick.symbol != self.intent.symbol or self.state.is_terminal:
            return
        if self.metrics:
            self.metrics.price_ticks.labels(symbol=tick.symbol).inc()
            self.metrics.last_trade_price.labels(symbol=tick.symbol).set(float(tick.price))

        state = self.state
        intent = self.intent
        price = tick.price

        if state.entry is not None:
            log_event(
                log, "trade_update", symbol=tick.symbol, price=price,
                buy=intent.trigger_price, cancel=intent.cancel_price,
            )
            if not intent.cancel_price:
                return
            entry = state.entry
            if (
                entry.is_live
                and not state.is_cancelling
                and should_cancel_entry(price, intent.trigger_price, intent.cancel_price)
            ):
                self.entry.cancel()
        elif state.has_exit_orders():
            log_event(
                log, "trade_update", symbol=tick.symbol, price=price,
                stop=intent.stop_price, target=intent.target_price,
            )
            self.exits.check_price(price)
