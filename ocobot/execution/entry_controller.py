"""
EntryController: opens the position.

Order type selection from the (validated) intent:

    no trigger/buy price         -> no entry, position treated as already held
    trigger == 0                 -> MARKET buy for amount
    trigger >  current price     -> STOP_LOSS_LIMIT buy (stop = trigger, limit = buy)
    trigger <= current price     -> LIMIT buy at buy price (trigger already satisfied)

A placement that comes back FILLED hands off to the exit controller at
once; otherwise the order id is recorded and the fill arrives later as an
order-status push.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from ocobot.core.models import OrderAck, OrderKind, OrderRole, OrderUpdate, PositionIntent, Side
from ocobot.execution.order_state_machine import TrackedOrder
from ocobot.infra.logging_cfg import log_event
from ocobot.state.position_state import Outcome, PositionState

if TYPE_CHECKING:
    from ocobot.execution.execution_gateway import ExecutionGateway
    from ocobot.execution.exit_controller import ExitController

log = logging.getLogger("ocobot")


class EntryController:

    def __init__(
        self,
        intent: PositionIntent,
        state: PositionState,
        gateway: "ExecutionGateway",
        exits: "ExitController",
    ) -> None:
        self.intent = intent
        self.state = state
        self.gateway = gateway
        self.exits = exits

    # ----- start -----

    def start(self) -> None:
        intent = self.intent
        if not intent.has_entry:
            log_event(log, "entry_skipped", symbol=intent.symbol, reason="no_buy_or_trigger_price")
            self.exits.on_position_held()
            return

        if intent.trigger_price == 0:
            log_event(log, "entry_market", symbol=intent.symbol, amount=intent.amount)
            self._submit(OrderKind.MARKET, price=None)
            return

        # trigger > 0: which side of the market is it on?
        self.gateway.quote_price()

    def on_price_quoted(self, current_price: Decimal) -> None:
        if self.state.entry is not None or self.state.is_terminal:
            return
        intent = self.intent
        log_event(log, "entry_price_check", symbol=intent.symbol, price=current_price, trigger=intent.trigger_price)
        if intent.trigger_price > current_price:
            self._submit(OrderKind.STOP_LOSS_LIMIT, price=intent.buy_price, stop_price=intent.trigger_price)
        else:
            self._submit(OrderKind.LIMIT, price=intent.buy_price)

    def _submit(self, kind: OrderKind, price: Optional[Decimal], stop_price: Optional[Decimal] = None) -> None:
        order = TrackedOrder(
            role=OrderRole.ENTRY,
            side=Side.BUY,
            kind=kind,
            quantity=self.intent.amount,
            price=price,
            stop_price=stop_price,
        )
        self.state.entry = order
        self.gateway.place(order)

    # ----- completions -----

    def on_placed(self, client_order_id: str, ack: OrderAck) -> None:
        order = self.state.entry
        if order is None or order.client_order_id != client_order_id:
            log_event(log, "stale_completion", level=logging.WARNING, role="entry", cloid=client_order_id)
            return

        if ack.status == "FILLED":
            order.order_id = ack.order_id
            order.fill(reason="filled_on_submit")
            self.state.clear(OrderRole.ENTRY)
            log_event(log, "entry_filled", symbol=self.intent.symbol, oid=ack.order_id, sync=True)
            self.exits.on_entry_filled(ack.commission_asset)
            return

        order.acknowledge(ack.order_id)
        log_event(log, "entry_open", symbol=self.intent.symbol, oid=ack.order_id, status=ack.status)

    def on_filled(self, update: OrderUpdate) -> None:
        order = self.state.entry
        if order is None:
            return
        order.fill()
        self.state.clear(OrderRole.ENTRY)
        log_event(
            log, "entry_filled", symbol=self.intent.symbol, oid=update.order_id,
            price=update.price, commission_asset=update.commission_asset,
        )
        self.exits.on_entry_filled(update.commission_asset)

    # ----- cancellation -----

    def cancel(self) -> None:
        """Withdraw the untriggered entry. Caller has checked the cancel guard."""
        order = self.state.entry
        log_event(
            log, "entry_cancelling", symbol=self.intent.symbol, oid=order.order_id,
            reason="moved outside the desired price range without a fill",
        )
        self.state.is_cancelling = True
        order.begin_cancel()
        self.gateway.cancel(order)

    def on_cancelled(self, client_order_id: str) -> None:
        order = self.state.entry
        self.state.is_cancelling = False
        if order is None or order.client_order_id != client_order_id:
            log_event(log, "stale_completion", level=logging.WARNING, role="entry", cloid=client_order_id)
            return
        order.confirm_cancel()
        self.state.clear(OrderRole.ENTRY)
        log_event(log, "entry_cancelled", symbol=self.intent.symbol, oid=order.order_id)
        self.state.finish(Outcome.ENTRY_CANCELLED)
