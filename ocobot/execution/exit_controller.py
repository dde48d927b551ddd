"""
ExitController: stop-loss and take-profit legs of an open position.

Once the entry is filled the sellable amount is known (fee-adjusted) and the
legs are placed:

    stop + target  -> target for the scale-out tranche, stop for the rest
    stop only      -> one stop for everything
    target only    -> one target for the scale-out tranche (or everything)
    neither        -> done, nothing to automate

Afterwards the controller keeps the legs consistent with the market:

    price >= target while only the stop rests  -> cancel stop, target for all of it
    price <= stop while only the target rests  -> cancel target, fold it back, stop for all

Amounts are kept so that stop_sell_amount + target_sell_amount never exceeds
the sellable quantity: whatever one leg gives up is folded into the other.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from ocobot.core.models import OrderAck, OrderKind, OrderRole, OrderUpdate, PositionIntent, Side
from ocobot.execution.order_state_machine import TrackedOrder
from ocobot.execution.quantity import QuantityAdjuster
from ocobot.infra.logging_cfg import log_event
from ocobot.state.position_state import Outcome, PositionState

if TYPE_CHECKING:
    from ocobot.execution.execution_gateway import ExecutionGateway

log = logging.getLogger("ocobot")


class ExitController:

    def __init__(
        self,
        intent: PositionIntent,
        state: PositionState,
        gateway: "ExecutionGateway",
        adjuster: Optional[QuantityAdjuster] = None,
    ) -> None:
        self.intent = intent
        self.state = state
        self.gateway = gateway
        self.adjuster = adjuster or QuantityAdjuster()

    # ----- position opened -----

    def on_entry_filled(self, commission_asset: Optional[str]) -> None:
        """Entry filled: derive fee-adjusted leg amounts, then place the legs."""
        adjust = self.adjuster.adjust
        self.state.stop_sell_amount = adjust(commission_asset, self.intent.amount)
        self.state.target_sell_amount = adjust(commission_asset, self.intent.target_amount)
        log_event(
            log, "sell_amounts", symbol=self.intent.symbol, commission_asset=commission_asset,
            stop_sell_amount=self.state.stop_sell_amount, target_sell_amount=self.state.target_sell_amount,
        )
        self.place_exit_orders()

    def on_position_held(self) -> None:
        """No entry configured: the amount is already in the account, no fee to take off."""
        self.state.stop_sell_amount = self.intent.amount
        self.state.target_sell_amount = self.intent.target_amount
        self.place_exit_orders()

    def place_exit_orders(self) -> None:
        intent = self.intent
        state = self.state
        if intent.has_stop and intent.has_target:
            state.stop_sell_amount -= state.target_sell_amount
            self._place_target()
            if state.stop_sell_amount > 0:
                # place a stop for the remainder of the position
                self._place_stop()
        elif intent.has_stop:
            state.target_sell_amount = Decimal("0")
            self._place_stop()
        elif intent.has_target:
            state.stop_sell_amount -= state.target_sell_amount
            self._place_target()
        else:
            log_event(log, "no_exit_orders", symbol=intent.symbol)
            state.finish(Outcome.NO_EXIT_ORDERS)

    def _place_stop(self) -> None:
        intent = self.intent
        order = TrackedOrder(
            role=OrderRole.STOP,
            side=Side.SELL,
            kind=OrderKind.STOP_LOSS_LIMIT,
            quantity=self.state.stop_sell_amount,
            price=intent.stop_limit_price,
            stop_price=intent.stop_price,
        )
        log_event(
            log, "place_stop", symbol=intent.symbol, qty=order.quantity,
            stop=intent.stop_price, limit=intent.stop_limit_price,
        )
        self.state.stop = order
        self.gateway.place(order)

    def _place_target(self) -> None:
        intent = self.intent
        order = TrackedOrder(
            role=OrderRole.TARGET,
            side=Side.SELL,
            kind=OrderKind.LIMIT,
            quantity=self.state.target_sell_amount,
            price=intent.target_price,
        )
        log_event(log, "place_target", symbol=intent.symbol, qty=order.quantity, price=intent.target_price)
        self.state.target = order
        self.gateway.place(order)

    # ----- completions -----

    def on_placed(self, role: OrderRole, client_order_id: str, ack: OrderAck) -> None:
        order = self.state.get(role)
        if order is None or order.client_order_id != client_order_id:
            log_event(log, "stale_completion", level=logging.WARNING, role=role.value, cloid=client_order_id)
            return
        if ack.status == "FILLED":
            order.order_id = ack.order_id
            self._leg_filled(role, order)
            return
        order.acknowledge(ack.order_id)
        log_event(log, "exit_open", symbol=self.intent.symbol, role=role.value, oid=ack.order_id)

    def on_filled(self, role: OrderRole, update: OrderUpdate) -> None:
        order = self.state.get(role)
        if order is None:
            return
        self._leg_filled(role, order)

    def _leg_filled(self, role: OrderRole, order: TrackedOrder) -> None:
        order.fill()
        self.state.clear(role)
        symbol = self.intent.symbol
        if role == OrderRole.STOP:
            log_event(log, "stopped_out", symbol=symbol, oid=order.order_id, qty=order.quantity)
            self.state.finish(Outcome.STOPPED_OUT)
            return

        stop = self.state.stop
        if stop is not None and not stop.is_terminal:
            log_event(
                log, "target_hit", symbol=symbol, oid=order.order_id, qty=order.quantity,
                remaining=self.state.stop_sell_amount, stop=self.intent.stop_price,
                msg=(
                    f"You still have {self.state.stop_sell_amount} left in the trade with a stop "
                    f"at {self.intent.stop_price}. The trade will not be automated from this point on."
                ),
            )
            self.state.finish(Outcome.TARGET_HIT_STOP_OPEN)
            return

        log_event(
            log, "target_hit", symbol=symbol, oid=order.order_id, qty=order.quantity,
            unmanaged=self.state.stop_sell_amount,
        )
        self.state.finish(Outcome.TARGET_HIT)

    # ----- price driven swaps -----

    def check_price(self, price: Decimal) -> None:
        """Swap legs when price crosses the level of the leg that is not resting."""
        state = self.state
        if state.is_cancelling or state.is_terminal:
            return
        intent = self.intent
        stop, target = state.stop, state.target

        if intent.has_target and stop is not None and stop.is_live and target is None:
            if price >= intent.target_price:
                log_event(
                    log, "cancel_stop", symbol=intent.symbol, price=price, oid=stop.order_id,
                    reason="target price was hit",
                )
                self._cancel(stop)
        elif intent.has_stop and target is not None and target.is_live and stop is None:
            if price <= intent.stop_price:
                log_event(
                    log, "cancel_target", symbol=intent.symbol, price=price, oid=target.order_id,
                    reason="stop price was hit",
                )
                self._cancel(target)

    def _cancel(self, order: TrackedOrder) -> None:
        self.state.is_cancelling = True
        order.begin_cancel()
        self.gateway.cancel(order)

    def on_cancelled(self, role: OrderRole, client_order_id: str) -> None:
        state = self.state
        state.is_cancelling = False
        order = state.get(role)
        if order is None or order.client_order_id != client_order_id:
            log_event(log, "stale_completion", level=logging.WARNING, role=role.value, cloid=client_order_id)
            return
        order.confirm_cancel()
        state.clear(role)

        if role == OrderRole.STOP:
            # target takes over the whole stop amount
            state.target_sell_amount = state.stop_sell_amount
            state.stop_sell_amount = Decimal("0")
            self._place_target()
        else:
            # recalculate stop amount now target is gone
            state.stop_sell_amount += state.target_sell_amount
            state.target_sell_amount = Decimal("0")
            self._place_stop()

