"""
OrderStatusDispatcher: routes order-status pushes to the owning controller.

Pushes are correlated by exchange order id only. A push can overtake the
placement response that assigns the id; such pushes are held back while a
placement is outstanding and replayed once the id is known.

    NEW / PARTIALLY_FILLED            -> nothing to do
    FILLED                            -> entry or exit controller
    CANCELED for an order we cancel   -> nothing, the cancel completion drives it
    anything else                     -> UnexpectedOrderStatus (fatal)
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import TYPE_CHECKING, List, Optional

from ocobot.core.errors import UnexpectedOrderStatus
from ocobot.core.models import STATUS_CANCELED, STATUS_FILLED, WORKING_STATUSES, OrderRole, OrderUpdate
from ocobot.execution.order_state_machine import OrderStatus
from ocobot.infra.logging_cfg import log_event
from ocobot.monitoring.metrics import PositionMetrics
from ocobot.state.position_state import PositionState

if TYPE_CHECKING:
    from ocobot.execution.entry_controller import EntryController
    from ocobot.execution.exit_controller import ExitController

log = logging.getLogger("ocobot")

MAX_BUFFERED_ORDERS = 64


class OrderStatusDispatcher:

    def __init__(
        self,
        symbol: str,
        state: PositionState,
        entry: "EntryController",
        exits: "ExitController",
        metrics: Optional[PositionMetrics] = None,
        max_buffered: int = MAX_BUFFERED_ORDERS,
    ) -> None:
        self.symbol = symbol
        self.state = state
        self.entry = entry
        self.exits = exits
        self.metrics = metrics
        self.max_buffered = max_buffered
        # order id -> pushes received before the id was assigned, oldest first
        self._early: "OrderedDict[int, List[OrderUpdate]]" = OrderedDict()

    def on_update(self, update: OrderUpdate) -> None:
        if update.symbol != self.symbol or self.state.is_terminal:
            return

        role = self.state.role_for_order_id(update.order_id)
        if role is None:
            if self.state.has_pending_submit():
                self._hold(update)
            else:
                log.debug("order_update_ignored oid=%s status=%s", update.order_id, update.status)
            return

        self._dispatch(role, update)

    def replay(self, order_id: int) -> None:
        """Placement response assigned `order_id`: feed any held pushes through."""
        for update in self._early.pop(order_id, []):
            if self.state.is_terminal:
                return
            log_event(log, "order_update_replayed", oid=order_id, status=update.status)
            self.on_update(update)

    def discard(self, order_id: int) -> None:
        """Order filled on submission: pushes held for it are already accounted for."""
        self._early.pop(order_id, None)

    @property
    def buffered(self) -> int:
        return sum(len(updates) for updates in self._early.values())

    def _hold(self, update: OrderUpdate) -> None:
        self._early.setdefault(update.order_id, []).append(update)
        self._early.move_to_end(update.order_id)
        while len(self._early) > self.max_buffered:
            dropped, _ = self._early.popitem(last=False)
            log_event(log, "order_update_dropped", level=logging.WARNING, oid=dropped)
        log.debug("order_update_held oid=%s status=%s", update.order_id, update.status)

    def _dispatch(self, role: OrderRole, update: OrderUpdate) -> None:
        status = update.status
        log_event(
            log, "order_update", symbol=update.symbol, role=role.value, oid=update.order_id,
            status=status, side=update.side, type=update.order_type,
        )

        if status in WORKING_STATUSES:
            return

        if status == STATUS_FILLED:
            if self.metrics:
                self.metrics.orders_filled.labels(symbol=self.symbol, role=role.value).inc()
            if role == OrderRole.ENTRY:
                self.entry.on_filled(update)
            else:
                self.exits.on_filled(role, update)
            return

        order = self.state.get(role)
        if status == STATUS_CANCELED and order is not None and order.status == OrderStatus.CANCELLING:
            return

        raise UnexpectedOrderStatus(update.order_id, status, update.reject_reason)
