"""
PositionState: the single mutable state of one position.

Lives for the lifetime of the process and is mutated only by handlers
running on the event bus consumer. Holds at most one tracked order per
slot (entry, stop, target), the remaining sell amounts for the two exit
legs, the shared cancel guard and, once reached, the terminal outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from ocobot.core.models import OrderRole
from ocobot.execution.order_state_machine import OrderStatus, TrackedOrder

log = logging.getLogger("ocobot")


class Outcome(Enum):
    """Terminal outcomes; all of them end the process successfully."""
    ENTRY_CANCELLED = "entry_cancelled"
    STOPPED_OUT = "stopped_out"
    TARGET_HIT = "target_hit"
    TARGET_HIT_STOP_OPEN = "target_hit_stop_open"  # residual stop left un-automated
    NO_EXIT_ORDERS = "no_exit_orders"


@dataclass
class PositionState:
    entry: Optional[TrackedOrder] = None
    stop: Optional[TrackedOrder] = None
    target: Optional[TrackedOrder] = None
    stop_sell_amount: Decimal = Decimal("0")
    target_sell_amount: Decimal = Decimal("0")
    # Only one cancel may be in flight across all slots
    is_cancelling: bool = False
    outcome: Optional[Outcome] = None

    @property
    def is_terminal(self) -> bool:
        return self.outcome is not None

    def finish(self, outcome: Outcome) -> None:
        if self.outcome is None:
            self.outcome = outcome
            log.debug("position_terminal outcome=%s", outcome.value)

    # ----- slots -----

    def get(self, role: OrderRole) -> Optional[TrackedOrder]:
        return self._slots()[role]

    def set(self, role: OrderRole, order: Optional[TrackedOrder]) -> None:
        if role == OrderRole.ENTRY:
            self.entry = order
        elif role == OrderRole.STOP:
            self.stop = order
        else:
            self.target = order

    def clear(self, role: OrderRole) -> None:
        self.set(role, None)

    def role_for_order_id(self, order_id: int) -> Optional[OrderRole]:
        """Slot currently holding this exchange order id (0 never matches)."""
        if not order_id:
            return None
        for role, order in self._slots().items():
            if order is not None and order.order_id == order_id:
                return role
        return None

    def has_pending_submit(self) -> bool:
        return any(
            order is not None and order.status == OrderStatus.PENDING_SUBMIT
            for order in self._slots().values()
        )

    def has_exit_orders(self) -> bool:
        return self.stop is not None or self.target is not None

    def _slots(self) -> Dict[OrderRole, Optional[TrackedOrder]]:
        return {
            OrderRole.ENTRY: self.entry,
            OrderRole.STOP: self.stop,
            OrderRole.TARGET: self.target,
        }

    def snapshot(self) -> Dict[str, object]:
        """Loggable view of the state."""
        return {
            "entry": self.entry.describe() if self.entry else None,
            "stop": self.stop.describe() if self.stop else None,
            "target": self.target.describe() if self.target else None,
            "stop_sell_amount": str(self.stop_sell_amount),
            "target_sell_amount": str(self.target_sell_amount),
            "is_cancelling": self.is_cancelling,
            "outcome": self.outcome.value if self.outcome else None,
        }
