"""
Order State Machine - Explicit lifecycle of the orders this bot issues.

Provides a formal state machine for tracked-order lifecycle with:
- Explicit states: PENDING_SUBMIT, OPEN, CANCELLING, FILLED, CANCELLED
- Valid state transitions with guards
- Audit trail of state changes
- Illegal transitions raise instead of silently corrupting the position

A TrackedOrder is owned by the controller that created it. Its order_id is
0 until the placement response arrives; that id is the only key used to
correlate later status pushes.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, auto
from typing import Any, Dict, List, Optional

from ocobot.core.errors import OrderStateError
from ocobot.core.models import OrderKind, OrderRole, Side

log = logging.getLogger("ocobot")


class OrderStatus(Enum):
    """
    Tracked-order lifecycle states.

    State Diagram:

    PENDING_SUBMIT ──────> OPEN ──────> CANCELLING ──────> CANCELLED
          │                 │                │
          └─────────────────┴────────────────┴──────> FILLED
    """
    PENDING_SUBMIT = auto()  # Placement call in flight, no order id yet
    OPEN = auto()            # Accepted by exchange, resting or awaiting trigger
    CANCELLING = auto()      # Cancel call in flight
    FILLED = auto()          # Completely filled (terminal)
    CANCELLED = auto()       # Cancel confirmed (terminal)


VALID_TRANSITIONS: Dict[OrderStatus, List[OrderStatus]] = {
    OrderStatus.PENDING_SUBMIT: [
        OrderStatus.OPEN,        # Exchange accepted
        OrderStatus.FILLED,      # Filled synchronously (market order)
    ],
    OrderStatus.OPEN: [
        OrderStatus.CANCELLING,  # Cancel requested
        OrderStatus.FILLED,      # Fully filled
    ],
    OrderStatus.CANCELLING: [
        OrderStatus.CANCELLED,   # Cancel confirmed
        OrderStatus.FILLED,      # Filled before the cancel landed
    ],
    # Terminal states - no transitions allowed
    OrderStatus.FILLED: [],
    OrderStatus.CANCELLED: [],
}

TERMINAL_STATUSES = frozenset({OrderStatus.FILLED, OrderStatus.CANCELLED})


@dataclass
class StateTransition:
    """Record of a state transition."""
    from_status: OrderStatus
    to_status: OrderStatus
    timestamp_ms: int
    reason: Optional[str] = None


def new_client_order_id(role: OrderRole) -> str:
    """Client order id sent with the placement; fits the exchange's 36-char limit."""
    return f"oco-{role.value}-{secrets.token_hex(8)}"


@dataclass
class TrackedOrder:
    """One outstanding order issued by this bot."""
    role: OrderRole
    side: Side
    kind: OrderKind
    quantity: Decimal
    price: Optional[Decimal] = None
    stop_price: Optional[Decimal] = None
    order_id: int = 0
    status: OrderStatus = OrderStatus.PENDING_SUBMIT
    client_order_id: str = ""
    created_at_ms: int = field(default_factory=lambda: int(time.time() * 1000))
    transitions: List[StateTransition] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.client_order_id:
            self.client_order_id = new_client_order_id(self.role)

    @property
    def is_live(self) -> bool:
        """Acknowledged by the exchange and not being cancelled."""
        return self.order_id != 0 and self.status == OrderStatus.OPEN

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, to_status: OrderStatus, reason: Optional[str] = None) -> None:
        """
        Move to a new status.

        Raises:
            OrderStateError: if the transition is not allowed
        """
        from_status = self.status
        if to_status not in VALID_TRANSITIONS.get(from_status, []):
            raise OrderStateError(
                f"{self.role.value} order {self.order_id or self.client_order_id}: "
                f"illegal transition {from_status.name} -> {to_status.name}"
            )
        self.transitions.append(StateTransition(
            from_status=from_status,
            to_status=to_status,
            timestamp_ms=int(time.time() * 1000),
            reason=reason,
        ))
        self.status = to_status
        log.debug(
            "order_state_transition role=%s oid=%s %s->%s reason=%s",
            self.role.value, self.order_id, from_status.name, to_status.name, reason,
        )

    def acknowledge(self, order_id: int) -> None:
        """Exchange accepted the order (PENDING_SUBMIT -> OPEN)."""
        self.order_id = order_id
        self.transition(OrderStatus.OPEN, reason="exchange_ack")

    def fill(self, reason: str = "fill") -> None:
        self.transition(OrderStatus.FILLED, reason=reason)

    def begin_cancel(self) -> None:
        if self.order_id == 0:
            raise OrderStateError(f"{self.role.value} order has no order id to cancel")
        self.transition(OrderStatus.CANCELLING, reason="cancel_requested")

    def confirm_cancel(self) -> None:
        self.transition(OrderStatus.CANCELLED, reason="cancel_confirmed")

    def describe(self) -> Dict[str, Any]:
        """Loggable summary."""
        return {
            "role": self.role.value,
            "side": self.side.value,
            "kind": self.kind.value,
            "qty": str(self.quantity),
            "px": str(self.price) if self.price is not None else None,
            "stop_px": str(self.stop_price) if self.stop_price is not None else None,
            "oid": self.order_id,
            "cloid": self.client_order_id,
            "status": self.status.name,
        }
