"""
Domain value types shared across the bot.

All prices and quantities are Decimal. Values arriving from the exchange as
strings are converted once at the adapter boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderKind(str, Enum):
    """Exchange order types the bot submits."""
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP_LOSS_LIMIT = "STOP_LOSS_LIMIT"


class OrderRole(str, Enum):
    """Logical slot an order occupies in the position."""
    ENTRY = "entry"
    STOP = "stop"
    TARGET = "target"


# Exchange order statuses as pushed on the user data stream
STATUS_NEW = "NEW"
STATUS_PARTIALLY_FILLED = "PARTIALLY_FILLED"
STATUS_FILLED = "FILLED"
STATUS_CANCELED = "CANCELED"

WORKING_STATUSES = frozenset({STATUS_NEW, STATUS_PARTIALLY_FILLED})


@dataclass(frozen=True)
class SymbolFilters:
    """Exchange trading constraints for one symbol."""
    step_size: Decimal
    min_qty: Decimal
    tick_size: Decimal
    min_price: Decimal
    min_notional: Decimal


@dataclass(frozen=True)
class PositionIntent:
    """
    What the operator asked for. Created once from CLI input, replaced by a
    rounded copy during validation, immutable thereafter.

    A price of None means "not specified". buy_price/trigger_price of 0
    means a market entry.
    """
    symbol: str
    amount: Decimal
    buy_price: Optional[Decimal] = None
    trigger_price: Optional[Decimal] = None
    stop_price: Optional[Decimal] = None
    limit_price: Optional[Decimal] = None
    target_price: Optional[Decimal] = None
    cancel_price: Optional[Decimal] = None
    scale_out_amount: Optional[Decimal] = None

    @property
    def has_entry(self) -> bool:
        return self.trigger_price is not None

    @property
    def has_stop(self) -> bool:
        return bool(self.stop_price)

    @property
    def has_target(self) -> bool:
        return bool(self.target_price)

    @property
    def stop_limit_price(self) -> Optional[Decimal]:
        """Limit price of the stop order: the explicit limit, else the stop price."""
        return self.limit_price or self.stop_price

    @property
    def target_amount(self) -> Decimal:
        return self.scale_out_amount or self.amount


@dataclass(frozen=True)
class PriceTick:
    symbol: str
    price: Decimal


@dataclass(frozen=True)
class OrderUpdate:
    """One order-status push from the user data stream."""
    symbol: str
    order_id: int
    side: str
    order_type: str
    status: str
    price: Decimal
    quantity: Decimal
    commission_asset: Optional[str] = None
    reject_reason: Optional[str] = None


@dataclass(frozen=True)
class Fill:
    price: Decimal
    quantity: Decimal
    commission: Decimal
    commission_asset: Optional[str]


@dataclass(frozen=True)
class OrderAck:
    """Placement response."""
    order_id: int
    status: str
    order_type: str
    client_order_id: Optional[str] = None
    fills: List[Fill] = field(default_factory=list)

    @property
    def commission_asset(self) -> Optional[str]:
        return self.fills[0].commission_asset if self.fills else None
