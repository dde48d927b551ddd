"""
Core package.

This package contains the event bus, domain value types, the error
taxonomy and Decimal rounding helpers.
"""

from ocobot.core.event_bus import EventBus, EventType, Event, Subscription
from ocobot.core.errors import (
    OcoBotError,
    ValidationError,
    GatewayError,
    UnexpectedOrderStatus,
    OrderStateError,
)
from ocobot.core.rounding import round_to_step, round_to_tick, format_decimal, to_decimal

__all__ = [
    "EventBus",
    "EventType",
    "Event",
    "Subscription",
    "OcoBotError",
    "ValidationError",
    "GatewayError",
    "UnexpectedOrderStatus",
    "OrderStateError",
    "round_to_step",
    "round_to_tick",
    "format_decimal",
    "to_decimal",
]
