"""
Execution package.

Order lifecycle, exchange gateway, the entry/exit controllers and the
tick and order-status routing that drives them.
"""

from ocobot.execution.order_state_machine import OrderStatus, TrackedOrder, new_client_order_id
from ocobot.execution.quantity import QuantityAdjuster, adjust_sell_quantity


def __getattr__(name: str):
    """Lazy import to avoid circular dependencies with the state package."""
    if name in ("ExecutionGateway", "ExecutionGatewayConfig", "ExchangeClient"):
        from ocobot.execution import execution_gateway
        return getattr(execution_gateway, name)
    if name == "EntryController":
        from ocobot.execution.entry_controller import EntryController
        return EntryController
    if name == "ExitController":
        from ocobot.execution.exit_controller import ExitController
        return ExitController
    if name == "PriceMonitor":
        from ocobot.execution.price_monitor import PriceMonitor
        return PriceMonitor
    if name == "OrderStatusDispatcher":
        from ocobot.execution.order_status_dispatcher import OrderStatusDispatcher
        return OrderStatusDispatcher
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "OrderStatus",
    "TrackedOrder",
    "new_client_order_id",
    "QuantityAdjuster",
    "adjust_sell_quantity",
    "ExecutionGateway",
    "ExecutionGatewayConfig",
    "ExchangeClient",
    "EntryController",
    "ExitController",
    "PriceMonitor",
    "OrderStatusDispatcher",
]
