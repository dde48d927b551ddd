"""
Error taxonomy.

Every error raised here is fatal to the running position: the event loop
stops and the process exits with code 1. Nothing is retried, because a
place/cancel whose outcome is unknown cannot be safely repeated.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional

if TYPE_CHECKING:
    from ocobot.config.intent_validator import ValidationIssue


class OcoBotError(Exception):
    """Base class for all fatal bot errors."""


class ValidationError(OcoBotError):
    """Position intent fails an exchange filter check."""

    def __init__(self, issues: List["ValidationIssue"]) -> None:
        self.issues = list(issues)
        super().__init__("; ".join(issue.message for issue in self.issues) or "invalid intent")


class GatewayError(OcoBotError):
    """An exchange call or stream failed."""

    def __init__(
        self,
        operation: str,
        message: str,
        role: Optional[Any] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.operation = operation
        self.role = role
        self.cause = cause
        super().__init__(f"{operation} failed: {message}")


class UnexpectedOrderStatus(OcoBotError):
    """Order reached a status the bot cannot recover from (rejected, expired, ...)."""

    def __init__(self, order_id: int, status: str, reason: Optional[str] = None) -> None:
        self.order_id = order_id
        self.status = status
        self.reason = reason
        super().__init__(f"order {order_id} {status}. Reason: {reason}")


class OrderStateError(OcoBotError):
    """Illegal tracked-order transition or duplicate submission."""
