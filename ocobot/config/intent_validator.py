"""
Position intent validation against exchange symbol filters.

Runs once, before any order is placed:
- Rounds amounts to the lot step and prices to the tick
- Checks every quantity, price and notional against the exchange minimums
- Resolves the entry trigger (defaults to the buy price)

All issues are collected so the operator sees every problem at once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum, auto
from typing import Any, List, Optional

from ocobot.core.errors import ValidationError
from ocobot.core.models import PositionIntent, SymbolFilters
from ocobot.core.rounding import round_to_step, round_to_tick

logger = logging.getLogger("ocobot")


class ValidationSeverity(Enum):
    """Severity levels for validation issues."""
    ERROR = auto()    # Blocks startup
    WARNING = auto()  # Logs warning but allows startup


@dataclass
class ValidationIssue:
    """A single validation issue."""
    field: str
    message: str
    severity: ValidationSeverity = ValidationSeverity.ERROR
    value: Any = None


@dataclass
class ValidationResult:
    """Rounded intent plus every issue found."""
    intent: PositionIntent
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.get_errors()

    def get_errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.ERROR]

    def get_warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]


class IntentValidator:
    """
    Validates a PositionIntent for one symbol.

    Checks:
    - amount / scale-out amount >= minimum quantity
    - every price >= minimum price
    - price x quantity >= minimum notional for each order that will be placed
    - option combinations that cannot be executed
    """

    def __init__(self, filters: SymbolFilters) -> None:
        self.filters = filters

    def validate(self, intent: PositionIntent) -> ValidationResult:
        rounded = self._round(intent)
        issues: List[ValidationIssue] = []
        issues.extend(self._validate_amounts(intent, rounded))
        issues.extend(self._validate_entry(rounded))
        issues.extend(self._validate_stop(rounded))
        issues.extend(self._validate_target(rounded))
        issues.extend(self._validate_cancel(rounded))
        return ValidationResult(intent=rounded, issues=issues)

    # ----- rounding -----

    def _round(self, intent: PositionIntent) -> PositionIntent:
        f = self.filters

        def tick(px: Optional[Decimal]) -> Optional[Decimal]:
            if px is None or px == 0:
                return px
            return round_to_tick(px, f.tick_size)

        buy_price = tick(intent.buy_price)
        trigger_price = tick(intent.trigger_price)
        if trigger_price is None and buy_price is not None:
            # let the trigger and buy price be the same if trigger not specified
            trigger_price = buy_price

        scale_out = intent.scale_out_amount
        if scale_out:
            scale_out = round_to_step(scale_out, f.step_size)
        else:
            scale_out = None

        return replace(
            intent,
            amount=round_to_step(intent.amount, f.step_size),
            buy_price=buy_price,
            trigger_price=trigger_price,
            stop_price=tick(intent.stop_price),
            limit_price=tick(intent.limit_price),
            target_price=tick(intent.target_price),
            cancel_price=tick(intent.cancel_price),
            scale_out_amount=scale_out,
        )

    # ----- checks -----

    def _min_qty(self, name: str, qty: Decimal) -> List[ValidationIssue]:
        if qty < self.filters.min_qty:
            return [ValidationIssue(
                name, f"Amount {qty} does not meet minimum order amount {self.filters.min_qty}.", value=qty,
            )]
        return []

    def _min_price(self, name: str, label: str, px: Decimal) -> List[ValidationIssue]:
        if px < self.filters.min_price:
            return [ValidationIssue(
                name, f"{label} price {px} does not meet minimum order price {self.filters.min_price}.", value=px,
            )]
        return []

    def _min_notional(self, name: str, label: str, px: Decimal, qty: Decimal) -> List[ValidationIssue]:
        if px * qty < self.filters.min_notional:
            return [ValidationIssue(
                name, f"{label} order does not meet minimum order value {self.filters.min_notional}.", value=px * qty,
            )]
        return []

    def _validate_amounts(self, raw: PositionIntent, intent: PositionIntent) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        if intent.amount <= 0:
            issues.append(ValidationIssue(
                "amount", f"Amount {raw.amount} rounds to {intent.amount} at step {self.filters.step_size}.",
                value=raw.amount,
            ))
        if intent.scale_out_amount is not None:
            issues.extend(self._min_qty("scale_out_amount", intent.scale_out_amount))
            if intent.scale_out_amount > intent.amount:
                issues.append(ValidationIssue(
                    "scale_out_amount",
                    f"Scale out amount {intent.scale_out_amount} exceeds amount {intent.amount}.",
                    value=intent.scale_out_amount,
                ))
        return issues

    def _validate_entry(self, intent: PositionIntent) -> List[ValidationIssue]:
        if not intent.has_entry:
            return []
        issues = self._min_qty("amount", intent.amount)
        if intent.trigger_price == 0:
            return issues  # market buy
        if not intent.buy_price:
            issues.append(ValidationIssue(
                "buy_price", f"Trigger price {intent.trigger_price} requires a buy price.",
                value=intent.trigger_price,
            ))
            return issues
        issues.extend(self._min_price("buy_price", "Buy", intent.buy_price))
        issues.extend(self._min_notional("buy_price", "Buy", intent.buy_price, intent.amount))
        issues.extend(self._min_price("trigger_price", "Trigger", intent.trigger_price))
        return issues

    def _validate_stop(self, intent: PositionIntent) -> List[ValidationIssue]:
        if not intent.has_stop:
            if intent.limit_price:
                return [ValidationIssue(
                    "limit_price", "Limit price requires a stop price.", value=intent.limit_price,
                )]
            return []
        name, label, px = "stop_price", "Stop", intent.stop_price
        if intent.limit_price:
            name, label, px = "limit_price", "Limit", intent.limit_price
        issues = self._min_price(name, label, px)
        qty = self.stop_quantity(intent)
        issues.extend(self._min_qty("stop_amount", qty))
        issues.extend(self._min_notional(name, "Stop", px, qty))
        return issues

    @staticmethod
    def stop_quantity(intent: PositionIntent) -> Decimal:
        """
        Smallest quantity a stop order is placed for.

        With a target the first stop only covers what the scale-out leaves
        over; when the target takes everything the stop is only placed after
        a stop cross, for the whole amount.
        """
        if intent.has_target and intent.target_amount < intent.amount:
            return intent.amount - intent.target_amount
        return intent.amount

    def _validate_target(self, intent: PositionIntent) -> List[ValidationIssue]:
        if not intent.has_target:
            return []
        qty = intent.target_amount
        issues = self._min_qty("target_amount", qty)
        issues.extend(self._min_price("target_price", "Target", intent.target_price))
        issues.extend(self._min_notional("target_price", "Target", intent.target_price, qty))
        return issues

    def _validate_cancel(self, intent: PositionIntent) -> List[ValidationIssue]:
        if intent.cancel_price and not intent.has_entry:
            return [ValidationIssue(
                "cancel_price", "Cancel price is ignored without an entry order.",
                severity=ValidationSeverity.WARNING, value=intent.cancel_price,
            )]
        return []


def validate_intent(intent: PositionIntent, filters: SymbolFilters) -> PositionIntent:
    """
    Round and validate an intent.

    Returns:
        The rounded intent

    Raises:
        ValidationError: listing every blocking issue
    """
    result = IntentValidator(filters).validate(intent)
    for warning in result.get_warnings():
        logger.warning("intent_warning field=%s: %s", warning.field, warning.message)
    if not result.valid:
        for error in result.get_errors():
            logger.error("intent_error field=%s: %s", error.field, error.message)
        raise ValidationError(result.get_errors())
    return result.intent
