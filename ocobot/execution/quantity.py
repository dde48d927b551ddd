"""
Fee-adjusted sell quantities.

When the trading fee of the entry fill was charged in the base asset, the
account holds slightly less than was bought and a sell for the full amount
would be rejected for insufficient balance. Paying the fee in the exchange's
discount asset leaves the bought quantity intact.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

FEE_DISCOUNT_ASSET = "BNB"
NON_DISCOUNT_TRADING_FEE = Decimal("0.001")


def adjust_sell_quantity(
    commission_asset: Optional[str],
    quantity: Decimal,
    fee_discount_asset: str = FEE_DISCOUNT_ASSET,
    fee_rate: Decimal = NON_DISCOUNT_TRADING_FEE,
) -> Decimal:
    if commission_asset == fee_discount_asset:
        return quantity
    return quantity * (Decimal("1") - fee_rate)


class QuantityAdjuster:
    """adjust(commission_asset, quantity) -> sellable quantity. Pure."""

    def __init__(
        self,
        fee_discount_asset: str = FEE_DISCOUNT_ASSET,
        fee_rate: Decimal = NON_DISCOUNT_TRADING_FEE,
    ) -> None:
        self.fee_discount_asset = fee_discount_asset
        self.fee_rate = fee_rate

    def adjust(self, commission_asset: Optional[str], quantity: Decimal) -> Decimal:
        return adjust_sell_quantity(commission_asset, quantity, self.fee_discount_asset, self.fee_rate)
