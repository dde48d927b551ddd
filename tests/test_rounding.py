"""
Tests for Decimal rounding helpers.
"""

from decimal import Decimal

from ocobot.core.rounding import format_decimal, round_to_step, round_to_tick, to_decimal

D = Decimal


class TestRoundToStep:

    def test_floors_to_step(self):
        assert round_to_step(D("1.239"), D("0.01")) == D("1.23")
        assert round_to_step(D("0.999"), D("0.1")) == D("0.9")

    def test_exact_multiple_unchanged(self):
        assert round_to_step(D("5.00"), D("0.01")) == D("5.00")

    def test_quantized_to_step_exponent(self):
        assert str(round_to_step(D("1.5"), D("0.001"))) == "1.500"

    def test_zero_step_passthrough(self):
        assert round_to_step(D("1.2345"), D("0")) == D("1.2345")


class TestRoundToTick:

    def test_nearest_tick(self):
        assert round_to_tick(D("0.0020004"), D("0.000001")) == D("0.002000")
        assert round_to_tick(D("0.0020006"), D("0.000001")) == D("0.002001")

    def test_half_up(self):
        assert round_to_tick(D("0.0000015"), D("0.000001")) == D("0.000002")
        assert round_to_tick(D("10.25"), D("0.5")) == D("10.5")


class TestFormatDecimal:

    def test_plain_notation(self):
        assert format_decimal(D("1E-7")) == "0.0000001"
        assert format_decimal(D("1.2300")) == "1.23"
        assert format_decimal(D("100")) == "100"

    def test_zero(self):
        assert format_decimal(D("0.000")) == "0"


class TestToDecimal:

    def test_string(self):
        assert to_decimal("0.00100000") == D("0.001")

    def test_float_uses_shortest_repr(self):
        assert to_decimal(0.1) == D("0.1")

    def test_decimal_passthrough(self):
        value = D("3.14")
        assert to_decimal(value) is value
