"""
Tests for the Decimal numeric core.
"""

from decimal import Decimal
from fractions import Fraction

import pytest

from approxagree.simulation.numeric import NumericConfig, NumericContext


@pytest.fixture
def numeric():
    return NumericContext()


class TestNumericConfig:
    def test_defaults(self):
        config = NumericConfig()
        assert config.precision == 50

    def test_rejects_zero_precision(self):
        with pytest.raises(ValueError):
            NumericConfig(precision=0)

    def test_rejects_inverted_exponent_range(self):
        with pytest.raises(ValueError):
            NumericConfig(emin=5)

    def test_is_immutable(self):
        config = NumericConfig()
        with pytest.raises(AttributeError):
            config.precision = 10


class TestConversion:
    def test_float_goes_through_repr(self, numeric):
        assert numeric.to_decimal(0.7) == Decimal("0.7")

    def test_fraction(self, numeric):
        third = numeric.to_decimal(Fraction(1, 3))
        assert str(third).startswith("0.3333333333")

    def test_int_and_str(self, numeric):
        assert numeric.to_decimal(3) == Decimal(3)
        assert numeric.to_decimal("0.25") == Decimal("0.25")

    def test_bool_is_rejected(self, numeric):
        with pytest.raises(TypeError):
            numeric.to_decimal(True)

    def test_unsupported_type(self, numeric):
        with pytest.raises(TypeError):
            numeric.to_decimal([1])


class TestArithmetic:
    def test_complement_is_exact(self, numeric):
        assert numeric.complement(0.7) == Decimal("0.3")

    def test_power_zero_exponent(self, numeric):
        assert numeric.power(0, 0) == 1
        assert numeric.power(Decimal("0.3"), 0) == 1

    def test_power_zero_base(self, numeric):
        assert numeric.power(0, 5) == 0

    def test_power_integer(self, numeric):
        assert numeric.power(Decimal("0.3"), 3) == Decimal("0.027")

    def test_max_abs_diff(self, numeric):
        assert numeric.max_abs_diff([0.1, 0.7, 0.4]) == Decimal("0.6")

    def test_max_abs_diff_single_value(self, numeric):
        assert numeric.max_abs_diff([0.5]) == 0

    def test_abs_diff(self, numeric):
        assert numeric.abs_diff(0.2, 0.5) == Decimal("0.3")

    def test_is_close_to_zero(self, numeric):
        assert numeric.is_close_to_zero(1e-12)
        assert not numeric.is_close_to_zero(1e-3)

    def test_precision_is_private(self):
        low = NumericContext(NumericConfig(precision=5))
        high = NumericContext()
        assert low.divide(1, 3) == Decimal("0.33333")
        assert len(str(high.divide(1, 3))) > 40
