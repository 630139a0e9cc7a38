"""Unit tests for consumption calculation."""

from decimal import Decimal

from billing_recon.config.recon_config import NegativeConsumptionPolicy
from billing_recon.services.consumption_service import (
    ConsumptionResult,
    apply_negative_policy,
    calculate_consumption,
    consumption_series,
    extract_reading,
)


class TestExtractReading:
    """Stored reading shapes."""

    def test_bare_number(self):
        assert extract_reading(110) == Decimal("110")

    def test_reading_object(self):
        assert extract_reading({"reading": 135.5}) == Decimal("135.5")

    def test_missing(self):
        assert extract_reading(None) is None
        assert extract_reading({"reading": None}) is None
        assert extract_reading({}) is None

    def test_non_numeric_is_ignored(self):
        assert extract_reading("n/a") is None


class TestCalculateConsumption:
    """Raw readings delta."""

    def test_positive_delta(self):
        result = calculate_consumption(110, 100)
        assert result == ConsumptionResult(consumption=Decimal("10"), anomaly=False)

    def test_zero_delta(self):
        result = calculate_consumption(110, 110)
        assert result.consumption == Decimal("0")
        assert result.anomaly is False

    def test_negative_delta_is_not_clamped(self):
        result = calculate_consumption(95, 100)
        assert result.consumption == Decimal("-5")
        assert result.anomaly is True

    def test_missing_reading_returns_none(self):
        assert calculate_consumption(None, 100) is None
        assert calculate_consumption(110, None) is None

    def test_mixed_shapes(self):
        result = calculate_consumption({"reading": 120}, 100)
        assert result.consumption == Decimal("20")


class TestNegativePolicy:
    def test_clamp_turns_anomaly_into_zero(self):
        result = ConsumptionResult(consumption=Decimal("-5"), anomaly=True)
        assert apply_negative_policy(result, NegativeConsumptionPolicy.CLAMP) == Decimal("0")

    def test_reject_returns_none(self):
        result = ConsumptionResult(consumption=Decimal("-5"), anomaly=True)
        assert apply_negative_policy(result, NegativeConsumptionPolicy.REJECT) is None

    def test_normal_values_pass_through(self):
        result = ConsumptionResult(consumption=Decimal("7"), anomaly=False)
        assert apply_negative_policy(result, NegativeConsumptionPolicy.REJECT) == Decimal("7")


def test_consumption_series_uses_prior_reading_for_first_sub_period():
    results = consumption_series([110, 110, 135], prior_reading=100)

    assert [r.consumption for r in results] == [Decimal("10"), Decimal("0"), Decimal("25")]


def test_consumption_series_marks_missing_sub_period():
    results = consumption_series([110, None, 135], prior_reading=100)

    assert results[0].consumption == Decimal("10")
    assert results[1] is None
    assert results[2] is None
