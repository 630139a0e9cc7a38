"""Consumption calculation from consecutive meter readings."""

import logging
from decimal import Decimal
from typing import Any, NamedTuple

from billing_recon.config.recon_config import NegativeConsumptionPolicy
from billing_recon.services.billing_types import ZERO, to_decimal

logger = logging.getLogger(__name__)


class ConsumptionResult(NamedTuple):
    """Raw readings delta of one sub-period."""

    consumption: Decimal
    anomaly: bool  # True when the delta is negative (meter reset or data error)


def extract_reading(value: Any) -> Decimal | None:
    """Normalize a stored reading, either a bare number or {"reading": number}.

    Returns:
        Reading value as Decimal, or None if absent
    """
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("reading")
        if value is None:
            return None
    if isinstance(value, bool):
        return None
    try:
        return to_decimal(value)
    except ArithmeticError:
        logger.warning("Ignoring non-numeric reading value %r", value)
        return None


def calculate_consumption(current: Any, prior: Any) -> ConsumptionResult | None:
    """Calculate consumption as current - prior.

    A negative result is returned as-is with anomaly=True; clamping is the
    caller's decision.

    Args:
        current: Reading at the end of the sub-period
        prior: Reading at the end of the preceding sub-period

    Returns:
        ConsumptionResult, or None if either reading is missing
    """
    current_value = extract_reading(current)
    prior_value = extract_reading(prior)
    if current_value is None or prior_value is None:
        return None

    consumption = current_value - prior_value
    return ConsumptionResult(consumption=consumption, anomaly=consumption < 0)


def apply_negative_policy(
    result: ConsumptionResult,
    policy: NegativeConsumptionPolicy,
) -> Decimal | None:
    """Resolve an anomalous delta according to the deployment policy.

    Returns:
        Usable consumption, or None when the policy rejects the anomaly
    """
    if not result.anomaly:
        return result.consumption
    if policy == NegativeConsumptionPolicy.CLAMP:
        return ZERO
    return None


def consumption_series(
    readings: list[Any],
    prior_reading: Any,
) -> list[ConsumptionResult | None]:
    """Calculate consumption for consecutive sub-periods.

    Args:
        readings: Readings at the end of each sub-period, in order
        prior_reading: Reading that precedes the first sub-period

    Returns:
        One ConsumptionResult (or None when data is missing) per sub-period
    """
    results = []
    previous = prior_reading
    for reading in readings:
        results.append(calculate_consumption(reading, previous))
        previous = reading
    return results
