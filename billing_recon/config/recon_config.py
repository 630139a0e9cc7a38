"""Configuration loader for reconciliation rules.

Loads rates, tolerances, allocation strategy order and known-credit exclusions
from recon.json so that per-deployment business rules stay out of the code.
"""

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Dict

from billing_recon.services.errors import ConfigError

logger = logging.getLogger(__name__)

ALLOCATION_STRATEGIES = ("readings_exact", "readings_scaled", "charge_ratio", "even_split")


class NegativeConsumptionPolicy(str, Enum):
    """What the engine does with a negative readings delta."""

    CLAMP = "clamp"
    """Treat the sub-period as zero consumption and warn"""

    REJECT = "reject"
    """Mark the unit/period unfixable for manual review"""


@dataclass(frozen=True)
class KnownCreditExclusion:
    """A billing error that was already credited and must not be credited again."""

    amount: Decimal
    description: str = ""
    period_ids: tuple[str, ...] = ()
    fiscal_quarters: tuple[int, ...] = ()
    match_tolerance: Decimal = Decimal("0.50")

    def applies_to(self, period_id: str, fiscal_quarter: int | None) -> bool:
        if self.period_ids and period_id in self.period_ids:
            return True
        if self.fiscal_quarters and fiscal_quarter in self.fiscal_quarters:
            return True
        return False


@dataclass
class ReconConfig:
    """Reconciliation rules with defaults matching the water-billing deployment."""

    unit_rate: Decimal = Decimal("50.00")
    consumption_tolerance: Decimal = Decimal("5")
    money_tolerance: Decimal = Decimal("0.50")
    consumption_quantum: Decimal = Decimal("1")
    negative_consumption_policy: NegativeConsumptionPolicy = NegativeConsumptionPolicy.CLAMP
    allocation_strategies: tuple[str, ...] = ("readings_exact", "readings_scaled")
    fiscal_year_start_month: int = 7
    sub_periods_per_cycle: int = 3
    other_charge_fields: tuple[str, ...] = ("carWashCharge", "boatWashCharge")
    known_credit_exclusions: list[KnownCreditExclusion] = field(default_factory=list)
    credit_match_window_days: int = 7
    credit_amount_tolerance: Decimal = Decimal("1.00")

    @classmethod
    def load(cls, config_path: str | Path) -> "ReconConfig":
        """Load configuration from a JSON file.

        Raises:
            ConfigError: If the file is missing or malformed
        """
        path = Path(config_path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            logger.error("Reconciliation configuration not found at %s", path)
            raise ConfigError(f"Reconciliation configuration not found: {path}") from e
        except json.JSONDecodeError as e:
            logger.error("Failed to parse %s: %s", path, e)
            raise ConfigError(f"Invalid reconciliation configuration {path}: {e}") from e

        config = cls.from_dict(data)
        logger.info("Loaded reconciliation configuration from %s", path)
        return config

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReconConfig":
        """Build configuration from a parsed recon.json mapping."""
        billing = data.get("billing", {})
        allocation = data.get("allocation", {})
        calendar = data.get("fiscal_calendar", {})
        credit = data.get("credit_history", {})

        try:
            config = cls()
            if "unit_rate" in billing:
                config.unit_rate = Decimal(str(billing["unit_rate"]))
            if "other_charge_fields" in billing:
                config.other_charge_fields = tuple(billing["other_charge_fields"])
            if "consumption_tolerance" in allocation:
                config.consumption_tolerance = Decimal(str(allocation["consumption_tolerance"]))
            if "money_tolerance" in allocation:
                config.money_tolerance = Decimal(str(allocation["money_tolerance"]))
            if "consumption_quantum" in allocation:
                config.consumption_quantum = Decimal(str(allocation["consumption_quantum"]))
            if "negative_consumption_policy" in allocation:
                config.negative_consumption_policy = NegativeConsumptionPolicy(
                    allocation["negative_consumption_policy"]
                )
            if "strategies" in allocation:
                config.allocation_strategies = tuple(allocation["strategies"])
            if "start_month" in calendar:
                config.fiscal_year_start_month = int(calendar["start_month"])
            if "sub_periods_per_cycle" in calendar:
                config.sub_periods_per_cycle = int(calendar["sub_periods_per_cycle"])
            if "match_window_days" in credit:
                config.credit_match_window_days = int(credit["match_window_days"])
            if "amount_tolerance" in credit:
                config.credit_amount_tolerance = Decimal(str(credit["amount_tolerance"]))

            config.known_credit_exclusions = [
                KnownCreditExclusion(
                    amount=Decimal(str(rule["amount"])),
                    description=rule.get("description", ""),
                    period_ids=tuple(rule.get("period_ids", [])),
                    fiscal_quarters=tuple(int(q) for q in rule.get("fiscal_quarters", [])),
                    match_tolerance=Decimal(str(rule.get("match_tolerance", "0.50"))),
                )
                for rule in data.get("known_credit_exclusions", [])
            ]
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise ConfigError(f"Invalid reconciliation configuration: {e}") from e

        if not 1 <= config.fiscal_year_start_month <= 12:
            raise ConfigError("fiscal_calendar.start_month must be between 1 and 12")
        if config.sub_periods_per_cycle < 1 or 12 % config.sub_periods_per_cycle:
            raise ConfigError("fiscal_calendar.sub_periods_per_cycle must divide 12")
        if config.consumption_tolerance < 0 or config.money_tolerance < 0:
            raise ConfigError("Tolerances cannot be negative")
        if config.consumption_quantum <= 0:
            raise ConfigError("allocation.consumption_quantum must be positive")
        unknown = [name for name in config.allocation_strategies if name not in ALLOCATION_STRATEGIES]
        if unknown or not config.allocation_strategies:
            raise ConfigError(f"allocation.strategies must be a non-empty subset of {ALLOCATION_STRATEGIES}")

        return config
