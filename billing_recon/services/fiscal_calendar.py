"""Fiscal calendar helpers for mapping billing cycles to reading keys.

Readings are stored per fiscal month under keys of the form "YYYY-MM", where
YYYY is the fiscal year and MM the zero-based fiscal month (00 = first month
of the fiscal year). A fiscal year starting in July therefore stores July 2025
under "2026-00" and June 2026 under "2026-11".
"""

import calendar
from dataclasses import dataclass


@dataclass(frozen=True)
class BillingCycle:
    """Reading keys and labels of one billing cycle (e.g. a fiscal quarter)."""

    fiscal_year: int
    cycle_number: int
    sub_period_labels: tuple[str, ...]
    sub_period_keys: tuple[str, ...]
    prior_period_key: str


class FiscalCalendar:
    """Fiscal year with a configurable start month split into equal billing cycles."""

    def __init__(self, start_month: int = 7, sub_periods_per_cycle: int = 3):
        if not 1 <= start_month <= 12:
            raise ValueError("start_month must be between 1 and 12")
        if sub_periods_per_cycle < 1 or 12 % sub_periods_per_cycle:
            raise ValueError("sub_periods_per_cycle must divide 12")
        self.start_month = start_month
        self.sub_periods_per_cycle = sub_periods_per_cycle

    @property
    def cycles_per_year(self) -> int:
        return 12 // self.sub_periods_per_cycle

    def month_label(self, fiscal_month: int) -> str:
        """Calendar month name of a zero-based fiscal month."""
        calendar_month = (self.start_month - 1 + fiscal_month) % 12 + 1
        return calendar.month_name[calendar_month]

    @staticmethod
    def reading_key(fiscal_year: int, fiscal_month: int) -> str:
        return f"{fiscal_year}-{fiscal_month:02d}"

    def prior_reading_key(self, fiscal_year: int, fiscal_month: int) -> str:
        """Key of the reading that precedes a fiscal month (wraps into the prior year)."""
        if fiscal_month == 0:
            return self.reading_key(fiscal_year - 1, 11)
        return self.reading_key(fiscal_year, fiscal_month - 1)

    def cycle(self, fiscal_year: int, cycle_number: int) -> BillingCycle:
        """Build the billing cycle for a 1-based cycle number (quarter for 3 sub-periods).

        Raises:
            ValueError: If cycle_number is out of range
        """
        if not 1 <= cycle_number <= self.cycles_per_year:
            raise ValueError(f"cycle_number must be between 1 and {self.cycles_per_year}")

        first_month = (cycle_number - 1) * self.sub_periods_per_cycle
        months = range(first_month, first_month + self.sub_periods_per_cycle)
        return BillingCycle(
            fiscal_year=fiscal_year,
            cycle_number=cycle_number,
            sub_period_labels=tuple(self.month_label(m) for m in months),
            sub_period_keys=tuple(self.reading_key(fiscal_year, m) for m in months),
            prior_period_key=self.prior_reading_key(fiscal_year, first_month),
        )

    @staticmethod
    def parse_period_id(period_id: str) -> tuple[int, int] | None:
        """Parse a "YYYY-Q#" billing period id into (fiscal_year, cycle_number)."""
        year_part, sep, cycle_part = period_id.partition("-Q")
        if not sep or not year_part.isdigit() or not cycle_part.isdigit():
            return None
        return int(year_part), int(cycle_part)
