"""Meter reading ORM model - one reading per unit per fiscal month."""

from decimal import Decimal

from sqlalchemy import Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_recon.models import Base, BaseModel


class MeterReadingRecord(Base, BaseModel):
    """Meter reading recorded at the end of a fiscal month.

    Attributes:
        unit_id: Unit identifier (e.g., "101")
        period_key: Fiscal month key "YYYY-MM" (fiscal year, zero-based month)
        reading_value: Cumulative meter value
    """

    __tablename__ = "meter_readings"

    unit_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    period_key: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    reading_value: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=3), nullable=False)

    __table_args__ = (UniqueConstraint("unit_id", "period_key", name="uq_reading_unit_period"),)

    def __repr__(self) -> str:
        return f"<MeterReadingRecord(unit={self.unit_id}, period={self.period_key}, value={self.reading_value})>"
