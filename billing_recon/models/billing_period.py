"""Billing period ORM models: the period document and its per-unit bills."""

from typing import Any

from sqlalchemy import JSON, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_recon.models import Base, BaseModel


class BillingPeriodRecord(Base, BaseModel):
    """A multi-sub-period billing document (e.g. "2026-Q1")."""

    __tablename__ = "billing_periods"

    period_id: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        unique=True,
        index=True,
        comment="Period identifier (e.g., '2026-Q1')",
    )
    fiscal_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fiscal_quarter: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sub_period_keys: Mapped[list | None] = mapped_column(
        JSON,
        nullable=True,
        comment="Explicit reading keys; derived from the fiscal calendar when null",
    )
    sub_period_labels: Mapped[list | None] = mapped_column(JSON, nullable=True)
    prior_period_key: Mapped[str | None] = mapped_column(String(16), nullable=True)

    unit_bills: Mapped[list["UnitBillRecord"]] = relationship(
        "UnitBillRecord",
        back_populates="billing_period",
        cascade="all, delete-orphan",
    )

    def to_document(self) -> dict[str, Any]:
        """Stored document form consumed by BreakdownAdapter."""
        document: dict[str, Any] = {
            "periodId": self.period_id,
            "fiscalYear": self.fiscal_year,
            "fiscalQuarter": self.fiscal_quarter,
            "units": {bill.unit_id: dict(bill.document or {}) for bill in self.unit_bills},
        }
        if self.sub_period_keys:
            document["subPeriodKeys"] = list(self.sub_period_keys)
        if self.sub_period_labels:
            document["subPeriodLabels"] = list(self.sub_period_labels)
        if self.prior_period_key:
            document["priorPeriodKey"] = self.prior_period_key
        return document

    def __repr__(self) -> str:
        return f"<BillingPeriodRecord(period_id={self.period_id})>"


class UnitBillRecord(Base, BaseModel):
    """One unit's bill inside a billing period, stored as a JSON document.

    The document keeps the breakdown in whatever shape it was written
    (array or keyed object), along with payments and totals.
    """

    __tablename__ = "unit_bills"

    billing_period_id: Mapped[int] = mapped_column(
        ForeignKey("billing_periods.id"),
        nullable=False,
        index=True,
    )
    unit_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    document: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    billing_period: Mapped[BillingPeriodRecord] = relationship(
        "BillingPeriodRecord",
        back_populates="unit_bills",
    )

    __table_args__ = (UniqueConstraint("billing_period_id", "unit_id", name="uq_unit_bill_period_unit"),)

    def __repr__(self) -> str:
        return f"<UnitBillRecord(period={self.billing_period_id}, unit={self.unit_id})>"
