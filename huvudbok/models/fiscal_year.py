"""
Räkenskapsår och månadsperioder
"""
from datetime import date, datetime
from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Boolean, ForeignKey, Enum, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship
from huvudbok.models.base import Base
from huvudbok.config import FiscalYearType, PeriodState


class PeriodStatusMixin:
    """
    Gemensamma livscykelfält för räkenskapsår och månadsperioder

    Tillstånd: öppen/inaktiv -> öppen/aktiv -> stängd.
    Återöppning registreras med tidpunkt, aktör och motivering.
    """
    is_active = Column(Boolean, default=False, nullable=False)
    is_closed = Column(Boolean, default=False, nullable=False)

    closed_at = Column(DateTime)
    closed_by = Column(String(64))

    reopened_at = Column(DateTime)
    reopened_by = Column(String(64))
    reopen_reason = Column(Text)

    # Stängd igen efter en återöppning
    reclosed_at = Column(DateTime)
    reclosed_by = Column(String(64))

    @property
    def state(self) -> PeriodState:
        if self.is_closed:
            return PeriodState.CLOSED
        if self.is_active:
            return PeriodState.OPEN_ACTIVE
        return PeriodState.OPEN_INACTIVE

    @property
    def was_reopened(self) -> bool:
        return self.reopened_at is not None

    def contains_date(self, check_date: date) -> bool:
        """Kontrollera om ett datum ligger inom perioden"""
        return self.start_date <= check_date <= self.end_date


class FiscalYear(PeriodStatusMixin, Base):
    """
    Räkenskapsår

    Tolv månader enligt företagets räkenskapsårstyp (kalenderår
    eller brutet år med start i april, juli eller oktober).
    """
    __tablename__ = "fiscal_years"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)

    name = Column(String(100), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    fiscal_year_type = Column(Enum(FiscalYearType), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    created_by = Column(String(64))

    # Relationer
    company = relationship("Company", back_populates="fiscal_years")
    monthly_periods = relationship(
        "MonthlyPeriod",
        back_populates="fiscal_year",
        cascade="all, delete-orphan",
        order_by="MonthlyPeriod.start_date"
    )

    def __repr__(self):
        return f"<FiscalYear({self.name}: {self.start_date} - {self.end_date})>"


class MonthlyPeriod(PeriodStatusMixin, Base):
    """
    Månadsperiod - bokföringsgranularitet inom ett räkenskapsår

    Månadsperioderna under ett räkenskapsår täcker exakt
    [start_date, end_date] utan luckor eller överlapp.
    """
    __tablename__ = "monthly_periods"

    id = Column(Integer, primary_key=True, index=True)
    fiscal_year_id = Column(Integer, ForeignKey("fiscal_years.id"), nullable=False)

    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)  # 1-12
    name = Column(String(100), nullable=False)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationer
    fiscal_year = relationship("FiscalYear", back_populates="monthly_periods")
    journal_entries = relationship("JournalEntry", back_populates="monthly_period")

    __table_args__ = (
        UniqueConstraint("fiscal_year_id", "year", "month", name="uq_monthly_period_month"),
    )

    def __repr__(self):
        return f"<MonthlyPeriod({self.name}: {self.start_date} - {self.end_date})>"
