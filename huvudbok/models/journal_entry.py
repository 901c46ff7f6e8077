"""
Verifikationsmodeller - Verifikationer och konteringsrader
"""
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Date, DateTime, ForeignKey, Numeric, CheckConstraint, Boolean, Enum
)
from sqlalchemy.orm import relationship
from huvudbok.models.base import Base
from huvudbok.config import EntryStatus


class JournalEntry(Base):
    """
    Verifikation

    Endast godkända, balanserade och ej makulerade verifikationer
    ingår i råbalansen. Öppningsverifikationer dokumenterar överförda
    saldon och räknas inte en gång till.
    """
    __tablename__ = "journal_entries"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    monthly_period_id = Column(Integer, ForeignKey("monthly_periods.id"), nullable=False)

    # Verifikationsnummer (unikt inom företaget)
    entry_number = Column(Integer, nullable=False)

    date = Column(Date, nullable=False, default=date.today, index=True)
    description = Column(String(500), nullable=False)

    status = Column(Enum(EntryStatus), default=EntryStatus.PENDING, nullable=False)
    is_approved = Column(Boolean, default=False, nullable=False)

    # Summeras vid registrering och kontrolleras igen vid godkännande
    is_balanced = Column(Boolean, default=False, nullable=False)
    total_debit = Column(Numeric(18, 2), default=Decimal(0), nullable=False)
    total_credit = Column(Numeric(18, 2), default=Decimal(0), nullable=False)

    # Bokslutsverifikation (nollställer resultatkonton)
    is_closing_entry = Column(Boolean, default=False, nullable=False)

    # Ingående balans överförd från föregående räkenskapsår
    is_opening_entry = Column(Boolean, default=False, nullable=False)

    # Metadata
    created_at = Column(DateTime, default=datetime.utcnow)
    created_by = Column(String(64))
    approved_at = Column(DateTime)
    approved_by = Column(String(64))
    voided_at = Column(DateTime)
    voided_by = Column(String(64))

    # Relationer
    company = relationship("Company", back_populates="journal_entries")
    monthly_period = relationship("MonthlyPeriod", back_populates="journal_entries")
    items = relationship("JournalEntryItem", back_populates="entry", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<JournalEntry(nr={self.entry_number}, date={self.date}, status={self.status})>"

    def item_totals(self) -> tuple[Decimal, Decimal]:
        """Summera debet och kredit från konteringsraderna"""
        debit = sum((Decimal(str(item.debit or 0)) for item in self.items), Decimal(0))
        credit = sum((Decimal(str(item.credit or 0)) for item in self.items), Decimal(0))
        return debit, credit


class JournalEntryItem(Base):
    """
    Konteringsrad

    Debet och kredit är icke-negativa och summeras var för sig.
    Normalt är bara en av dem skild från noll.
    """
    __tablename__ = "journal_entry_items"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=False)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)

    debit = Column(Numeric(18, 2), default=Decimal(0), nullable=False)
    credit = Column(Numeric(18, 2), default=Decimal(0), nullable=False)

    # Valfri radkommentar
    description = Column(String(255))

    # Relationer
    entry = relationship("JournalEntry", back_populates="items")
    account = relationship("Account", back_populates="items")

    __table_args__ = (
        CheckConstraint("debit >= 0 AND credit >= 0", name="check_non_negative_amounts"),
    )

    def __repr__(self):
        return f"<JournalEntryItem(account={self.account_id}, debit={self.debit}, credit={self.credit})>"
