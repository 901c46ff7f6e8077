"""
Företagsmodell - Multi-tenant stöd
"""
from datetime import date
from sqlalchemy import Column, Integer, String, Date, Enum
from sqlalchemy.orm import relationship
from huvudbok.models.base import Base
from huvudbok.config import FiscalYearType


class Company(Base):
    """
    Företag/Organisation

    Varje företag har sin egen kontoplan, verifikationer och räkenskapsår.
    Räkenskapsårskonventionen sätts när det första räkenskapsåret skapas
    och kan därefter inte ändras.
    """
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    org_number = Column(String(20), unique=True)  # Organisationsnummer

    # Företagsgemensam räkenskapsårstyp (NULL tills första året skapas)
    fiscal_year_type = Column(Enum(FiscalYearType), nullable=True)

    # Metadata
    created_at = Column(Date, default=date.today)

    # Relationer
    accounts = relationship("Account", back_populates="company", cascade="all, delete-orphan")
    fiscal_years = relationship("FiscalYear", back_populates="company", cascade="all, delete-orphan")
    journal_entries = relationship("JournalEntry", back_populates="company", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Company(id={self.id}, name='{self.name}')>"
