"""
Databasmodeller för huvudboken
"""
from huvudbok.models.base import Base, engine, SessionLocal, get_db, init_db, create_session_factory
from huvudbok.models.company import Company
from huvudbok.models.account import Account
from huvudbok.models.fiscal_year import FiscalYear, MonthlyPeriod
from huvudbok.models.journal_entry import JournalEntry, JournalEntryItem
from huvudbok.models.period_history import PeriodHistory

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "init_db",
    "create_session_factory",
    "Company",
    "Account",
    "FiscalYear",
    "MonthlyPeriod",
    "JournalEntry",
    "JournalEntryItem",
    "PeriodHistory",
]
