"""
Konfiguration för huvudboken
"""
import os
from decimal import Decimal
from enum import Enum
from pathlib import Path

# Projektrot
BASE_DIR = Path(__file__).resolve().parent.parent

# Databas (kan överskridas via miljövariabel)
DATABASE_URL = os.environ.get(
    "HUVUDBOK_DATABASE_URL",
    f"sqlite:///{BASE_DIR}/data/huvudbok.db"
)

# Loggning
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FORMAT = os.environ.get("LOG_FORMAT", "console")  # "console" eller "json"


class AccountType(str, Enum):
    """Kontotyper i kontoplanen"""
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"
    COST = "cost"
    MEMO = "memo"  # Poster inom linjen


class AccountNature(str, Enum):
    """Vilken sida som ökar kontots saldo"""
    DEBIT = "debit"
    CREDIT = "credit"


class FiscalYearType(str, Enum):
    """Räkenskapsårskonventioner (företagsgemensam)"""
    CALENDAR = "calendar"      # Jan - Dec
    FISCAL_MAR = "fiscal_mar"  # Apr - Mar
    FISCAL_JUN = "fiscal_jun"  # Jul - Jun
    FISCAL_SEP = "fiscal_sep"  # Okt - Sep

    @property
    def start_month(self) -> int:
        return FISCAL_YEAR_START_MONTHS[self]


class EntryStatus(str, Enum):
    """Status för verifikationer"""
    PENDING = "pending"
    APPROVED = "approved"
    VOIDED = "voided"


class PeriodKind(str, Enum):
    FISCAL_YEAR = "fiscal_year"
    MONTHLY = "monthly"


class PeriodState(str, Enum):
    """Livscykeltillstånd för en period"""
    OPEN_INACTIVE = "open_inactive"
    OPEN_ACTIVE = "open_active"
    CLOSED = "closed"


class PeriodAction(str, Enum):
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    CLOSE = "close"
    REOPEN = "reopen"


class UserRole(str, Enum):
    ADMIN = "admin"
    ACCOUNTANT = "accountant"
    VIEWER = "viewer"


FISCAL_YEAR_START_MONTHS = {
    FiscalYearType.CALENDAR: 1,
    FiscalYearType.FISCAL_MAR: 4,
    FiscalYearType.FISCAL_JUN: 7,
    FiscalYearType.FISCAL_SEP: 10,
}

# Normalsida per kontotyp
ACCOUNT_TYPE_NATURE = {
    AccountType.ASSET: AccountNature.DEBIT,
    AccountType.EXPENSE: AccountNature.DEBIT,
    AccountType.COST: AccountNature.DEBIT,
    AccountType.MEMO: AccountNature.DEBIT,
    AccountType.LIABILITY: AccountNature.CREDIT,
    AccountType.EQUITY: AccountNature.CREDIT,
    AccountType.INCOME: AccountNature.CREDIT,
}

# Första siffran i huvudkontonas kod
ACCOUNT_TYPE_PREFIXES = {
    AccountType.ASSET: "1",
    AccountType.LIABILITY: "2",
    AccountType.EQUITY: "3",
    AccountType.INCOME: "4",
    AccountType.COST: "5",
    AccountType.EXPENSE: "6",
    AccountType.MEMO: "7",
}

# Kontokoder
ROOT_CODE_WIDTH = 6           # 1 + 000000
SUBACCOUNT_SUFFIX_WIDTH = 2   # 1000000 -> 100000001
CODE_GENERATION_ATTEMPTS = 5

# Perioder
PERIODS_PER_FISCAL_YEAR = 12

MONTH_NAMES = {
    1: "Januari", 2: "Februari", 3: "Mars", 4: "April",
    5: "Maj", 6: "Juni", 7: "Juli", 8: "Augusti",
    9: "September", 10: "Oktober", 11: "November", 12: "December",
}

# Belopp
BALANCE_TOLERANCE = Decimal("0.01")  # Tillåten differens debet/kredit
MONEY_QUANTUM = Decimal("0.01")      # Avrundning endast vid presentation/export

# Omförsök för läsande frågor (aldrig för skrivningar)
READ_RETRY_ATTEMPTS = int(os.environ.get("HUVUDBOK_READ_RETRY_ATTEMPTS", "3"))
READ_RETRY_DELAY = float(os.environ.get("HUVUDBOK_READ_RETRY_DELAY", "0.2"))
