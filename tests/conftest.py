"""
Gemensamma fixtures för testerna
"""
import pytest
from datetime import date
from decimal import Decimal

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.pool import StaticPool

from huvudbok.config import AccountType, FiscalYearType, UserRole
from huvudbok.models import Base, create_session_factory
from huvudbok.services.accounts import AccountService
from huvudbok.services.authorization import Actor
from huvudbok.services.journal import JournalService
from huvudbok.services.lifecycle import PeriodLifecycleService
from huvudbok.services.periods import PeriodService


@pytest.fixture
def db():
    """Skapa en ny minnesdatabas för varje test"""
    engine, session_factory = create_session_factory("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    session = session_factory()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def admin():
    return Actor(id="admin-1", role=UserRole.ADMIN)


@pytest.fixture
def accountant():
    return Actor(id="acc-1", role=UserRole.ACCOUNTANT)


@pytest.fixture
def account_service(db):
    return AccountService(db)


@pytest.fixture
def period_service(db):
    return PeriodService(db)


@pytest.fixture
def lifecycle(db):
    return PeriodLifecycleService(db)


@pytest.fixture
def journal(db):
    return JournalService(db)


@pytest.fixture
def company(account_service):
    return account_service.create_company(name="Test AB", org_number="556123-4567")


@pytest.fixture
def fiscal_year(period_service, company, admin):
    """Kalenderår 2024 med tolv månadsperioder, alla inaktiva"""
    return period_service.create_fiscal_year(
        company.id, date(2024, 1, 1), date(2024, 12, 31), FiscalYearType.CALENDAR, admin
    )


@pytest.fixture
def active_year(fiscal_year, lifecycle, admin):
    """Räkenskapsår 2024 med samtliga månadsperioder aktiva"""
    lifecycle.activate("fiscal_year", fiscal_year.id, admin)
    for period in fiscal_year.monthly_periods:
        lifecycle.activate("monthly", period.id, admin)
    return fiscal_year


@pytest.fixture
def chart(account_service, company):
    """
    Liten kontoplan:

    1000000 Tillgångar (samling)
      100000001 Kassa
      100000002 Bank
    2000000 Leverantörsskulder
    3000000 Eget kapital
    4000000 Försäljning
    6000000 Övriga kostnader
    """
    assets = account_service.create_account(company.id, "Tillgångar", AccountType.ASSET, is_parent=True)
    cash = account_service.create_account(company.id, "Kassa", AccountType.ASSET, parent_id=assets.id)
    bank = account_service.create_account(company.id, "Bank", AccountType.ASSET, parent_id=assets.id)
    payables = account_service.create_account(company.id, "Leverantörsskulder", AccountType.LIABILITY)
    equity = account_service.create_account(company.id, "Eget kapital", AccountType.EQUITY)
    sales = account_service.create_account(company.id, "Försäljning", AccountType.INCOME)
    costs = account_service.create_account(company.id, "Övriga kostnader", AccountType.EXPENSE)
    return {
        "assets": assets,
        "cash": cash,
        "bank": bank,
        "payables": payables,
        "equity": equity,
        "sales": sales,
        "costs": costs,
    }


def line(account, debit=0, credit=0):
    """Konteringsrad för tester"""
    return {"account_id": account.id, "debit": Decimal(str(debit)), "credit": Decimal(str(credit))}
