"""
Tester för råbalansen
"""
import pytest
from datetime import date
from decimal import Decimal

from conftest import line
from huvudbok.config import AccountType, EntryStatus, PeriodKind
from huvudbok.errors import ValidationError
from huvudbok.models import JournalEntry, JournalEntryItem
from huvudbok.services.trial_balance import TrialBalanceService, round_money, split_by_nature
from huvudbok.config import AccountNature


@pytest.fixture
def service(db):
    return TrialBalanceService(db)


@pytest.fixture
def january_entries(journal, active_year, company, chart, admin):
    """Kassa 500 mot eget kapital, bank 300 mot leverantörsskulder"""
    journal.post_entry(
        company.id, date(2024, 1, 10), "Insättning",
        [line(chart["cash"], debit=500), line(chart["equity"], credit=500)], admin
    )
    journal.post_entry(
        company.id, date(2024, 1, 20), "Lån",
        [line(chart["bank"], debit=300), line(chart["payables"], credit=300)], admin
    )


def insert_unbalanced_entry(db, company, period, debit_account, credit_account):
    """Godkänd verifikation med obalans direkt i databasen"""
    entry = JournalEntry(
        company_id=company.id, monthly_period_id=period.id, entry_number=99,
        date=period.start_date, description="Trasig", status=EntryStatus.APPROVED,
        is_approved=True, is_balanced=True,
        total_debit=Decimal("100"), total_credit=Decimal("100"),
    )
    db.add(entry)
    db.flush()
    db.add(JournalEntryItem(entry_id=entry.id, account_id=debit_account.id, debit=Decimal("100"), credit=0))
    db.add(JournalEntryItem(entry_id=entry.id, account_id=credit_account.id, debit=0, credit=Decimal("60")))
    db.commit()
    return entry


class TestRollup:
    def test_parent_is_sum_of_children(self, service, company, chart, january_entries):
        """Samlingskontot 1000000 med underkonton 500 och 300 visar 800"""
        tb = service.compute_trial_balance(company.id, date(2024, 1, 1), date(2024, 1, 31))

        assets = tb.get("1000000")
        assert tb.get("100000001").closing_balance == Decimal("500")
        assert tb.get("100000002").closing_balance == Decimal("300")
        assert assets.closing_balance == Decimal("800")
        assert assets.period_debits == Decimal("800")
        assert assets.has_children
        assert tb.is_balanced

    def test_preorder_with_levels(self, service, company, chart, january_entries):
        tb = service.compute_trial_balance(company.id, date(2024, 1, 1), date(2024, 1, 31))
        rows = [(a.code, a.level) for a in tb.accounts]
        assert rows[:3] == [("1000000", 1), ("100000001", 2), ("100000002", 2)]
        assert [a.code for a in tb.accounts] == [
            "1000000", "100000001", "100000002", "2000000", "3000000", "4000000", "6000000"
        ]

    def test_three_level_rollup(self, service, account_service, journal, active_year, company, admin):
        top = account_service.create_account(company.id, "Tillgångar", AccountType.ASSET, is_parent=True)
        middle = account_service.create_account(
            company.id, "Likvida medel", AccountType.ASSET, parent_id=top.id, is_parent=True
        )
        cash = account_service.create_account(company.id, "Kassa", AccountType.ASSET, parent_id=middle.id)
        bank = account_service.create_account(company.id, "Bank", AccountType.ASSET, parent_id=middle.id)
        stock = account_service.create_account(company.id, "Lager", AccountType.ASSET, parent_id=top.id)
        equity = account_service.create_account(company.id, "Eget kapital", AccountType.EQUITY)

        journal.post_entry(
            company.id, date(2024, 3, 1), "Start",
            [
                line(cash, debit="100.25"),
                line(bank, debit="200.50"),
                line(stock, debit="50.10"),
                line(equity, credit="350.85"),
            ],
            admin
        )

        tb = service.compute_trial_balance(company.id, date(2024, 1, 1), date(2024, 12, 31))
        assert tb.get(middle.code).closing_balance == Decimal("300.75")
        assert tb.get(top.code).closing_balance == Decimal("350.85")
        assert tb.get(middle.code).level == 2
        assert tb.get(cash.code).level == 3
        assert tb.totals.total_debits == Decimal("350.85")
        assert tb.totals.total_credits == Decimal("350.85")

    def test_totals_only_over_leaves(self, service, company, chart, january_entries):
        """Samlingskonton räknas inte dubbelt i totalsummorna"""
        tb = service.compute_trial_balance(company.id, date(2024, 1, 1), date(2024, 1, 31))
        assert tb.totals.total_debits == Decimal("800")
        assert tb.totals.total_credits == Decimal("800")
        assert tb.totals.difference == 0


class TestBalances:
    def test_opening_balance_from_prior_entries(self, service, company, chart, january_entries):
        tb = service.compute_trial_balance(company.id, date(2024, 2, 1), date(2024, 2, 29))
        cash = tb.get("100000001")
        assert cash.opening_balance == Decimal("500")
        assert cash.period_debits == 0
        assert cash.closing_balance == Decimal("500")
        assert tb.get("3000000").opening_balance == Decimal("500")

    def test_credit_nature_signs(self, service, journal, company, chart, active_year, admin):
        """Intäkter ökar med kredit, kostnader med debet"""
        journal.post_entry(
            company.id, date(2024, 4, 1), "Försäljning",
            [line(chart["cash"], debit=1000), line(chart["sales"], credit=1000)], admin
        )
        journal.post_entry(
            company.id, date(2024, 4, 2), "Kostnad",
            [line(chart["costs"], debit=200), line(chart["cash"], credit=200)], admin
        )
        tb = service.compute_trial_balance(company.id, date(2024, 4, 1), date(2024, 4, 30))
        assert tb.get("4000000").closing_balance == Decimal("1000")
        assert tb.get("6000000").closing_balance == Decimal("200")
        assert tb.get("100000001").closing_balance == Decimal("800")

    def test_opening_plus_movement_equals_closing(self, service, company, chart, january_entries):
        tb = service.compute_trial_balance(company.id, date(2024, 1, 15), date(2024, 1, 31))
        for balance in tb.leaves():
            assert balance.closing_balance == balance.opening_balance + balance.net_movement

    def test_excludes_pending_and_voided(self, service, journal, company, chart, active_year, admin):
        journal.create_entry(
            company.id, date(2024, 5, 1), "Väntar",
            [line(chart["cash"], debit=70), line(chart["sales"], credit=70)], admin
        )
        voided = journal.post_entry(
            company.id, date(2024, 5, 2), "Makulerad",
            [line(chart["cash"], debit=30), line(chart["sales"], credit=30)], admin
        )
        journal.void_entry(voided.id, admin)

        tb = service.compute_trial_balance(company.id, date(2024, 5, 1), date(2024, 5, 31))
        assert tb.get("100000001").closing_balance == 0
        assert tb.totals.total_debits == 0

    def test_excludes_later_entries(self, service, company, chart, january_entries):
        tb = service.compute_trial_balance(company.id, date(2023, 1, 1), date(2023, 12, 31))
        assert all(a.closing_balance == 0 for a in tb.accounts)

    def test_account_type_filter(self, service, company, chart, january_entries):
        tb = service.compute_trial_balance(
            company.id, date(2024, 1, 1), date(2024, 1, 31), [AccountType.LIABILITY]
        )
        assert [a.code for a in tb.accounts] == ["2000000"]
        assert not tb.is_balanced

    def test_no_accounts(self, service, company):
        tb = service.compute_trial_balance(company.id, date(2024, 1, 1), date(2024, 1, 31))
        assert tb.accounts == []
        assert tb.is_balanced

    def test_invalid_range(self, service, company):
        with pytest.raises(ValidationError) as exc:
            service.compute_trial_balance(company.id, date(2024, 2, 1), date(2024, 1, 1))
        assert exc.value.precondition == "invalid_date_range"

    def test_idempotent(self, service, company, chart, january_entries):
        first = service.compute_trial_balance(company.id, date(2024, 1, 1), date(2024, 6, 30))
        second = service.compute_trial_balance(company.id, date(2024, 1, 1), date(2024, 6, 30))
        assert first.to_dict() == second.to_dict()

    def test_imbalance_reported(self, service, db, company, chart, active_year):
        period = active_year.monthly_periods[6]
        insert_unbalanced_entry(db, company, period, chart["cash"], chart["sales"])
        tb = service.compute_trial_balance(company.id, period.start_date, period.end_date)
        assert not tb.is_balanced
        assert tb.totals.difference == Decimal("40")

    def test_compute_for_period(self, service, company, chart, active_year, january_entries):
        tb = service.compute_for_period(PeriodKind.MONTHLY, active_year.monthly_periods[0].id)
        assert tb.start_date == date(2024, 1, 1)
        assert tb.get("1000000").closing_balance == Decimal("800")

        tb = service.compute_for_period(PeriodKind.FISCAL_YEAR, active_year.id)
        assert tb.end_date == date(2024, 12, 31)


class TestExport:
    def test_round_half_up(self):
        assert round_money(Decimal("0.125")) == Decimal("0.13")
        assert round_money(Decimal("2.675")) == Decimal("2.68")
        assert round_money(Decimal("-0.125")) == Decimal("-0.13")

    def test_split_by_nature(self):
        assert split_by_nature(AccountNature.DEBIT, Decimal("5")) == (Decimal("5"), 0)
        assert split_by_nature(AccountNature.DEBIT, Decimal("-5")) == (0, Decimal("5"))
        assert split_by_nature(AccountNature.CREDIT, Decimal("5")) == (0, Decimal("5"))

    def test_export_rows(self, service, journal, company, chart, active_year, admin):
        """Kreditkonto med debetsaldo hamnar i debetkolumnen"""
        journal.post_entry(
            company.id, date(2024, 8, 1), "Kreditnota",
            [line(chart["sales"], debit="99.9"), line(chart["cash"], credit="99.9")], admin
        )
        tb = service.compute_trial_balance(company.id, date(2024, 8, 1), date(2024, 8, 31))
        rows = {r["code"]: r for r in tb.export_rows()}

        assert rows["4000000"]["closing_debit"] == "99.90"
        assert rows["4000000"]["closing_credit"] == "0.00"
        assert rows["100000001"]["name"] == "  Kassa"
        assert tb.export_totals()["difference"] == "0.00"
