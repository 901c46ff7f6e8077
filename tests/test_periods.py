"""
Tester för räkenskapsår och månadsperioder
"""
import pytest
from datetime import date, timedelta

from huvudbok.config import FiscalYearType, PeriodState
from huvudbok.errors import ValidationError, StateConflictError, AuthorizationError, IntegrityError
from huvudbok.services.periods import fiscal_year_bounds, fiscal_year_name, partition_problems, verify_partition


class TestFiscalYearBounds:
    @pytest.mark.parametrize("fiscal_year_type,start,end", [
        (FiscalYearType.CALENDAR, date(2024, 1, 1), date(2024, 12, 31)),
        (FiscalYearType.FISCAL_MAR, date(2024, 4, 1), date(2025, 3, 31)),
        (FiscalYearType.FISCAL_JUN, date(2024, 7, 1), date(2025, 6, 30)),
        (FiscalYearType.FISCAL_SEP, date(2024, 10, 1), date(2025, 9, 30)),
    ])
    def test_bounds(self, fiscal_year_type, start, end):
        assert fiscal_year_bounds(fiscal_year_type, 2024) == (start, end)

    def test_names(self):
        assert fiscal_year_name(FiscalYearType.CALENDAR, date(2024, 1, 1)) == "FY2024"
        assert fiscal_year_name(FiscalYearType.FISCAL_JUN, date(2024, 7, 1)) == "FY2024/25"
        assert fiscal_year_name(FiscalYearType.FISCAL_SEP, date(2099, 10, 1)) == "FY2099/00"


class TestCreateFiscalYear:
    def test_calendar_year_partition(self, fiscal_year):
        """Kalenderår 2024 ger tolv perioder från januari till december"""
        periods = fiscal_year.monthly_periods
        assert fiscal_year.name == "FY2024"
        assert len(periods) == 12
        assert periods[0].name == "Januari 2024"
        assert (periods[0].start_date, periods[0].end_date) == (date(2024, 1, 1), date(2024, 1, 31))
        assert (periods[1].start_date, periods[1].end_date) == (date(2024, 2, 1), date(2024, 2, 29))
        assert (periods[-1].start_date, periods[-1].end_date) == (date(2024, 12, 1), date(2024, 12, 31))

    @pytest.mark.parametrize("fiscal_year_type", list(FiscalYearType))
    def test_partition_each_convention(self, period_service, company, admin, fiscal_year_type):
        """Perioderna täcker hela året utan luckor eller överlapp"""
        start, end = fiscal_year_bounds(fiscal_year_type, 2023)
        fiscal_year = period_service.create_fiscal_year(company.id, start, end, fiscal_year_type, admin)
        periods = period_service.get_monthly_periods(fiscal_year.id)

        assert len(periods) == 12
        assert periods[0].start_date == start
        assert periods[-1].end_date == end
        for previous, current in zip(periods, periods[1:]):
            assert current.start_date == previous.end_date + timedelta(days=1)
        assert partition_problems(start, end, periods) == []

    def test_new_year_is_open_and_inactive(self, fiscal_year):
        assert fiscal_year.state == PeriodState.OPEN_INACTIVE
        assert all(p.state == PeriodState.OPEN_INACTIVE for p in fiscal_year.monthly_periods)

    def test_company_type_locked(self, period_service, company, fiscal_year, admin):
        """Räkenskapsårstypen låses vid första räkenskapsåret"""
        assert company.fiscal_year_type == FiscalYearType.CALENDAR
        with pytest.raises(ValidationError) as exc:
            period_service.create_fiscal_year(
                company.id, date(2025, 7, 1), date(2026, 6, 30), FiscalYearType.FISCAL_JUN, admin
            )
        assert exc.value.precondition == "fiscal_year_type_mismatch"

    def test_overlap_rejected(self, period_service, company, fiscal_year, admin):
        with pytest.raises(ValidationError) as exc:
            period_service.create_fiscal_year(
                company.id, date(2024, 1, 1), date(2024, 12, 31), FiscalYearType.CALENDAR, admin
            )
        assert exc.value.precondition == "fiscal_year_overlap"

    def test_wrong_start_month(self, period_service, company, admin):
        with pytest.raises(ValidationError) as exc:
            period_service.create_fiscal_year(
                company.id, date(2024, 2, 1), date(2025, 1, 31), FiscalYearType.CALENDAR, admin
            )
        assert exc.value.precondition == "fiscal_year_start_mismatch"

    def test_wrong_length(self, period_service, company, admin):
        with pytest.raises(ValidationError) as exc:
            period_service.create_fiscal_year(
                company.id, date(2024, 1, 1), date(2024, 6, 30), FiscalYearType.CALENDAR, admin
            )
        assert exc.value.precondition == "fiscal_year_length_mismatch"

    def test_requires_admin(self, period_service, company, accountant):
        with pytest.raises(AuthorizationError) as exc:
            period_service.create_fiscal_year(
                company.id, date(2024, 1, 1), date(2024, 12, 31), FiscalYearType.CALENDAR, accountant
            )
        assert exc.value.precondition == "admin_required"

    def test_next_fiscal_year_bounds(self, period_service, company, fiscal_year):
        assert period_service.next_fiscal_year_bounds(company.id) == (date(2025, 1, 1), date(2025, 12, 31))


class TestInitializePeriods:
    def test_initialize_later(self, period_service, company, admin):
        fiscal_year = period_service.create_fiscal_year(
            company.id, date(2024, 4, 1), date(2025, 3, 31), FiscalYearType.FISCAL_MAR, admin,
            initialize_periods=False
        )
        assert period_service.get_monthly_periods(fiscal_year.id) == []

        periods = period_service.initialize_monthly_periods(fiscal_year.id, admin)
        assert len(periods) == 12
        assert periods[0].name == "April 2024"
        assert periods[-1].name == "Mars 2025"

    def test_initialize_twice_refused(self, period_service, fiscal_year, admin):
        """Perioder skapas aldrig dubbelt"""
        with pytest.raises(StateConflictError) as exc:
            period_service.initialize_monthly_periods(fiscal_year.id, admin)
        assert exc.value.precondition == "periods_already_initialized"
        assert len(period_service.get_monthly_periods(fiscal_year.id)) == 12

    def test_unknown_fiscal_year(self, period_service, admin):
        with pytest.raises(ValidationError) as exc:
            period_service.initialize_monthly_periods(999, admin)
        assert exc.value.precondition == "fiscal_year_not_found"


class TestResolvePeriod:
    def test_resolve_period_for_date(self, period_service, company, fiscal_year):
        period = period_service.resolve_period_for_date(company.id, date(2024, 3, 15))
        assert period.month == 3
        assert period.contains_date(date(2024, 3, 31))

    def test_no_period_for_date(self, period_service, company, fiscal_year):
        assert period_service.resolve_period_for_date(company.id, date(2023, 12, 31)) is None

    def test_partition_problems_reports_gap(self, fiscal_year):
        periods = [p for p in fiscal_year.monthly_periods if p.month != 6]
        problems = partition_problems(fiscal_year.start_date, fiscal_year.end_date, periods)
        assert any("Lucka" in p for p in problems)

    def test_verify_partition_raises(self, fiscal_year):
        periods = fiscal_year.monthly_periods[:11]
        with pytest.raises(IntegrityError) as exc:
            verify_partition(fiscal_year, periods)
        assert exc.value.precondition == "period_partition_invalid"


class TestOpenPeriods:
    def test_only_active_open_periods(self, period_service, lifecycle, company, fiscal_year, admin):
        """Bara aktiva och öppna månader i ett aktivt år tar emot verifikationer"""
        assert period_service.get_open_periods_for_entry(company.id) == []

        lifecycle.activate("fiscal_year", fiscal_year.id, admin)
        months = {p.month: p for p in fiscal_year.monthly_periods}
        for number in (1, 2, 3):
            lifecycle.activate("monthly", months[number].id, admin)
        lifecycle.close("monthly", months[2].id, admin)

        open_periods = period_service.get_open_periods_for_entry(company.id)
        assert [p.month for p in open_periods] == [1, 3]

    def test_inactive_year_hides_months(self, period_service, lifecycle, company, active_year, admin):
        lifecycle.deactivate("fiscal_year", active_year.id, admin)
        assert period_service.get_open_periods_for_entry(company.id) == []
