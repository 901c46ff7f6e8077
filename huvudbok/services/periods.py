"""
Periodtjänst - Räkenskapsår och månadsperioder

Räkenskapsåret delas alltid in i tolv sammanhängande månadsperioder.
Vilken månad året börjar i styrs av företagets räkenskapsårstyp, som
låses när det första räkenskapsåret skapas.
"""
import logging
from datetime import date, timedelta
from typing import Optional
from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from huvudbok.config import FiscalYearType, MONTH_NAMES, PERIODS_PER_FISCAL_YEAR
from huvudbok.errors import ValidationError, StateConflictError, IntegrityError
from huvudbok.models import Company, FiscalYear, MonthlyPeriod
from huvudbok.services.authorization import Actor, require_actor, require_admin
from huvudbok.services.storage import atomic, retry_read

logger = logging.getLogger(__name__)


def fiscal_year_bounds(fiscal_year_type: FiscalYearType, start_year: int) -> tuple[date, date]:
    """Start- och slutdatum för ett räkenskapsår som börjar år `start_year`"""
    start = date(start_year, FiscalYearType(fiscal_year_type).start_month, 1)
    end = start + relativedelta(months=PERIODS_PER_FISCAL_YEAR) - timedelta(days=1)
    return start, end


def fiscal_year_name(fiscal_year_type: FiscalYearType, start_date: date) -> str:
    """FY2024 för kalenderår, FY2024/25 för brutet räkenskapsår"""
    if FiscalYearType(fiscal_year_type) == FiscalYearType.CALENDAR:
        return f"FY{start_date.year}"
    return f"FY{start_date.year}/{(start_date.year + 1) % 100:02d}"


def build_monthly_periods(fiscal_year: FiscalYear) -> list[MonthlyPeriod]:
    """Dela räkenskapsåret i tolv månadsperioder (ej sparade)"""
    periods = []
    for offset in range(PERIODS_PER_FISCAL_YEAR):
        start = fiscal_year.start_date + relativedelta(months=offset)
        end = start + relativedelta(months=1) - timedelta(days=1)
        periods.append(MonthlyPeriod(
            fiscal_year_id=fiscal_year.id,
            year=start.year,
            month=start.month,
            name=f"{MONTH_NAMES[start.month]} {start.year}",
            start_date=start,
            end_date=end,
            is_active=False,
            is_closed=False,
        ))
    return periods


def partition_problems(start_date: date, end_date: date, periods) -> list[str]:
    """
    Kontrollera att perioderna exakt täcker [start_date, end_date]

    Returnerar en tom lista om indelningen är korrekt.
    """
    problems = []
    ordered = sorted(periods, key=lambda p: p.start_date)

    if len(ordered) != PERIODS_PER_FISCAL_YEAR:
        problems.append(f"Förväntade {PERIODS_PER_FISCAL_YEAR} perioder, fick {len(ordered)}")
    if not ordered:
        return problems

    if ordered[0].start_date != start_date:
        problems.append(f"Första perioden börjar {ordered[0].start_date}, inte {start_date}")
    if ordered[-1].end_date != end_date:
        problems.append(f"Sista perioden slutar {ordered[-1].end_date}, inte {end_date}")

    for period in ordered:
        if period.end_date < period.start_date:
            problems.append(f"Perioden {period.start_date} slutar före start")

    for previous, current in zip(ordered, ordered[1:]):
        expected = previous.end_date + timedelta(days=1)
        if current.start_date > expected:
            problems.append(f"Lucka mellan {previous.end_date} och {current.start_date}")
        elif current.start_date < expected:
            problems.append(f"Överlapp mellan {previous.end_date} och {current.start_date}")

    return problems


def verify_partition(fiscal_year: FiscalYear, periods) -> None:
    """Kasta IntegrityError om perioderna inte exakt täcker räkenskapsåret"""
    problems = partition_problems(fiscal_year.start_date, fiscal_year.end_date, periods)
    if problems:
        logger.error(
            "Felaktig periodindelning för %s: %s", fiscal_year.name, "; ".join(problems),
            extra={"fiscal_year_id": fiscal_year.id}
        )
        raise IntegrityError(
            "Månadsperioderna täcker inte räkenskapsåret: " + "; ".join(problems),
            precondition="period_partition_invalid"
        )


class PeriodService:
    """
    Tjänst för räkenskapsår och månadsperioder

    Hanterar:
    - Skapande av räkenskapsår (utan överlapp, enhetlig typ)
    - Generering av månadsperioder
    - Uppslag av period för ett givet datum
    """

    def __init__(self, db: Session):
        self.db = db

    # === RÄKENSKAPSÅR ===

    def get_fiscal_year(self, fiscal_year_id: int) -> Optional[FiscalYear]:
        return self.db.query(FiscalYear).filter(FiscalYear.id == fiscal_year_id).first()

    def get_fiscal_years(self, company_id: int) -> list[FiscalYear]:
        """Hämta alla räkenskapsår för ett företag"""
        return (
            self.db.query(FiscalYear)
            .filter(FiscalYear.company_id == company_id)
            .order_by(FiscalYear.start_date.desc())
            .all()
        )

    def next_fiscal_year_bounds(
        self,
        company_id: int,
        fiscal_year_type: Optional[FiscalYearType] = None,
        today: Optional[date] = None
    ) -> tuple[date, date]:
        """
        Föreslå nästa räkenskapsår

        Dagen efter det senaste räkenskapsårets slut, annars det år
        som `today` ligger i.
        """
        company = self.db.query(Company).filter(Company.id == company_id).first()
        fy_type = FiscalYearType(
            (company.fiscal_year_type if company else None)
            or fiscal_year_type
            or FiscalYearType.CALENDAR
        )

        latest = (
            self.db.query(FiscalYear)
            .filter(FiscalYear.company_id == company_id)
            .order_by(FiscalYear.end_date.desc())
            .first()
        )
        if latest is not None:
            return fiscal_year_bounds(fy_type, (latest.end_date + timedelta(days=1)).year)

        return fiscal_year_bounds(fy_type, (today or date.today()).year)

    def create_fiscal_year(
        self,
        company_id: int,
        start_date: date,
        end_date: date,
        fiscal_year_type: Optional[FiscalYearType],
        actor: Actor,
        name: Optional[str] = None,
        initialize_periods: bool = True
    ) -> FiscalYear:
        """
        Skapa ett nytt räkenskapsår

        Kastar ValidationError om:
        - datumintervallet överlappar ett befintligt räkenskapsår
        - typen skiljer sig från företagets låsta typ
        - intervallet inte är tolv hela månader från typens startmånad
        """
        require_admin(actor, "create_fiscal_year")

        company = self.db.query(Company).filter(Company.id == company_id).first()
        if company is None:
            raise ValidationError("Företaget finns inte", precondition="company_not_found")

        if fiscal_year_type is None:
            fiscal_year_type = company.fiscal_year_type or FiscalYearType.CALENDAR
        fy_type = FiscalYearType(fiscal_year_type)

        if company.fiscal_year_type is not None and company.fiscal_year_type != fy_type:
            raise ValidationError(
                f"Företaget använder räkenskapsårstypen {company.fiscal_year_type.value}",
                precondition="fiscal_year_type_mismatch"
            )

        if start_date >= end_date:
            raise ValidationError(
                "Startdatum måste vara före slutdatum", precondition="invalid_date_range"
            )

        expected_start, expected_end = fiscal_year_bounds(fy_type, start_date.year)
        if start_date != expected_start:
            raise ValidationError(
                f"Räkenskapsåret måste börja den {expected_start}",
                precondition="fiscal_year_start_mismatch"
            )
        if end_date != expected_end:
            raise ValidationError(
                f"Räkenskapsåret måste sluta den {expected_end}",
                precondition="fiscal_year_length_mismatch"
            )

        overlapping = (
            self.db.query(FiscalYear)
            .filter(
                FiscalYear.company_id == company_id,
                FiscalYear.start_date <= end_date,
                FiscalYear.end_date >= start_date
            )
            .first()
        )
        if overlapping is not None:
            raise ValidationError(
                f"Datumintervallet överlappar räkenskapsåret {overlapping.name}",
                precondition="fiscal_year_overlap"
            )

        fiscal_year = FiscalYear(
            company_id=company_id,
            name=name or fiscal_year_name(fy_type, start_date),
            start_date=start_date,
            end_date=end_date,
            fiscal_year_type=fy_type,
            is_active=False,
            is_closed=False,
            created_by=actor.id,
        )

        with atomic(self.db):
            if company.fiscal_year_type is None:
                company.fiscal_year_type = fy_type
            self.db.add(fiscal_year)
            self.db.flush()  # För att få fiscal_year.id
            if initialize_periods:
                self._add_monthly_periods(fiscal_year)

        self.db.refresh(fiscal_year)
        logger.info(
            "Räkenskapsår %s skapat (%s - %s)",
            fiscal_year.name, start_date, end_date,
            extra={"fiscal_year_id": fiscal_year.id, "actor_id": actor.id}
        )
        return fiscal_year

    # === MÅNADSPERIODER ===

    def initialize_monthly_periods(self, fiscal_year_id: int, actor: Actor) -> list[MonthlyPeriod]:
        """
        Generera månadsperioder för ett räkenskapsår

        Kastar StateConflictError om perioder redan finns.
        """
        require_actor(actor)

        fiscal_year = self.get_fiscal_year(fiscal_year_id)
        if fiscal_year is None:
            raise ValidationError("Räkenskapsåret finns inte", precondition="fiscal_year_not_found")

        existing = (
            self.db.query(MonthlyPeriod.id)
            .filter(MonthlyPeriod.fiscal_year_id == fiscal_year_id)
            .count()
        )
        if existing:
            raise StateConflictError(
                f"Räkenskapsåret {fiscal_year.name} har redan {existing} månadsperioder",
                precondition="periods_already_initialized"
            )

        with atomic(self.db):
            periods = self._add_monthly_periods(fiscal_year)

        return periods

    def _add_monthly_periods(self, fiscal_year: FiscalYear) -> list[MonthlyPeriod]:
        periods = build_monthly_periods(fiscal_year)
        verify_partition(fiscal_year, periods)

        for period in periods:
            self.db.add(period)

        logger.info(
            "Skapade %d månadsperioder för %s", len(periods), fiscal_year.name,
            extra={"fiscal_year_id": fiscal_year.id}
        )
        return periods

    def get_monthly_period(self, period_id: int) -> Optional[MonthlyPeriod]:
        return self.db.query(MonthlyPeriod).filter(MonthlyPeriod.id == period_id).first()

    def get_monthly_periods(self, fiscal_year_id: int) -> list[MonthlyPeriod]:
        return (
            self.db.query(MonthlyPeriod)
            .filter(MonthlyPeriod.fiscal_year_id == fiscal_year_id)
            .order_by(MonthlyPeriod.start_date)
            .all()
        )

    # === UPPSLAG ===

    def resolve_period_for_date(self, company_id: int, check_date: date) -> Optional[MonthlyPeriod]:
        """
        Hämta månadsperioden som innehåller datumet

        Beräknas vid varje anrop; ingen "aktuell period" sparas.
        """
        def query():
            return (
                self.db.query(MonthlyPeriod)
                .join(FiscalYear)
                .filter(
                    FiscalYear.company_id == company_id,
                    MonthlyPeriod.start_date <= check_date,
                    MonthlyPeriod.end_date >= check_date
                )
                .first()
            )
        return retry_read(self.db, query)

    def get_open_periods_for_entry(self, company_id: int) -> list[MonthlyPeriod]:
        """Perioder som just nu tar emot verifikationer"""
        return (
            self.db.query(MonthlyPeriod)
            .join(FiscalYear)
            .filter(
                FiscalYear.company_id == company_id,
                FiscalYear.is_active.is_(True),
                FiscalYear.is_closed.is_(False),
                MonthlyPeriod.is_active.is_(True),
                MonthlyPeriod.is_closed.is_(False)
            )
            .order_by(MonthlyPeriod.start_date)
            .all()
        )
