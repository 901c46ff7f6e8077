"""
Periodernas livscykel - aktivering, inaktivering, stängning och återöppning

Tillstånd per period:

    öppen/inaktiv <-> öppen/aktiv -> stängd

En månadsperiod kan bara aktiveras när räkenskapsåret är aktivt och
öppet. Stängning är en oåterkallelig gräns i normalfallet: stängs ett
räkenskapsår stängs samtliga dess ännu öppna månadsperioder i samma
transaktion. Återöppning är en undantagsåtgärd för administratörer och
kräver alltid en motivering, som sparas tillsammans med aktör och
tidpunkt.

Varje avvisad övergång anger exakt vilket villkor som inte uppfylldes.
"""
import logging
from datetime import date, datetime
from typing import Optional, Union
from sqlalchemy.orm import Session

from huvudbok.config import PeriodKind, PeriodAction, PeriodState, EntryStatus
from huvudbok.errors import ValidationError, StateConflictError
from huvudbok.models import FiscalYear, MonthlyPeriod, JournalEntry, PeriodHistory
from huvudbok.services.authorization import Actor, require_actor, require_admin
from huvudbok.services.periods import PeriodService
from huvudbok.services.storage import atomic

logger = logging.getLogger(__name__)

Period = Union[FiscalYear, MonthlyPeriod]


class PeriodLifecycleService:
    """
    Tillståndsmaskin för räkenskapsår och månadsperioder

    Alla skrivningar sker i en enda transaktion per övergång. Om något
    steg misslyckas rullas allt tillbaka och perioden behåller sitt
    tidigare tillstånd.
    """

    def __init__(self, db: Session):
        self.db = db
        self.period_service = PeriodService(db)

    # === UPPSLAG ===

    def get_period(self, kind: PeriodKind, period_id: int) -> Period:
        """Hämta period, kasta ValidationError om den inte finns"""
        try:
            kind = PeriodKind(kind)
        except ValueError:
            raise ValidationError(f"Okänd periodtyp: {kind}", precondition="invalid_period_kind") from None
        if kind == PeriodKind.FISCAL_YEAR:
            period = self.period_service.get_fiscal_year(period_id)
        else:
            period = self.period_service.get_monthly_period(period_id)

        if period is None:
            raise ValidationError(
                f"Perioden {period_id} finns inte", precondition="period_not_found"
            )
        return period

    def state_of(self, kind: PeriodKind, period_id: int) -> PeriodState:
        return self.get_period(kind, period_id).state

    def get_history(self, kind: PeriodKind, period_id: int) -> list[PeriodHistory]:
        """Revisionsspår för en period, äldst först"""
        return (
            self.db.query(PeriodHistory)
            .filter(
                PeriodHistory.period_kind == PeriodKind(kind),
                PeriodHistory.period_id == period_id
            )
            .order_by(PeriodHistory.id)
            .all()
        )

    # === ÖVERGÅNGAR ===

    def transition(
        self,
        kind: PeriodKind,
        period_id: int,
        action: PeriodAction,
        actor: Actor,
        reason: Optional[str] = None
    ) -> Period:
        """Utför en livscykelåtgärd på en period"""
        action = PeriodAction(action)
        if action == PeriodAction.ACTIVATE:
            return self.activate(kind, period_id, actor)
        if action == PeriodAction.DEACTIVATE:
            return self.deactivate(kind, period_id, actor)
        if action == PeriodAction.CLOSE:
            return self.close(kind, period_id, actor)
        return self.reopen(kind, period_id, actor, reason)

    def activate(self, kind: PeriodKind, period_id: int, actor: Actor) -> Period:
        """
        Aktivera en period

        Stängda perioder kan inte aktiveras. En månadsperiod kräver att
        räkenskapsåret är aktivt och inte stängt. Att aktivera en redan
        aktiv period gör ingenting.
        """
        require_actor(actor)
        kind = PeriodKind(kind)
        period = self.get_period(kind, period_id)

        if period.is_closed:
            raise StateConflictError(
                f"Perioden {period.name} är stängd och kan inte aktiveras",
                precondition="period_closed"
            )

        if kind == PeriodKind.MONTHLY:
            fiscal_year = period.fiscal_year
            if fiscal_year.is_closed:
                raise StateConflictError(
                    f"Räkenskapsåret {fiscal_year.name} är stängt",
                    precondition="parent_fiscal_year_closed"
                )
            if not fiscal_year.is_active:
                raise StateConflictError(
                    f"Räkenskapsåret {fiscal_year.name} är inaktivt",
                    precondition="parent_fiscal_year_inactive"
                )

        if period.is_active:
            return period

        with atomic(self.db):
            period.is_active = True
            self._record(kind, period, PeriodAction.ACTIVATE, actor)

        self._log(kind, period, PeriodAction.ACTIVATE, actor)
        return period

    def deactivate(self, kind: PeriodKind, period_id: int, actor: Actor) -> Period:
        """
        Inaktivera en period

        Inaktiveras ett räkenskapsår inaktiveras även dess öppna
        månadsperioder. Det nekas så länge det finns verifikationer
        som väntar på godkännande.
        """
        require_actor(actor)
        kind = PeriodKind(kind)
        period = self.get_period(kind, period_id)

        if period.is_closed:
            raise StateConflictError(
                f"Perioden {period.name} är stängd och kan inte ändras",
                precondition="period_closed"
            )

        if not period.is_active:
            return period

        cascade = []
        if kind == PeriodKind.FISCAL_YEAR:
            pending = self._count_pending_entries(period)
            if pending:
                raise StateConflictError(
                    f"Räkenskapsåret {period.name} har {pending} verifikationer som väntar på godkännande",
                    precondition="pending_entries"
                )
            cascade = [p for p in period.monthly_periods if p.is_active and not p.is_closed]

        with atomic(self.db):
            period.is_active = False
            self._record(kind, period, PeriodAction.DEACTIVATE, actor)
            for monthly in cascade:
                monthly.is_active = False
                self._record(PeriodKind.MONTHLY, monthly, PeriodAction.DEACTIVATE, actor)

        self._log(kind, period, PeriodAction.DEACTIVATE, actor, cascaded=len(cascade))
        return period

    def close(self, kind: PeriodKind, period_id: int, actor: Actor) -> Period:
        """
        Stäng en period

        Kräver administratör. Att stänga en redan stängd period är ett
        fel. Stängs ett räkenskapsår stängs samtliga ännu öppna
        månadsperioder; redan stängda lämnas orörda.
        """
        require_admin(actor, PeriodAction.CLOSE.value)
        kind = PeriodKind(kind)
        period = self.get_period(kind, period_id)

        if period.is_closed:
            raise StateConflictError(
                f"Perioden {period.name} är redan stängd",
                precondition="already_closed"
            )

        cascade = []
        if kind == PeriodKind.FISCAL_YEAR:
            if not period.monthly_periods:
                raise StateConflictError(
                    f"Räkenskapsåret {period.name} saknar månadsperioder",
                    precondition="no_monthly_periods"
                )
            cascade = [p for p in period.monthly_periods if not p.is_closed]

        pending = self._count_pending_entries(period)
        if pending:
            raise StateConflictError(
                f"Perioden {period.name} har {pending} verifikationer som väntar på godkännande",
                precondition="pending_entries"
            )

        now = datetime.utcnow()
        with atomic(self.db):
            for monthly in cascade:
                self._mark_closed(monthly, actor, now)
                self._record(PeriodKind.MONTHLY, monthly, PeriodAction.CLOSE, actor)
            self._mark_closed(period, actor, now)
            self._record(kind, period, PeriodAction.CLOSE, actor)

        self._log(kind, period, PeriodAction.CLOSE, actor, cascaded=len(cascade))
        return period

    def reopen(
        self,
        kind: PeriodKind,
        period_id: int,
        actor: Actor,
        reason: Optional[str]
    ) -> Period:
        """
        Återöppna en stängd period (undantagsåtgärd)

        Kräver administratör och en motivering. Motiveringen sparas
        atomiskt med tillståndsändringen. Den återöppnade perioden blir
        öppen men inaktiv. En månadsperiod kan inte återöppnas om
        räkenskapsåret är stängt; återöppnas ett räkenskapsår förblir
        dess månadsperioder stängda tills de återöppnas var för sig.
        """
        require_admin(actor, PeriodAction.REOPEN.value)
        kind = PeriodKind(kind)

        if reason is None or not reason.strip():
            raise ValidationError(
                "En motivering krävs för att återöppna en period",
                precondition="reopen_reason_required"
            )

        period = self.get_period(kind, period_id)

        if not period.is_closed:
            raise StateConflictError(
                f"Perioden {period.name} är inte stängd",
                precondition="not_closed"
            )

        if kind == PeriodKind.MONTHLY and period.fiscal_year.is_closed:
            raise StateConflictError(
                f"Räkenskapsåret {period.fiscal_year.name} är stängt",
                precondition="parent_fiscal_year_closed"
            )

        with atomic(self.db):
            period.is_closed = False
            period.is_active = False
            period.reopened_at = datetime.utcnow()
            period.reopened_by = actor.id
            period.reopen_reason = reason.strip()
            self._record(kind, period, PeriodAction.REOPEN, actor, reason.strip())

        logger.warning(
            "Perioden %s återöppnad av %s: %s", period.name, actor.id, reason.strip(),
            extra={"period_kind": kind.value, "period_id": period.id}
        )
        return period

    # === BOKFÖRINGSSPÄRR ===

    def assert_can_post(self, company_id: int, entry_date: date) -> MonthlyPeriod:
        """
        Kontrollera att verifikationer får bokföras på datumet

        Returnerar månadsperioden som tar emot posteringen.
        """
        period = self.period_service.resolve_period_for_date(company_id, entry_date)
        if period is None:
            raise ValidationError(
                f"Det finns ingen period för datumet {entry_date}",
                precondition="no_period_for_date"
            )

        fiscal_year = period.fiscal_year
        if period.is_closed:
            raise StateConflictError(
                f"Perioden {period.name} är stängd",
                precondition="period_closed"
            )
        if fiscal_year.is_closed:
            raise StateConflictError(
                f"Räkenskapsåret {fiscal_year.name} är stängt",
                precondition="fiscal_year_closed"
            )
        if not fiscal_year.is_active:
            raise StateConflictError(
                f"Räkenskapsåret {fiscal_year.name} är inaktivt",
                precondition="fiscal_year_inactive"
            )
        if not period.is_active:
            raise StateConflictError(
                f"Perioden {period.name} är inaktiv",
                precondition="period_inactive"
            )
        return period

    # === HJÄLPMETODER ===

    def _mark_closed(self, period: Period, actor: Actor, now: datetime) -> None:
        period.is_closed = True
        period.is_active = False
        if period.was_reopened:
            period.reclosed_at = now
            period.reclosed_by = actor.id
        else:
            period.closed_at = now
            period.closed_by = actor.id

    def _count_pending_entries(self, period: Period) -> int:
        """Verifikationer som varken är godkända eller makulerade"""
        if isinstance(period, FiscalYear):
            period_ids = [p.id for p in period.monthly_periods]
        else:
            period_ids = [period.id]
        if not period_ids:
            return 0
        return (
            self.db.query(JournalEntry.id)
            .filter(
                JournalEntry.monthly_period_id.in_(period_ids),
                JournalEntry.status == EntryStatus.PENDING
            )
            .count()
        )

    def _record(
        self,
        kind: PeriodKind,
        period: Period,
        action: PeriodAction,
        actor: Actor,
        reason: Optional[str] = None
    ) -> None:
        self.db.add(PeriodHistory(
            period_kind=kind,
            period_id=period.id,
            period_name=period.name,
            action=action,
            actor_id=actor.id,
            reason=reason,
        ))

    def _log(self, kind, period, action, actor, cascaded: int = 0) -> None:
        logger.info(
            "Perioden %s: %s av %s", period.name, action.value, actor.id,
            extra={
                "period_kind": kind.value,
                "period_id": period.id,
                "cascaded": cascaded,
            }
        )
