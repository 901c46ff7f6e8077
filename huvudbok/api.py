"""
Anropsyta för omgivande system (rapporter, kontoutdrag, periodadministration)

Funktionerna tar en databassession och returnerar vanliga dicts med
belopp som decimalsträngar, så att svaren kan serialiseras till JSON
utan precisionsförlust.
"""
import logging
from datetime import date
from typing import Iterable, Optional, Union

from sqlalchemy.orm import Session

from huvudbok.config import AccountType, PeriodAction, PeriodKind
from huvudbok.errors import LedgerError, ValidationError
from huvudbok.services.authorization import Actor
from huvudbok.services.ledger import GeneralLedgerService
from huvudbok.services.lifecycle import PeriodLifecycleService
from huvudbok.services.periods import PeriodService
from huvudbok.services.trial_balance import TrialBalanceService

logger = logging.getLogger(__name__)


def _parse_date(value: Union[date, str], field_name: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Ogiltigt datum för {field_name}: {value!r}", precondition="invalid_date")


def compute_trial_balance(
    db: Session,
    company_id: int,
    start_date: Union[date, str],
    end_date: Union[date, str],
    account_types: Optional[Iterable[Union[AccountType, str]]] = None
) -> dict:
    """Råbalans som {"accounts", "totals", "isBalanced"}"""
    start = _parse_date(start_date, "start_date")
    end = _parse_date(end_date, "end_date")

    trial_balance = TrialBalanceService(db).compute_trial_balance(
        company_id, start, end, account_types
    )
    return {
        "accounts": [a.to_dict() for a in trial_balance.accounts],
        "totals": trial_balance.totals.to_dict(),
        "isBalanced": trial_balance.is_balanced,
    }


def transition_period(
    db: Session,
    period_id: int,
    action: Union[PeriodAction, str],
    actor: Actor,
    reason: Optional[str] = None,
    kind: Union[PeriodKind, str] = PeriodKind.MONTHLY
) -> dict:
    """
    Utför en livscykelåtgärd och rapportera utfallet

    Domänfel returneras som {"success": False, "error", "precondition"}.
    """
    try:
        action = PeriodAction(action)
        kind = PeriodKind(kind)
    except ValueError as e:
        return {"success": False, "error": str(e), "precondition": "invalid_action"}

    try:
        period = PeriodLifecycleService(db).transition(kind, period_id, action, actor, reason)
    except LedgerError as e:
        logger.info(
            "Övergången %s nekades för period %s: %s", action.value, period_id, e.precondition,
            extra={"period_kind": kind.value, "period_id": period_id}
        )
        return {"success": False, **e.to_dict()}

    return {"success": True, "state": period.state.value}


def initialize_periods(db: Session, fiscal_year_id: int, actor: Actor) -> dict:
    """Generera månadsperioderna för ett räkenskapsår"""
    periods = PeriodService(db).initialize_monthly_periods(fiscal_year_id, actor)
    return {
        "periods": [
            {
                "id": p.id,
                "name": p.name,
                "year": p.year,
                "month": p.month,
                "start_date": p.start_date.isoformat(),
                "end_date": p.end_date.isoformat(),
                "is_active": p.is_active,
                "is_closed": p.is_closed,
            }
            for p in periods
        ]
    }


def period_state(db: Session, period_id: int, kind: Union[PeriodKind, str] = PeriodKind.MONTHLY) -> dict:
    lifecycle = PeriodLifecycleService(db)
    state = lifecycle.state_of(kind, period_id)
    return {"periodId": period_id, "kind": PeriodKind(kind).value, "state": state.value}


def account_ledger(
    db: Session,
    account_id: int,
    start_date: Union[date, str],
    end_date: Union[date, str]
) -> dict:
    """Kontoutdrag med löpande saldo"""
    start = _parse_date(start_date, "start_date")
    end = _parse_date(end_date, "end_date")
    return GeneralLedgerService(db).get_account_ledger(account_id, start, end).to_dict()
