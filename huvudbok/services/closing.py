"""
Bokslutsrutiner - årets resultat och nollställning av resultatkonton

Hanterar:
- Beräkning av periodens resultat
- Bokslutsverifikation som för över resultatkontonas saldon till eget kapital
- Validering före stängning av räkenskapsår
- Öppningsverifikation med ingående balanser för nästa år
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session

from huvudbok.config import AccountType, AccountNature, EntryStatus
from huvudbok.errors import ValidationError, StateConflictError
from huvudbok.models import Account, FiscalYear, JournalEntry, MonthlyPeriod
from huvudbok.services.authorization import Actor, require_admin
from huvudbok.services.journal import JournalService
from huvudbok.services.trial_balance import TrialBalanceService, ZERO, split_by_nature
from huvudbok.services.verification import BalanceVerifier

logger = logging.getLogger(__name__)

RESULT_ACCOUNT_TYPES = [AccountType.INCOME, AccountType.EXPENSE, AccountType.COST]
BALANCE_ACCOUNT_TYPES = [AccountType.ASSET, AccountType.LIABILITY, AccountType.EQUITY]


class ClosingService:
    """
    Tjänst för bokslutsrutiner

    Årsbokslut:
    - Kontrollera att råbalansen balanserar
    - Inga verifikationer får vänta på godkännande
    - Nollställ intäkts- och kostnadskonton mot eget kapital
    - Stäng räkenskapsåret (via periodernas livscykel)
    """

    def __init__(self, db: Session):
        self.db = db
        self.trial_balance_service = TrialBalanceService(db)
        self.journal_service = JournalService(db)
        self.verifier = BalanceVerifier()

    def _get_fiscal_year(self, fiscal_year_id: int) -> FiscalYear:
        fiscal_year = self.db.query(FiscalYear).filter(FiscalYear.id == fiscal_year_id).first()
        if fiscal_year is None:
            raise ValidationError(
                f"Räkenskapsår {fiscal_year_id} finns inte", precondition="fiscal_year_not_found"
            )
        return fiscal_year

    def calculate_period_result(
        self,
        company_id: int,
        start_date: date,
        end_date: date
    ) -> Decimal:
        """
        Beräkna periodens resultat (intäkter - kostnader)
        """
        trial_balance = self.trial_balance_service.compute_trial_balance(
            company_id, start_date, end_date, RESULT_ACCOUNT_TYPES
        )

        revenue = ZERO
        expenses = ZERO
        for balance in trial_balance.leaves():
            if balance.account_type == AccountType.INCOME:
                revenue += balance.net_movement
            else:
                expenses += balance.net_movement

        return revenue - expenses

    def generate_closing_entry(
        self,
        fiscal_year_id: int,
        equity_account_id: int,
        actor: Actor
    ) -> Optional[JournalEntry]:
        """
        Skapa bokslutsverifikation på räkenskapsårets sista dag

        Varje resultatkonto med saldo nollställs och nettot förs till
        angivet eget kapital-konto. Vinst ger kredit på eget kapital,
        förlust ger debet.

        Returnerar None om inga resultatkonton har saldo.
        """
        require_admin(actor, "generate_closing_entry")
        fiscal_year = self._get_fiscal_year(fiscal_year_id)
        company_id = fiscal_year.company_id

        equity_account = self.db.query(Account).filter(Account.id == equity_account_id).first()
        if (
            equity_account is None
            or equity_account.company_id != company_id
            or equity_account.account_type != AccountType.EQUITY
        ):
            raise ValidationError(
                "Motkontot måste vara ett eget kapital-konto i företaget",
                precondition="equity_account_invalid"
            )

        existing = (
            self.db.query(JournalEntry.id)
            .join(MonthlyPeriod, JournalEntry.monthly_period_id == MonthlyPeriod.id)
            .filter(
                MonthlyPeriod.fiscal_year_id == fiscal_year.id,
                JournalEntry.is_closing_entry.is_(True),
                JournalEntry.status != EntryStatus.VOIDED
            )
            .first()
        )
        if existing is not None:
            raise StateConflictError(
                f"Räkenskapsåret {fiscal_year.name} har redan en bokslutsverifikation",
                precondition="closing_entry_exists"
            )

        trial_balance = self.trial_balance_service.compute_trial_balance(
            company_id, fiscal_year.start_date, fiscal_year.end_date, RESULT_ACCOUNT_TYPES
        )

        lines = []
        total_debit = ZERO
        total_credit = ZERO
        for balance in trial_balance.leaves():
            # Saldot inom året; ingående saldo hör till tidigare år
            amount = balance.net_movement
            if amount == 0:
                continue
            debit_side = (balance.nature == AccountNature.DEBIT) != (amount > 0)
            if debit_side:
                lines.append({"account_id": balance.account_id, "debit": abs(amount), "credit": ZERO})
                total_debit += abs(amount)
            else:
                lines.append({"account_id": balance.account_id, "debit": ZERO, "credit": abs(amount)})
                total_credit += abs(amount)

        if not lines:
            return None

        difference = total_debit - total_credit
        if difference > 0:
            lines.append({"account_id": equity_account.id, "debit": ZERO, "credit": difference})
        elif difference < 0:
            lines.append({"account_id": equity_account.id, "debit": -difference, "credit": ZERO})

        entry = self.journal_service.post_entry(
            company_id,
            fiscal_year.end_date,
            f"Bokslut {fiscal_year.name}",
            lines,
            actor,
            is_closing_entry=True
        )

        logger.info(
            "Bokslutsverifikation %s skapad för %s, resultat %s",
            entry.entry_number, fiscal_year.name, difference,
            extra={"fiscal_year_id": fiscal_year.id, "actor_id": actor.id}
        )
        return entry

    def generate_opening_entry(
        self,
        previous_fiscal_year_id: int,
        new_fiscal_year_id: int,
        actor: Actor
    ) -> Optional[JournalEntry]:
        """
        Skapa öppningsverifikation med ingående balanser

        Balanskontonas utgående saldon från föregående räkenskapsår förs
        över till det nya årets första dag. Föregående år måste vara
        stängt och bokslutsverifikationen bokförd, annars balanserar
        inte överföringen.

        Returnerar None om inga balanskonton har saldo.
        """
        require_admin(actor, "generate_opening_entry")
        previous = self._get_fiscal_year(previous_fiscal_year_id)
        new = self._get_fiscal_year(new_fiscal_year_id)

        if previous.company_id != new.company_id or new.start_date != previous.end_date + timedelta(days=1):
            raise ValidationError(
                f"{new.name} följer inte direkt efter {previous.name}",
                precondition="fiscal_years_not_consecutive"
            )

        if not previous.is_closed:
            raise StateConflictError(
                f"Räkenskapsåret {previous.name} är inte stängt",
                precondition="previous_fiscal_year_open"
            )

        existing = (
            self.db.query(JournalEntry.id)
            .join(MonthlyPeriod, JournalEntry.monthly_period_id == MonthlyPeriod.id)
            .filter(
                MonthlyPeriod.fiscal_year_id == new.id,
                JournalEntry.is_opening_entry.is_(True),
                JournalEntry.status != EntryStatus.VOIDED
            )
            .first()
        )
        if existing is not None:
            raise StateConflictError(
                f"Räkenskapsåret {new.name} har redan en öppningsverifikation",
                precondition="opening_entry_exists"
            )

        trial_balance = self.trial_balance_service.compute_trial_balance(
            previous.company_id, previous.start_date, previous.end_date, BALANCE_ACCOUNT_TYPES
        )

        lines = []
        total_debit = ZERO
        total_credit = ZERO
        for balance in trial_balance.leaves():
            amount = balance.closing_balance
            if amount == 0:
                continue
            debit, credit = split_by_nature(balance.nature, amount)
            lines.append({"account_id": balance.account_id, "debit": debit, "credit": credit})
            total_debit += debit
            total_credit += credit

        if not lines:
            return None

        if abs(total_debit - total_credit) > self.verifier.tolerance:
            raise StateConflictError(
                f"Balanskontona balanserar inte (differens {total_debit - total_credit}); "
                f"saknas bokslutsverifikation för {previous.name}?",
                precondition="opening_balances_unbalanced"
            )

        entry = self.journal_service.post_entry(
            new.company_id,
            new.start_date,
            f"Ingående balans {new.name}",
            lines,
            actor,
            is_opening_entry=True
        )

        logger.info(
            "Öppningsverifikation %s skapad för %s (%d konton)",
            entry.entry_number, new.name, len(lines),
            extra={"fiscal_year_id": new.id, "actor_id": actor.id}
        )
        return entry

    def validate_closing(self, company_id: int, fiscal_year_id: int) -> dict:
        """
        Validera bokslut före stängning

        Kontrollerar:
        - Råbalans balanserar
        - Inga verifikationer väntar på godkännande
        - Inga godkända verifikationer med obalans
        """
        fiscal_year = self._get_fiscal_year(fiscal_year_id)
        errors = []
        warnings = []

        if fiscal_year.company_id != company_id:
            raise ValidationError(
                "Räkenskapsåret tillhör ett annat företag", precondition="fiscal_year_not_found"
            )

        if not fiscal_year.monthly_periods:
            errors.append("Räkenskapsåret saknar månadsperioder")

        trial_balance = self.trial_balance_service.compute_trial_balance(
            company_id, fiscal_year.start_date, fiscal_year.end_date
        )
        check = self.verifier.verify(trial_balance)
        if not check.is_balanced:
            errors.append(f"Råbalansen balanserar inte (differens {check.difference})")

        unbalanced = self.verifier.verify_entries(
            self.db, company_id, fiscal_year.start_date, fiscal_year.end_date
        )
        if unbalanced:
            errors.append(f"{len(unbalanced)} godkända verifikationer balanserar inte")

        entries = self.journal_service.get_entries(
            company_id, fiscal_year.start_date, fiscal_year.end_date
        )
        pending = [e for e in entries if e.status == EntryStatus.PENDING]
        if pending:
            errors.append(f"{len(pending)} verifikationer väntar på godkännande")

        if not entries:
            warnings.append("Inga verifikationer finns för räkenskapsåret")
        elif not any(e.is_closing_entry and e.status == EntryStatus.APPROVED for e in entries):
            warnings.append("Ingen bokslutsverifikation har skapats")

        return {
            'is_valid': len(errors) == 0,
            'errors': errors,
            'warnings': warnings,
            'totals': check.to_dict(),
        }
