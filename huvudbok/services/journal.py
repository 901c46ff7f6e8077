"""
Verifikationstjänst - registrering, godkännande och makulering

Varje verifikation måste balansera (debet = kredit) och får bara
registreras eller godkännas i en öppen och aktiv period.
"""
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from huvudbok.config import EntryStatus, MONEY_QUANTUM
from huvudbok.errors import ValidationError, StateConflictError, IntegrityError
from huvudbok.models import Account, JournalEntry, JournalEntryItem
from huvudbok.services.authorization import Actor, require_actor
from huvudbok.services.lifecycle import PeriodLifecycleService
from huvudbok.services.storage import atomic

logger = logging.getLogger(__name__)


def to_amount(value) -> Decimal:
    """Tolka ett belopp som Decimal (aldrig via float)"""
    if value is None or value == "":
        return Decimal(0)
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"Ogiltigt belopp: {value!r}", precondition="invalid_amount")
    if not amount.is_finite():
        raise ValidationError(f"Ogiltigt belopp: {value!r}", precondition="invalid_amount")
    if amount != amount.quantize(MONEY_QUANTUM):
        raise ValidationError(
            f"Beloppet {value} har fler än två decimaler", precondition="invalid_amount_precision"
        )
    return amount


class JournalService:
    """
    Tjänst för verifikationer

    Hanterar:
    - Registrering av verifikationer med konteringsrader
    - Godkännande (endast i öppna, aktiva perioder)
    - Makulering
    """

    def __init__(self, db: Session):
        self.db = db
        self.lifecycle = PeriodLifecycleService(db)

    def get_entry(self, entry_id: int) -> Optional[JournalEntry]:
        return self.db.query(JournalEntry).filter(JournalEntry.id == entry_id).first()

    def get_next_entry_number(self, company_id: int) -> int:
        """Hämta nästa verifikationsnummer"""
        max_number = (
            self.db.query(func.max(JournalEntry.entry_number))
            .filter(JournalEntry.company_id == company_id)
            .scalar()
        )
        return (max_number or 0) + 1

    def create_entry(
        self,
        company_id: int,
        entry_date: date,
        description: str,
        lines: list[dict],
        actor: Actor,
        is_closing_entry: bool = False,
        is_opening_entry: bool = False
    ) -> JournalEntry:
        """
        Registrera en ny verifikation (väntar på godkännande)

        lines: lista med dicts: {"account_id": int, "debit": Decimal, "credit": Decimal}

        Kastar ValidationError om verifikationen inte balanserar och
        StateConflictError om perioden inte tar emot verifikationer.
        """
        require_actor(actor)

        parsed = []
        for line in lines:
            debit = to_amount(line.get("debit"))
            credit = to_amount(line.get("credit"))
            if debit < 0 or credit < 0:
                raise ValidationError(
                    "Debet och kredit får inte vara negativa", precondition="negative_amount"
                )
            parsed.append((line["account_id"], debit, credit, line.get("description")))

        # Validera att debet = kredit
        total_debit = sum((p[1] for p in parsed), Decimal(0))
        total_credit = sum((p[2] for p in parsed), Decimal(0))

        if total_debit != total_credit:
            raise ValidationError(
                f"Verifikationen balanserar inte: debet={total_debit}, kredit={total_credit}",
                precondition="unbalanced_entry"
            )

        if total_debit == 0:
            raise ValidationError("Verifikationen har inga belopp", precondition="empty_entry")

        self._validate_accounts(company_id, {p[0] for p in parsed})

        period = self.lifecycle.assert_can_post(company_id, entry_date)

        entry = JournalEntry(
            company_id=company_id,
            monthly_period_id=period.id,
            entry_number=self.get_next_entry_number(company_id),
            date=entry_date,
            description=description,
            status=EntryStatus.PENDING,
            is_approved=False,
            is_balanced=True,
            total_debit=total_debit,
            total_credit=total_credit,
            is_closing_entry=is_closing_entry,
            is_opening_entry=is_opening_entry,
            created_by=actor.id,
        )

        with atomic(self.db):
            self.db.add(entry)
            self.db.flush()  # För att få entry.id
            for account_id, debit, credit, line_description in parsed:
                self.db.add(JournalEntryItem(
                    entry_id=entry.id,
                    account_id=account_id,
                    debit=debit,
                    credit=credit,
                    description=line_description,
                ))

        self.db.refresh(entry)
        return entry

    def _validate_accounts(self, company_id: int, account_ids: set) -> None:
        accounts = {
            a.id: a
            for a in self.db.query(Account).filter(Account.id.in_(account_ids)).all()
        }
        for account_id in account_ids:
            account = accounts.get(account_id)
            if account is None or account.company_id != company_id:
                raise ValidationError(
                    f"Kontot {account_id} finns inte", precondition="account_not_found"
                )
            if not account.is_active:
                raise ValidationError(
                    f"Konto {account.code} är inaktivt", precondition="account_inactive"
                )
            if account.is_parent:
                raise ValidationError(
                    f"Konto {account.code} är ett samlingskonto och kan inte konteras",
                    precondition="account_is_group"
                )

    def approve_entry(self, entry_id: int, actor: Actor) -> JournalEntry:
        """
        Godkänn en verifikation

        Perioden måste fortfarande vara öppen och aktiv. Summorna
        kontrolleras på nytt från konteringsraderna.
        """
        require_actor(actor)
        entry = self.get_entry(entry_id)
        if entry is None:
            raise ValidationError("Verifikationen finns inte", precondition="entry_not_found")

        if entry.status != EntryStatus.PENDING:
            raise StateConflictError(
                f"Verifikation {entry.entry_number} är {entry.status.value}",
                precondition="entry_not_pending"
            )

        self.lifecycle.assert_can_post(entry.company_id, entry.date)

        total_debit, total_credit = entry.item_totals()
        if total_debit != total_credit or total_debit == 0:
            logger.error(
                "Verifikation %s balanserar inte vid godkännande", entry.entry_number,
                extra={"entry_id": entry.id}
            )
            raise IntegrityError(
                f"Verifikation {entry.entry_number} balanserar inte: "
                f"debet={total_debit}, kredit={total_credit}",
                precondition="unbalanced_entry"
            )

        with atomic(self.db):
            entry.status = EntryStatus.APPROVED
            entry.is_approved = True
            entry.is_balanced = True
            entry.total_debit = total_debit
            entry.total_credit = total_credit
            entry.approved_at = datetime.utcnow()
            entry.approved_by = actor.id

        return entry

    def post_entry(
        self,
        company_id: int,
        entry_date: date,
        description: str,
        lines: list[dict],
        actor: Actor,
        is_closing_entry: bool = False,
        is_opening_entry: bool = False
    ) -> JournalEntry:
        """Registrera och godkänn i ett steg"""
        entry = self.create_entry(
            company_id, entry_date, description, lines, actor,
            is_closing_entry=is_closing_entry, is_opening_entry=is_opening_entry
        )
        return self.approve_entry(entry.id, actor)

    def void_entry(self, entry_id: int, actor: Actor) -> JournalEntry:
        """Makulera en verifikation (ej i stängd period)"""
        require_actor(actor)
        entry = self.get_entry(entry_id)
        if entry is None:
            raise ValidationError("Verifikationen finns inte", precondition="entry_not_found")

        if entry.status == EntryStatus.VOIDED:
            raise StateConflictError(
                f"Verifikation {entry.entry_number} är redan makulerad",
                precondition="entry_already_voided"
            )

        period = entry.monthly_period
        if period.is_closed or period.fiscal_year.is_closed:
            raise StateConflictError(
                f"Perioden {period.name} är stängd",
                precondition="period_closed"
            )

        with atomic(self.db):
            entry.status = EntryStatus.VOIDED
            entry.is_approved = False
            entry.voided_at = datetime.utcnow()
            entry.voided_by = actor.id

        return entry

    def get_entries(
        self,
        company_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status: Optional[EntryStatus] = None
    ) -> list[JournalEntry]:
        """Hämta verifikationer med filter"""
        query = self.db.query(JournalEntry).filter(JournalEntry.company_id == company_id)

        if start_date:
            query = query.filter(JournalEntry.date >= start_date)
        if end_date:
            query = query.filter(JournalEntry.date <= end_date)
        if status:
            query = query.filter(JournalEntry.status == EntryStatus(status))

        return query.order_by(JournalEntry.entry_number).all()
