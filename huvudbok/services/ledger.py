"""
Huvudbok per konto - rörelser med löpande saldo

Samma urval som råbalansen: godkända och balanserade verifikationer.
Ingående saldo är summan av allt före startdatum, därefter listas
varje konteringsrad i intervallet med saldot efter raden.

För ett samlingskonto slås underkontonas rader ihop.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session

from huvudbok.config import AccountNature
from huvudbok.errors import ValidationError
from huvudbok.models import Account, JournalEntry, JournalEntryItem
from huvudbok.services.accounts import AccountService
from huvudbok.services.storage import retry_read
from huvudbok.services.trial_balance import ZERO, counted_entry_criteria, round_money, signed_amount

logger = logging.getLogger(__name__)


@dataclass
class LedgerMovement:
    """En konteringsrad i kontots huvudbok"""
    entry_id: int
    entry_number: int
    date: date
    description: str
    debit: Decimal
    credit: Decimal
    balance: Decimal

    def to_dict(self) -> dict:
        return {
            "entry_id": self.entry_id,
            "entry_number": self.entry_number,
            "date": self.date.isoformat(),
            "description": self.description,
            "debit": str(round_money(self.debit)),
            "credit": str(round_money(self.credit)),
            "balance": str(round_money(self.balance)),
        }


@dataclass
class AccountLedger:
    account_id: int
    code: str
    name: str
    nature: AccountNature
    start_date: date
    end_date: date
    opening_balance: Decimal = ZERO
    movements: list[LedgerMovement] = field(default_factory=list)

    @property
    def total_debit(self) -> Decimal:
        return sum((m.debit for m in self.movements), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((m.credit for m in self.movements), ZERO)

    @property
    def closing_balance(self) -> Decimal:
        return self.opening_balance + signed_amount(self.nature, self.total_debit, self.total_credit)

    def to_dict(self) -> dict:
        return {
            "account": {"id": self.account_id, "code": self.code, "name": self.name},
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "opening_balance": str(round_money(self.opening_balance)),
            "movements": [m.to_dict() for m in self.movements],
            "total_debit": str(round_money(self.total_debit)),
            "total_credit": str(round_money(self.total_credit)),
            "closing_balance": str(round_money(self.closing_balance)),
        }


class GeneralLedgerService:
    """Tjänst för kontoutdrag ur huvudboken"""

    def __init__(self, db: Session):
        self.db = db
        self.account_service = AccountService(db)

    def get_account_ledger(
        self,
        account_id: int,
        start_date: date,
        end_date: date
    ) -> AccountLedger:
        """
        Hämta kontots rörelser med löpande saldo

        Saldot räknas med tecken enligt kontots natur, precis som i
        råbalansen, så att utgående saldo här och där alltid stämmer.
        """
        if start_date > end_date:
            raise ValidationError(
                f"Startdatum {start_date} är efter slutdatum {end_date}",
                precondition="invalid_date_range"
            )

        account = self.account_service.get_account(account_id)
        if account is None:
            raise ValidationError("Kontot finns inte", precondition="account_not_found")

        return retry_read(self.db, lambda: self._build(account, start_date, end_date))

    def _build(self, account: Account, start_date: date, end_date: date) -> AccountLedger:
        ledger = AccountLedger(
            account_id=account.id,
            code=account.code,
            name=account.name,
            nature=account.nature,
            start_date=start_date,
            end_date=end_date,
        )

        account_ids = self._leaf_ids(account)
        rows = (
            self.db.query(
                JournalEntry.id,
                JournalEntry.entry_number,
                JournalEntry.date,
                JournalEntry.description,
                JournalEntryItem.debit,
                JournalEntryItem.credit,
            )
            .join(JournalEntry, JournalEntryItem.entry_id == JournalEntry.id)
            .filter(
                *counted_entry_criteria(account.company_id),
                JournalEntry.date <= end_date,
                JournalEntryItem.account_id.in_(account_ids)
            )
            .order_by(JournalEntry.date, JournalEntry.entry_number, JournalEntryItem.id)
            .all()
        )

        balance = ZERO
        for entry_id, entry_number, entry_date, description, debit, credit in rows:
            debit = Decimal(str(debit or 0))
            credit = Decimal(str(credit or 0))
            balance += signed_amount(account.nature, debit, credit)
            if entry_date < start_date:
                ledger.opening_balance = balance
                continue
            ledger.movements.append(LedgerMovement(
                entry_id=entry_id,
                entry_number=entry_number,
                date=entry_date,
                description=description,
                debit=debit,
                credit=credit,
                balance=balance,
            ))

        logger.debug(
            "Kontoutdrag %s: %d rader", account.code, len(ledger.movements),
            extra={"account_id": account.id}
        )
        return ledger

    def _leaf_ids(self, account: Account) -> list[int]:
        if not account.is_parent:
            return [account.id]
        tree = self.account_service.build_tree(account.company_id, [account.account_type])
        if account.id not in tree:
            return [account.id]
        return tree.leaf_descendants(account.id)
