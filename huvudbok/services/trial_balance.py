"""
Råbalans - ingående saldo, periodens rörelser och utgående saldo per konto

Beräkningen läser godkända, balanserade och ej makulerade
verifikationer och summerar dem per konto:

1. Aktiva konton av begärda typer laddas och ordnas i förordning
   (barn sorterade på kod) med djup per konto.
2. Konteringsrader delas upp i "före perioden" (datum < start) och
   "i perioden" (start <= datum <= slut).
3. Per lövkonto: ingående saldo med tecken enligt kontots natur,
   periodens debet/kredit (utan tecken) och utgående saldo.
4. Samlingskonton summeras alltid från sina underkonton.
5. Totalsummor beräknas bara över lövkonton.

All aritmetik sker med Decimal. Avrundning till två decimaler görs
endast vid export.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional
from sqlalchemy.orm import Session

from huvudbok.config import (
    AccountType, AccountNature, EntryStatus, PeriodKind, BALANCE_TOLERANCE, MONEY_QUANTUM
)
from huvudbok.errors import ValidationError
from huvudbok.models import JournalEntry, JournalEntryItem
from huvudbok.services.accounts import AccountService, parse_account_types
from huvudbok.services.hierarchy import AccountTree
from huvudbok.services.periods import PeriodService
from huvudbok.services.storage import retry_read

logger = logging.getLogger(__name__)

ZERO = Decimal(0)


def signed_amount(nature: AccountNature, debit: Decimal, credit: Decimal) -> Decimal:
    """
    Saldoeffekt med tecken enligt kontots natur

    Debetkonton (tillgångar, kostnader): debet - kredit
    Kreditkonton (skulder, eget kapital, intäkter): kredit - debet
    """
    if nature == AccountNature.DEBIT:
        return debit - credit
    return credit - debit


def counted_entry_criteria(company_id: int) -> tuple:
    """
    Villkor för verifikationer som ingår i saldoberäkningar

    Godkända och balanserade verifikationer. Öppningsverifikationer
    utesluts eftersom ingående saldon redan beräknas ur hela historiken.
    """
    return (
        JournalEntry.company_id == company_id,
        JournalEntry.status == EntryStatus.APPROVED,
        JournalEntry.is_approved.is_(True),
        JournalEntry.is_balanced.is_(True),
        JournalEntry.is_opening_entry.is_(False),
    )


def round_money(value: Decimal) -> Decimal:
    """Avrunda till två decimaler (endast för presentation/export)"""
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def split_by_nature(nature: AccountNature, balance: Decimal) -> tuple[Decimal, Decimal]:
    """Dela ett saldo i (debet, kredit)-kolumner enligt kontots natur"""
    if balance == 0:
        return ZERO, ZERO
    natural, opposite = (balance, ZERO) if balance > 0 else (ZERO, -balance)
    if nature == AccountNature.DEBIT:
        return natural, opposite
    return opposite, natural


@dataclass
class HierarchicalBalance:
    """Saldon för ett konto i råbalansen"""
    account_id: int
    code: str
    name: str
    account_type: AccountType
    nature: AccountNature
    parent_id: Optional[int]
    level: int
    has_children: bool
    opening_balance: Decimal = ZERO
    period_debits: Decimal = ZERO
    period_credits: Decimal = ZERO
    closing_balance: Decimal = ZERO

    @property
    def net_movement(self) -> Decimal:
        return signed_amount(self.nature, self.period_debits, self.period_credits)

    def to_dict(self) -> dict:
        return {
            "id": self.account_id,
            "code": self.code,
            "name": self.name,
            "type": self.account_type.value,
            "nature": self.nature.value,
            "parent_id": self.parent_id,
            "level": self.level,
            "has_children": self.has_children,
            "opening_balance": str(self.opening_balance),
            "period_debits": str(self.period_debits),
            "period_credits": str(self.period_credits),
            "closing_balance": str(self.closing_balance),
        }

    def export_row(self) -> dict:
        """Avrundad rad med saldon uppdelade i debet/kredit"""
        opening_debit, opening_credit = split_by_nature(self.nature, self.opening_balance)
        closing_debit, closing_credit = split_by_nature(self.nature, self.closing_balance)
        return {
            "code": self.code,
            "name": "  " * (self.level - 1) + self.name,
            "level": self.level,
            "opening_debit": str(round_money(opening_debit)),
            "opening_credit": str(round_money(opening_credit)),
            "period_debits": str(round_money(self.period_debits)),
            "period_credits": str(round_money(self.period_credits)),
            "closing_debit": str(round_money(closing_debit)),
            "closing_credit": str(round_money(closing_credit)),
        }


@dataclass
class TrialBalanceTotals:
    """Totalsummor över lövkonton"""
    total_debits: Decimal = ZERO
    total_credits: Decimal = ZERO

    @property
    def difference(self) -> Decimal:
        return self.total_debits - self.total_credits

    def to_dict(self) -> dict:
        return {
            "total_debits": str(self.total_debits),
            "total_credits": str(self.total_credits),
            "difference": str(self.difference),
        }


@dataclass
class TrialBalance:
    """Resultatet av en råbalansberäkning"""
    start_date: date
    end_date: date
    accounts: list[HierarchicalBalance] = field(default_factory=list)
    totals: TrialBalanceTotals = field(default_factory=TrialBalanceTotals)

    @property
    def is_balanced(self) -> bool:
        return abs(self.totals.difference) <= BALANCE_TOLERANCE

    def get(self, code: str) -> Optional[HierarchicalBalance]:
        return next((a for a in self.accounts if a.code == code), None)

    def leaves(self) -> list[HierarchicalBalance]:
        return [a for a in self.accounts if not a.has_children]

    def to_dict(self) -> dict:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "accounts": [a.to_dict() for a in self.accounts],
            "totals": self.totals.to_dict(),
            "is_balanced": self.is_balanced,
        }

    def export_rows(self) -> list[dict]:
        """Rader för export, avrundade till två decimaler"""
        return [a.export_row() for a in self.accounts]

    def export_totals(self) -> dict:
        return {
            "total_debits": str(round_money(self.totals.total_debits)),
            "total_credits": str(round_money(self.totals.total_credits)),
            "difference": str(round_money(self.totals.difference)),
        }


class TrialBalanceService:
    """
    Tjänst för råbalans

    Beräkningen är en ren läsning och kan köras samtidigt som nya
    verifikationer bokförs. Två anrop med samma indata utan
    mellanliggande skrivningar ger identiskt resultat.
    """

    def __init__(self, db: Session):
        self.db = db
        self.account_service = AccountService(db)
        self.period_service = PeriodService(db)

    def compute_trial_balance(
        self,
        company_id: int,
        start_date: date,
        end_date: date,
        account_types: Optional[Iterable[AccountType]] = None
    ) -> TrialBalance:
        """Beräkna råbalans för ett datumintervall"""
        if start_date > end_date:
            raise ValidationError(
                f"Startdatum {start_date} är efter slutdatum {end_date}",
                precondition="invalid_date_range"
            )

        if account_types is None:
            types = list(AccountType)
        else:
            types = parse_account_types(account_types)

        return retry_read(self.db, lambda: self._compute(company_id, start_date, end_date, types))

    def compute_for_period(
        self,
        kind: PeriodKind,
        period_id: int,
        account_types: Optional[Iterable[AccountType]] = None
    ) -> TrialBalance:
        """Beräkna råbalans för ett räkenskapsår eller en månadsperiod"""
        if PeriodKind(kind) == PeriodKind.FISCAL_YEAR:
            period = self.period_service.get_fiscal_year(period_id)
            company_id = period.company_id if period else None
        else:
            period = self.period_service.get_monthly_period(period_id)
            company_id = period.fiscal_year.company_id if period else None

        if period is None:
            raise ValidationError(
                f"Perioden {period_id} finns inte", precondition="period_not_found"
            )

        return self.compute_trial_balance(company_id, period.start_date, period.end_date, account_types)

    def _compute(
        self,
        company_id: int,
        start_date: date,
        end_date: date,
        account_types: list[AccountType]
    ) -> TrialBalance:
        result = TrialBalance(start_date=start_date, end_date=end_date)

        accounts = self.account_service.get_accounts(company_id, account_types)
        if not accounts:
            return result

        by_id = {a.id: a for a in accounts}
        tree = AccountTree.from_accounts(accounts)
        prior, in_range = self._load_movements(company_id, list(by_id), start_date, end_date)

        balances: dict[int, HierarchicalBalance] = {}
        for account_id, depth in tree.preorder():
            account = by_id[account_id]
            balances[account_id] = HierarchicalBalance(
                account_id=account.id,
                code=account.code,
                name=account.name,
                account_type=account.account_type,
                nature=account.nature,
                parent_id=tree.parent(account_id),
                level=depth,
                has_children=not tree.is_leaf(account_id),
            )

        # Lövkonton: direkt från konteringsraderna
        for account_id in tree.leaves():
            balance = balances[account_id]
            prior_debit, prior_credit = prior.get(account_id, (ZERO, ZERO))
            period_debit, period_credit = in_range.get(account_id, (ZERO, ZERO))

            balance.opening_balance = signed_amount(balance.nature, prior_debit, prior_credit)
            balance.period_debits = period_debit
            balance.period_credits = period_credit
            balance.closing_balance = balance.opening_balance + balance.net_movement

        # Samlingskonton: alltid summan av underkontona
        for account_id in tree.postorder():
            if tree.is_leaf(account_id):
                continue
            parent = balances[account_id]
            children = [balances[c] for c in tree.children(account_id)]
            parent.opening_balance = sum((c.opening_balance for c in children), ZERO)
            parent.period_debits = sum((c.period_debits for c in children), ZERO)
            parent.period_credits = sum((c.period_credits for c in children), ZERO)
            parent.closing_balance = sum((c.closing_balance for c in children), ZERO)

        result.accounts = [balances[account_id] for account_id, _ in tree.preorder()]

        leaves = result.leaves()
        result.totals = TrialBalanceTotals(
            total_debits=sum((a.period_debits for a in leaves), ZERO),
            total_credits=sum((a.period_credits for a in leaves), ZERO),
        )

        if not result.is_balanced:
            logger.warning(
                "Råbalansen %s - %s balanserar inte: differens %s",
                start_date, end_date, result.totals.difference,
                extra={"company_id": company_id}
            )

        return result

    def _load_movements(
        self,
        company_id: int,
        account_ids: list[int],
        start_date: date,
        end_date: date
    ) -> tuple[dict, dict]:
        """
        Summera debet/kredit per konto före och inom intervallet

        Returnerar två dicts: konto-id -> (debet, kredit).
        """
        rows = (
            self.db.query(
                JournalEntryItem.account_id,
                JournalEntryItem.debit,
                JournalEntryItem.credit,
                JournalEntry.date
            )
            .join(JournalEntry, JournalEntryItem.entry_id == JournalEntry.id)
            .filter(
                *counted_entry_criteria(company_id),
                JournalEntry.date <= end_date,
                JournalEntryItem.account_id.in_(account_ids)
            )
            .order_by(JournalEntryItem.id)
            .all()
        )

        prior: dict[int, tuple[Decimal, Decimal]] = {}
        in_range: dict[int, tuple[Decimal, Decimal]] = {}
        for account_id, debit, credit, entry_date in rows:
            target = prior if entry_date < start_date else in_range
            old_debit, old_credit = target.get(account_id, (ZERO, ZERO))
            target[account_id] = (
                old_debit + Decimal(str(debit or 0)),
                old_credit + Decimal(str(credit or 0)),
            )
        return prior, in_range
