"""
Balanskontroll - debet mot kredit och summering av samlingskonton

Obalans rapporteras, den rättas aldrig automatiskt.
"""
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session

from huvudbok.config import EntryStatus, BALANCE_TOLERANCE
from huvudbok.errors import IntegrityError
from huvudbok.models import JournalEntry
from huvudbok.services.trial_balance import TrialBalance, ZERO

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceCheck:
    is_balanced: bool
    total_debits: Decimal
    total_credits: Decimal
    difference: Decimal

    def to_dict(self) -> dict:
        return {
            "is_balanced": self.is_balanced,
            "total_debits": str(self.total_debits),
            "total_credits": str(self.total_credits),
            "difference": str(self.difference),
        }


class BalanceVerifier:
    """Kontroller av en beräknad råbalans och de verifikationer den bygger på"""

    def __init__(self, tolerance: Decimal = BALANCE_TOLERANCE):
        self.tolerance = tolerance

    def verify(self, trial_balance: TrialBalance) -> BalanceCheck:
        """Summera periodens debet och kredit över lövkonton"""
        leaves = trial_balance.leaves()
        total_debits = sum((a.period_debits for a in leaves), ZERO)
        total_credits = sum((a.period_credits for a in leaves), ZERO)
        difference = total_debits - total_credits

        check = BalanceCheck(
            is_balanced=abs(difference) <= self.tolerance,
            total_debits=total_debits,
            total_credits=total_credits,
            difference=difference,
        )
        if not check.is_balanced:
            logger.warning(
                "Obalans i råbalansen %s - %s: differens %s",
                trial_balance.start_date, trial_balance.end_date, difference
            )
        return check

    def verify_rollups(self, trial_balance: TrialBalance) -> list[str]:
        """
        Kontrollera att varje samlingskonto är summan av sina lövkonton

        Returnerar koderna för samlingskonton som avviker.
        """
        children: dict[int, list] = {}
        for balance in trial_balance.accounts:
            if balance.parent_id is not None:
                children.setdefault(balance.parent_id, []).append(balance)

        mismatches = []
        for balance in trial_balance.accounts:
            if not balance.has_children:
                continue

            leaves = []
            stack = list(children.get(balance.account_id, []))
            while stack:
                node = stack.pop()
                if node.has_children:
                    stack.extend(children.get(node.account_id, []))
                else:
                    leaves.append(node)

            expected = (
                sum((l.opening_balance for l in leaves), ZERO),
                sum((l.period_debits for l in leaves), ZERO),
                sum((l.period_credits for l in leaves), ZERO),
                sum((l.closing_balance for l in leaves), ZERO),
            )
            actual = (
                balance.opening_balance,
                balance.period_debits,
                balance.period_credits,
                balance.closing_balance,
            )
            if expected != actual:
                mismatches.append(balance.code)

        if mismatches:
            logger.error("Samlingskonton summerar fel: %s", ", ".join(mismatches))
        return mismatches

    def verify_entries(
        self,
        db: Session,
        company_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> list[int]:
        """Id för godkända verifikationer vars rader inte balanserar"""
        query = db.query(JournalEntry).filter(
            JournalEntry.company_id == company_id,
            JournalEntry.status == EntryStatus.APPROVED
        )
        if start_date:
            query = query.filter(JournalEntry.date >= start_date)
        if end_date:
            query = query.filter(JournalEntry.date <= end_date)

        unbalanced = []
        for entry in query.order_by(JournalEntry.entry_number).all():
            total_debit, total_credit = entry.item_totals()
            if total_debit != total_credit:
                unbalanced.append(entry.id)
        return unbalanced

    def assert_entries_balanced(
        self,
        db: Session,
        company_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> None:
        unbalanced = self.verify_entries(db, company_id, start_date, end_date)
        if unbalanced:
            logger.error(
                "Obalanserade verifikationer: %s", unbalanced,
                extra={"company_id": company_id}
            )
            raise IntegrityError(
                f"{len(unbalanced)} godkända verifikationer balanserar inte",
                precondition="unbalanced_entry"
            )
