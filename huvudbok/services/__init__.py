"""
Tjänster för huvudboken
"""
from huvudbok.services.authorization import Actor
from huvudbok.services.hierarchy import AccountTree
from huvudbok.services.accounts import AccountService
from huvudbok.services.periods import PeriodService
from huvudbok.services.lifecycle import PeriodLifecycleService
from huvudbok.services.journal import JournalService
from huvudbok.services.trial_balance import TrialBalanceService, TrialBalance, HierarchicalBalance
from huvudbok.services.verification import BalanceVerifier, BalanceCheck
from huvudbok.services.ledger import GeneralLedgerService, AccountLedger
from huvudbok.services.closing import ClosingService

__all__ = [
    "Actor",
    "AccountTree",
    "AccountService",
    "PeriodService",
    "PeriodLifecycleService",
    "JournalService",
    "TrialBalanceService",
    "TrialBalance",
    "HierarchicalBalance",
    "BalanceVerifier",
    "BalanceCheck",
    "GeneralLedgerService",
    "AccountLedger",
    "ClosingService",
]
