"""
Felklasser för huvudboken

Varje fel bär en maskinläsbar `precondition` som anger exakt vilket
villkor som bröts (t.ex. "parent_fiscal_year_inactive"), samt ett
meddelande för användaren.

- ValidationError: ogiltig indata, avvisas före all skrivning
- StateConflictError: otillåten tillståndsövergång, avvisas före all skrivning
- IntegrityError: inkonsistens som avbryter hela operationen
- InfrastructureError: lagringen svarar inte (läsningar får göras om)
- AuthorizationError: aktören saknar behörighet
"""
from typing import Optional


class LedgerError(Exception):
    """Basklass för alla domänfel"""

    def __init__(self, message: str, precondition: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.precondition = precondition

    def to_dict(self) -> dict:
        return {"error": self.message, "precondition": self.precondition}


class ValidationError(LedgerError):
    pass


class StateConflictError(LedgerError):
    pass


class IntegrityError(LedgerError):
    pass


class InfrastructureError(LedgerError):
    pass


class AuthorizationError(LedgerError):
    pass
