"""
Kontomodell - Hierarkisk kontoplan
"""
from sqlalchemy import Column, Integer, String, ForeignKey, Enum, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from huvudbok.models.base import Base
from huvudbok.config import AccountType, AccountNature


class Account(Base):
    """
    Konto i en hierarkisk kontoplan

    Kontokoder är hierarkiska: ett underkontos kod börjar alltid med
    föräldrakontots kod (1000000 -> 100000001 -> 10000000101).
    Ett underkonto har alltid samma kontotyp som sin förälder.

    Huvudkontots första siffra anger typ:
    - 1: Tillgångar
    - 2: Skulder
    - 3: Eget kapital
    - 4: Intäkter
    - 5: Kostnad sålda varor
    - 6: Övriga kostnader
    - 7: Poster inom linjen
    """
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)

    code = Column(String(32), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    account_type = Column(Enum(AccountType), nullable=False)
    # Bestäms av kontotypen
    nature = Column(Enum(AccountNature), nullable=False)

    parent_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)

    # Samlingskonto som får ha underkonton
    is_parent = Column(Boolean, default=False, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)

    # Relationer
    company = relationship("Company", back_populates="accounts")
    parent = relationship("Account", remote_side=[id], back_populates="children")
    children = relationship("Account", back_populates="parent")
    items = relationship("JournalEntryItem", back_populates="account")

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_account_company_code"),
    )

    def __repr__(self):
        return f"<Account(code={self.code}, name='{self.name}')>"
