"""
Kontotjänst - Företag, kontoplan och hierarkiska kontokoder
"""
import logging
import random
from typing import Iterable, Optional
from sqlalchemy.orm import Session

from huvudbok.config import (
    AccountType,
    ACCOUNT_TYPE_NATURE,
    ACCOUNT_TYPE_PREFIXES,
    ROOT_CODE_WIDTH,
    SUBACCOUNT_SUFFIX_WIDTH,
    CODE_GENERATION_ATTEMPTS,
)
from huvudbok.errors import ValidationError, IntegrityError
from huvudbok.models import Company, Account
from huvudbok.services.hierarchy import AccountTree, would_create_cycle
from huvudbok.services.storage import atomic

logger = logging.getLogger(__name__)


def parse_account_type(value) -> AccountType:
    """Tolka en kontotyp, okända värden ger ValidationError"""
    try:
        return AccountType(value)
    except ValueError:
        raise ValidationError(
            f"Okänd kontotyp: {value}",
            precondition="invalid_account_type"
        ) from None


def parse_account_types(values: Iterable) -> list[AccountType]:
    return [parse_account_type(v) for v in values]


class AccountService:
    """
    Tjänst för kontoplanen

    Hanterar:
    - Företag
    - Konton och deras förälder/barn-relationer
    - Generering av hierarkiska kontokoder
    """

    def __init__(self, db: Session, rng: Optional[random.Random] = None):
        self.db = db
        self.rng = rng or random.Random()

    # === FÖRETAG ===

    def create_company(self, name: str, org_number: Optional[str] = None) -> Company:
        """Skapa ett nytt företag"""
        company = Company(name=name, org_number=org_number)
        with atomic(self.db):
            self.db.add(company)
        self.db.refresh(company)
        return company

    def get_company(self, company_id: int) -> Optional[Company]:
        """Hämta företag"""
        return self.db.query(Company).filter(Company.id == company_id).first()

    # === KONTON ===

    def get_account(self, account_id: int) -> Optional[Account]:
        return self.db.query(Account).filter(Account.id == account_id).first()

    def get_account_by_code(self, company_id: int, code: str) -> Optional[Account]:
        """Hämta konto via kontokod"""
        return (
            self.db.query(Account)
            .filter(Account.company_id == company_id, Account.code == code)
            .first()
        )

    def get_accounts(
        self,
        company_id: int,
        account_types: Optional[Iterable[AccountType]] = None,
        active_only: bool = True
    ) -> list[Account]:
        """Hämta konton för ett företag, filtrerat på typ och aktiv-flagga"""
        query = self.db.query(Account).filter(Account.company_id == company_id)
        if account_types is not None:
            query = query.filter(Account.account_type.in_(parse_account_types(account_types)))
        if active_only:
            query = query.filter(Account.is_active.is_(True))
        return query.order_by(Account.code).all()

    def build_tree(
        self,
        company_id: int,
        account_types: Optional[Iterable[AccountType]] = None
    ) -> AccountTree:
        """Bygg kontoträd över aktiva konton"""
        return AccountTree.from_accounts(self.get_accounts(company_id, account_types))

    def _parent_map(self, company_id: int) -> dict[int, Optional[int]]:
        rows = (
            self.db.query(Account.id, Account.parent_id)
            .filter(Account.company_id == company_id)
            .all()
        )
        return {account_id: parent_id for account_id, parent_id in rows}

    def code_exists(self, company_id: int, code: str) -> bool:
        return self.get_account_by_code(company_id, code) is not None

    def validate_parent_candidate(
        self,
        parent: Optional[Account],
        account_type: AccountType,
        child: Optional[Account] = None,
        company_id: Optional[int] = None
    ) -> None:
        """
        Kontrollera att `parent` får vara förälder

        Föräldern måste vara ett aktivt samlingskonto av samma typ.
        Ett konto får inte vara sin egen förälder, och inga cykler
        får uppstå via förfäderna.
        """
        if parent is None:
            raise ValidationError("Föräldrakontot finns inte", precondition="parent_not_found")

        if company_id is not None and parent.company_id != company_id:
            raise ValidationError(
                "Föräldrakontot tillhör ett annat företag",
                precondition="parent_company_mismatch"
            )

        if child is not None and child.id == parent.id:
            raise ValidationError(
                "Ett konto kan inte vara sitt eget föräldrakonto",
                precondition="self_parent"
            )

        if not parent.is_parent:
            raise ValidationError(
                f"Konto {parent.code} är inte ett samlingskonto",
                precondition="parent_not_group"
            )

        if not parent.is_active:
            raise ValidationError(
                f"Föräldrakontot {parent.code} är inaktivt",
                precondition="parent_inactive"
            )

        if parent.account_type != parse_account_type(account_type):
            raise ValidationError(
                f"Kontotypen måste vara samma som föräldrakontots ({parent.account_type.value})",
                precondition="parent_type_mismatch"
            )

        if child is not None and child.id is not None:
            if would_create_cycle(self._parent_map(parent.company_id), child.id, parent.id):
                raise ValidationError(
                    f"Konto {parent.code} ligger under konto {child.code} i hierarkin",
                    precondition="parent_cycle"
                )

    # === KONTOKODER ===

    def generate_code(
        self,
        company_id: int,
        account_type: AccountType,
        parent: Optional[Account] = None
    ) -> str:
        """
        Generera nästa lediga kontokod

        Huvudkonto: typprefix + sexsiffrigt nummer (1000000, 1000001, ...)
        Underkonto: föräldrakod + nollutfyllt suffix = högsta syskonsuffix + 1

        Om koden redan finns (inkonsistent data) görs ett begränsat antal
        nya försök innan IntegrityError kastas.
        """
        if parent is not None:
            candidate = self._next_subaccount_code(parent)
        else:
            candidate = self._next_root_code(company_id, parse_account_type(account_type))

        for attempt in range(CODE_GENERATION_ATTEMPTS):
            if not self.code_exists(company_id, candidate):
                return candidate
            logger.warning(
                "Kontokod %s finns redan (försök %d av %d)",
                candidate, attempt + 1, CODE_GENERATION_ATTEMPTS
            )
            if parent is not None:
                candidate = self._random_subaccount_code(parent)
            else:
                candidate = self._bump_root_code(candidate)

        raise IntegrityError(
            "Kunde inte generera en unik kontokod",
            precondition="code_generation_exhausted"
        )

    def _next_root_code(self, company_id: int, account_type: AccountType) -> str:
        prefix = ACCOUNT_TYPE_PREFIXES[account_type]
        roots = (
            self.db.query(Account.code)
            .filter(
                Account.company_id == company_id,
                Account.account_type == account_type,
                Account.parent_id.is_(None)
            )
            .all()
        )
        numbers = [
            int(code[len(prefix):])
            for (code,) in roots
            if code.startswith(prefix)
            and len(code) == len(prefix) + ROOT_CODE_WIDTH
            and code[len(prefix):].isdigit()
        ]
        if not numbers:
            return prefix + "0" * ROOT_CODE_WIDTH
        return prefix + str(max(numbers) + 1).zfill(ROOT_CODE_WIDTH)

    def _bump_root_code(self, code: str) -> str:
        prefix = code[:-ROOT_CODE_WIDTH]
        return prefix + str(int(code[-ROOT_CODE_WIDTH:]) + 1).zfill(ROOT_CODE_WIDTH)

    def _next_subaccount_code(self, parent: Account) -> str:
        """
        Nästa underkontokod under föräldern

        Suffixet har alltid fast bredd så att ingen syskonkod kan vara
        prefix till en annan. När högsta suffixet är förbrukat används
        första lediga lucka.
        """
        siblings = (
            self.db.query(Account.code)
            .filter(Account.parent_id == parent.id)
            .all()
        )
        used = set()
        for (code,) in siblings:
            if not code.startswith(parent.code):
                continue
            suffix = code[len(parent.code):]
            if len(suffix) == SUBACCOUNT_SUFFIX_WIDTH and suffix.isdigit():
                used.add(int(suffix))

        upper = 10 ** SUBACCOUNT_SUFFIX_WIDTH - 1
        max_suffix = max(used, default=0)
        if max_suffix < upper:
            suffix = max_suffix + 1
        else:
            suffix = next((n for n in range(1, upper + 1) if n not in used), None)
            if suffix is None:
                raise ValidationError(
                    f"Konto {parent.code} har redan {upper} underkonton",
                    precondition="subaccount_limit_reached"
                )
        return parent.code + str(suffix).zfill(SUBACCOUNT_SUFFIX_WIDTH)

    def _random_subaccount_code(self, parent: Account) -> str:
        upper = 10 ** SUBACCOUNT_SUFFIX_WIDTH - 1
        suffix = self.rng.randint(1, upper)
        return parent.code + str(suffix).zfill(SUBACCOUNT_SUFFIX_WIDTH)

    # === SKAPA / ÄNDRA ===

    def create_account(
        self,
        company_id: int,
        name: str,
        account_type: AccountType,
        parent_id: Optional[int] = None,
        is_parent: bool = False,
        code: Optional[str] = None
    ) -> Account:
        """
        Skapa ett konto

        Utan angiven kod genereras en hierarkisk kod. Naturen
        (debet/kredit) bestäms alltid av kontotypen.
        """
        account_type = parse_account_type(account_type)
        if not name or not name.strip():
            raise ValidationError("Kontot måste ha ett namn", precondition="name_required")

        parent = None
        if parent_id is not None:
            parent = self.get_account(parent_id)
            self.validate_parent_candidate(parent, account_type, company_id=company_id)

        if code is None:
            code = self.generate_code(company_id, account_type, parent)
        else:
            self._validate_manual_code(company_id, code, parent)

        account = Account(
            company_id=company_id,
            code=code,
            name=name.strip(),
            account_type=account_type,
            nature=ACCOUNT_TYPE_NATURE[account_type],
            parent_id=parent.id if parent else None,
            is_parent=is_parent,
            is_active=True,
        )
        with atomic(self.db):
            self.db.add(account)
        self.db.refresh(account)
        logger.info("Konto %s skapat (%s)", account.code, account_type.value)
        return account

    def _validate_manual_code(self, company_id: int, code: str, parent: Optional[Account]) -> None:
        if not code or not code.isdigit():
            raise ValidationError(
                f"Ogiltig kontokod '{code}'", precondition="invalid_code"
            )
        if parent is not None and (not code.startswith(parent.code) or code == parent.code):
            raise ValidationError(
                f"Underkontots kod måste börja med föräldrakoden {parent.code}",
                precondition="code_prefix_mismatch"
            )
        if parent is not None and len(code) != len(parent.code) + SUBACCOUNT_SUFFIX_WIDTH:
            raise ValidationError(
                f"Underkontots suffix måste ha {SUBACCOUNT_SUFFIX_WIDTH} siffror",
                precondition="code_suffix_invalid"
            )
        if self.code_exists(company_id, code):
            raise ValidationError(
                f"Det finns redan ett konto med koden {code}",
                precondition="code_not_unique"
            )

    def change_parent(self, account_id: int, new_parent_id: Optional[int]) -> Account:
        """
        Flytta ett konto till en ny förälder

        Kontot och hela dess underträd får nya koder så att varje
        underkontos kod fortsatt börjar med förälderns kod.
        """
        account = self.get_account(account_id)
        if account is None:
            raise ValidationError("Kontot finns inte", precondition="account_not_found")

        new_parent = None
        if new_parent_id is not None:
            if new_parent_id == account.id:
                raise ValidationError(
                    "Ett konto kan inte vara sitt eget föräldrakonto",
                    precondition="self_parent"
                )
            new_parent = self.get_account(new_parent_id)
            self.validate_parent_candidate(
                new_parent, account.account_type, child=account, company_id=account.company_id
            )

        if account.parent_id == new_parent_id:
            return account

        old_code = account.code
        new_code = self.generate_code(account.company_id, account.account_type, new_parent)

        subtree = AccountTree.from_accounts(
            self.db.query(Account).filter(Account.company_id == account.company_id).all()
        )
        descendants = [self.get_account(d) for d in subtree.descendants(account.id)]

        with atomic(self.db):
            account.parent_id = new_parent.id if new_parent else None
            account.code = new_code
            for child in descendants:
                child.code = new_code + child.code[len(old_code):]

        self.db.refresh(account)
        logger.info("Konto %s flyttat till %s", old_code, account.code)
        return account

    def deactivate_account(self, account_id: int) -> Account:
        """Inaktivera ett konto (säkert alternativ till radering)"""
        account = self.get_account(account_id)
        if account is None:
            raise ValidationError("Kontot finns inte", precondition="account_not_found")

        has_active_children = (
            self.db.query(Account.id)
            .filter(Account.parent_id == account.id, Account.is_active.is_(True))
            .first()
            is not None
        )
        if has_active_children:
            raise ValidationError(
                f"Konto {account.code} har aktiva underkonton",
                precondition="account_has_active_children"
            )

        with atomic(self.db):
            account.is_active = False
        return account

    def find_hierarchy_violations(self, company_id: int) -> list[str]:
        """
        Kontrollera kontoplanens integritet

        Returnerar en lista med beskrivningar av brott mot:
        unika koder bland aktiva konton, kodprefix, samma typ som
        föräldern, avsaknad av cykler och syskonkoder som är prefix
        till varandra.
        """
        accounts = self.get_accounts(company_id, active_only=False)
        by_id = {a.id: a for a in accounts}
        parent_of = {a.id: a.parent_id for a in accounts}
        problems = []

        seen_codes = {}
        for account in accounts:
            if not account.is_active:
                continue
            if account.code in seen_codes:
                problems.append(f"Kod {account.code} används av flera aktiva konton")
            seen_codes[account.code] = account.id

        for account in accounts:
            if account.parent_id is None:
                continue
            parent = by_id.get(account.parent_id)
            if parent is None:
                problems.append(f"Konto {account.code} saknar föräldrakonto")
                continue
            if not account.code.startswith(parent.code) or account.code == parent.code:
                problems.append(f"Konto {account.code} börjar inte med föräldrakoden {parent.code}")
            if account.account_type != parent.account_type:
                problems.append(f"Konto {account.code} har annan typ än föräldrakontot {parent.code}")
            if would_create_cycle(parent_of, account.id, account.parent_id):
                problems.append(f"Konto {account.code} ingår i en cykel")

        # Syskon där en kod är prefix till en annan gör hierarkin tvetydig
        siblings = {}
        for account in accounts:
            if account.is_active:
                siblings.setdefault(account.parent_id, []).append(account.code)
        for codes in siblings.values():
            codes.sort()
            for shorter, longer in zip(codes, codes[1:]):
                if longer != shorter and longer.startswith(shorter):
                    problems.append(f"Kod {shorter} är prefix till syskonet {longer}")

        return problems
