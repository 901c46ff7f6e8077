"""
Behörighet för livscykelåtgärder

Identitet och roll kommer från det externa inloggningssystemet.
Endast administratörer får skapa räkenskapsår samt stänga och
återöppna perioder.
"""
from dataclasses import dataclass

from huvudbok.config import UserRole
from huvudbok.errors import AuthorizationError, ValidationError


@dataclass(frozen=True)
class Actor:
    """Den som utför en åtgärd"""
    id: str
    role: UserRole = UserRole.ACCOUNTANT

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def require_actor(actor: Actor) -> None:
    """Varje övergång kräver en identifierad aktör"""
    if actor is None or not actor.id:
        raise ValidationError("Användaren är inte autentiserad", precondition="actor_required")


def require_admin(actor: Actor, action: str) -> None:
    """Kasta AuthorizationError om aktören inte är administratör"""
    require_actor(actor)
    if not actor.is_admin:
        raise AuthorizationError(
            f"Endast administratörer får utföra '{action}'",
            precondition="admin_required"
        )
