"""
Lagringsfel och omförsök

Fel från databasen (timeout, ej tillgänglig) översätts till
InfrastructureError. Endast idempotenta läsningar görs om;
skrivningar (t.ex. stängning av period) görs aldrig om automatiskt.
"""
import logging
import time
from contextlib import contextmanager
from typing import Callable, Optional, TypeVar

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from huvudbok.config import READ_RETRY_ATTEMPTS, READ_RETRY_DELAY
from huvudbok.errors import InfrastructureError, IntegrityError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@contextmanager
def storage_errors():
    """Översätt databasfel till domänfel"""
    try:
        yield
    except sa_exc.IntegrityError as e:
        raise IntegrityError(
            f"Databasen avvisade skrivningen: {e.orig}",
            precondition="store_constraint_violation"
        ) from e
    except sa_exc.PendingRollbackError as e:
        logger.error("Sessionen väntar på återrullning: %s", e)
        raise InfrastructureError(
            "Databasanslutningen måste återställas",
            precondition="storage_unavailable"
        ) from e
    except (sa_exc.OperationalError, sa_exc.TimeoutError, sa_exc.DBAPIError) as e:
        logger.error("Lagringen svarar inte: %s", e)
        raise InfrastructureError(
            "Databasen är inte tillgänglig",
            precondition="storage_unavailable"
        ) from e


@contextmanager
def atomic(db: Session):
    """
    Kör en skrivning som en enda transaktion

    Allt eller inget: vid fel rullas sessionen tillbaka och felet
    kastas vidare.
    """
    try:
        with storage_errors():
            yield
            db.commit()
    except Exception:
        db.rollback()
        raise


def retry_read(
    db: Optional[Session],
    func: Callable[[], T],
    attempts: int = READ_RETRY_ATTEMPTS,
    delay: float = READ_RETRY_DELAY
) -> T:
    """
    Kör en läsande funktion, gör om vid InfrastructureError

    Sessionen rullas tillbaka före nästa försök. Efter ett tappat
    anslutningsfel vägrar SQLAlchemy annars att återansluta tills
    transaktionen avslutats.
    """
    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            with storage_errors():
                return func()
        except InfrastructureError as e:
            last_error = e
            logger.warning("Läsning misslyckades (försök %d av %d)", attempt, attempts)
            if db is not None:
                db.rollback()
            if attempt < attempts:
                time.sleep(delay)
    raise last_error
