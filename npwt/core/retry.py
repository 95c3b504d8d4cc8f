# npwt/core/retry.py
import logging
import time
from functools import wraps
from typing import Any, Callable, Optional

from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from npwt.core.config import settings
from npwt.core.exceptions import PersistenceError

logger = logging.getLogger(__name__)


def is_transient(exc: BaseException) -> bool:
    """Erreur de type réseau/connexion qui mérite une nouvelle tentative"""
    if isinstance(exc, (OperationalError, InterfaceError, DisconnectionError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def backoff_delay(attempt: int, base_delay: float = None, max_delay: float = None) -> float:
    """Délai exponentiel plafonné : base * 2^(tentative-1)"""
    base = settings.DB_RETRY_BASE_DELAY if base_delay is None else base_delay
    cap = settings.DB_RETRY_MAX_DELAY if max_delay is None else max_delay
    return min(cap, base * (2 ** (attempt - 1)))


def run_with_retry(
    db: Session,
    operation: Callable[[], Any],
    description: str,
    attempts: Optional[int] = None,
) -> Any:
    """
    Exécute ``operation`` en reprenant les échecs transitoires de la base.

    La session est annulée (rollback) entre deux tentatives : l'opération
    doit donc être rejouable depuis le début de sa transaction.
    Les erreurs métier (NPWTError) ne sont jamais reprises.
    """
    max_attempts = attempts or settings.DB_RETRY_ATTEMPTS
    attempt = 1
    while True:
        try:
            return operation()
        except SQLAlchemyError as e:
            db.rollback()
            if not is_transient(e):
                logger.exception(f"Erreur base de données pendant '{description}'")
                raise PersistenceError(
                    f"Erreur de base de données pendant {description}",
                    {"operation": description},
                ) from e
            if attempt >= max_attempts:
                logger.error(f"'{description}' abandonnée après {attempt} tentatives: {e}")
                raise PersistenceError(
                    f"Base de données indisponible pendant {description}",
                    {"operation": description, "attempts": attempt},
                ) from e
            delay = backoff_delay(attempt)
            logger.warning(
                f"Échec transitoire pendant '{description}', tentative {attempt}/{max_attempts}, "
                f"nouvel essai dans {delay:.2f}s"
            )
            time.sleep(delay)
            attempt += 1


def with_db_retry(description: str):
    """Décorateur pour les méthodes de service qui possèdent ``self.db``"""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            return run_with_retry(
                self.db,
                lambda: func(self, *args, **kwargs),
                description,
            )
        return wrapper
    return decorator
