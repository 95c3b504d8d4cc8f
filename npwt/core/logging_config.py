# npwt/core/logging_config.py
import logging

from npwt.core.config import settings

_configured = False


def setup_logging(level: str = None) -> None:
    """Configure le logging racine une seule fois à partir des paramètres"""
    global _configured
    if _configured:
        return

    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format=settings.LOG_FORMAT,
    )
    # SQLAlchemy est très bavard en DEBUG
    if not settings.SQLALCHEMY_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _configured = True
