# npwt/db/session.py
from typing import Generator
import logging

from fastapi import HTTPException
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError

from npwt.core.config import settings
from npwt.core.exceptions import NPWTError

logger = logging.getLogger(__name__)

engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.SQLALCHEMY_ECHO,
    **settings.SQLALCHEMY_ENGINE_OPTIONS,
)


def enable_sqlite_savepoints(bind: Engine) -> None:
    """
    pysqlite gère lui-même BEGIN et casse les SAVEPOINT (begin_nested).
    On lui retire la main et on émet BEGIN nous-mêmes.
    """
    @event.listens_for(bind, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(bind, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


if engine.dialect.name == "sqlite":
    enable_sqlite_savepoints(engine)

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


def get_db() -> Generator[Session, None, None]:
    """
    Dépendance DB
    - 1 session / requête
    - commit auto si succès
    - rollback garanti
    """
    db: Session = SessionLocal()
    try:
        yield db
        db.commit()
    except (HTTPException, NPWTError):
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Erreur SQLAlchemy")
        raise HTTPException(
            status_code=500,
            detail="Erreur interne de base de données"
        ) from e
    except Exception:
        db.rollback()
        logger.exception("Erreur inattendue")
        raise
    finally:
        db.close()
