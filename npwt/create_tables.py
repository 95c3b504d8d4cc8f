# npwt/create_tables.py
"""
Script simple pour créer les tables (et un premier administrateur)

    python -m npwt.create_tables --admin-email admin@hospital.co --admin-password ...
"""
import argparse
import logging

from sqlalchemy.exc import SQLAlchemyError

from npwt.core.logging_config import setup_logging
from npwt.core.roles import Role
from npwt.core.security import hash_password
from npwt.db.base import Base
from npwt.db.session import SessionLocal, engine
# Importer TOUS les modèles pour qu'ils soient enregistrés
from npwt.models import User  # noqa: F401

logger = logging.getLogger(__name__)


def create_all_tables() -> None:
    """Crée toutes les tables de la base de données"""
    logger.info("Création des tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Toutes les tables ont été créées avec succès")


def create_admin(email: str, password: str, name: str = "Administrador") -> None:
    db = SessionLocal()
    try:
        email = email.strip().lower()
        if db.query(User).filter(User.email == email).first():
            logger.info(f"L'administrateur {email} existe déjà")
            return
        db.add(User(
            email=email,
            name=name,
            role=Role.ADMINISTRADOR.value,
            hashed_password=hash_password(password),
        ))
        db.commit()
        logger.info(f"Administrateur créé: {email}")
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Erreur lors de la création de l'administrateur")
        raise
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Initialise la base NPWT")
    parser.add_argument("--admin-email")
    parser.add_argument("--admin-password")
    args = parser.parse_args()

    setup_logging()
    create_all_tables()
    if args.admin_email and args.admin_password:
        create_admin(args.admin_email, args.admin_password)


if __name__ == "__main__":
    main()
