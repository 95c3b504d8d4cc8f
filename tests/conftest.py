"""Pytest configuration and fixtures."""

import os

# Avant tout import de npwt : pas de PostgreSQL ni de Redis pendant les tests
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite:///:memory:")
os.environ.pop("REDIS_URL", None)

import pytest
from datetime import date, time
from decimal import Decimal
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from npwt.core.roles import Role
from npwt.core.security import create_access_token, hash_password
from npwt.db.base import Base
from npwt.db.immutability import register_immutability_listeners
from npwt.db.session import enable_sqlite_savepoints, get_db
from npwt.main import app
# Import all models to ensure they're registered with Base.metadata
from npwt.models import Machine, Patient, User
from npwt.schemas.procedure import ProcedureCreate
from npwt.services.procedure_service import ProcedureService
from npwt.services.stock_service import StockService
from npwt.utils.cache import clear_cache

TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    register_immutability_listeners()
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clear_report_cache():
    clear_cache()
    yield
    clear_cache()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ============================
# UTILISATEURS
# ============================
def _make_user(db: Session, email: str, role: str, name: str) -> User:
    user = User(
        email=email,
        name=name,
        role=role,
        hashed_password=hash_password("secret123"),
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_user(db_session: Session) -> User:
    return _make_user(db_session, "admin@hospital.co", Role.ADMINISTRADOR.value, "Admin")


@pytest.fixture
def surgeon_user(db_session: Session) -> User:
    return _make_user(db_session, "cirujano@hospital.co", Role.CIRUJANO.value, "Dra. Gómez")


@pytest.fixture
def support_user(db_session: Session) -> User:
    return _make_user(db_session, "soporte@hospital.co", Role.SOPORTE.value, "Soporte")


@pytest.fixture
def finance_user(db_session: Session) -> User:
    return _make_user(db_session, "finanzas@hospital.co", Role.FINANCIERO.value, "Finanzas")


def headers_for(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id), "email": user.email, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return headers_for(admin_user)


@pytest.fixture
def surgeon_headers(surgeon_user: User) -> dict:
    return headers_for(surgeon_user)


@pytest.fixture
def finance_headers(finance_user: User) -> dict:
    return headers_for(finance_user)


# ============================
# DONNÉES MÉTIER
# ============================
@pytest.fixture
def stock_service(db_session: Session) -> StockService:
    return StockService(db_session)


@pytest.fixture
def procedure_service(db_session: Session) -> ProcedureService:
    return ProcedureService(db_session)


@pytest.fixture
def make_product(stock_service: StockService, admin_user: User):
    """Factory: creates a product through the stock service."""
    def _make(code="ABC", name=None, stock=20, unit_price="1000", minimum_stock=5, category="Apósitos"):
        product, _ = stock_service.create_product(
            {
                "code": code,
                "name": name or f"Producto {code}",
                "stock": stock,
                "unit_price": Decimal(unit_price),
                "minimum_stock": minimum_stock,
                "category": category,
            },
            admin_user,
        )
        return product
    return _make


@pytest.fixture
def make_machine(db_session: Session):
    def _make(name="VAC 01", status="active"):
        machine = Machine(name=name, serial_number=f"SN-{name}", status=status)
        db_session.add(machine)
        db_session.commit()
        return machine
    return _make


@pytest.fixture
def machine(make_machine) -> Machine:
    return make_machine()


@pytest.fixture
def make_procedure(procedure_service: ProcedureService, surgeon_user: User, make_machine):
    """Factory: active procedure with a new patient and a free machine."""
    counter = {"n": 0}

    def _make(patient_name="Juan Pérez", identification=None, machine=None, products=None):
        counter["n"] += 1
        machine = machine or make_machine(name=f"VAC {counter['n']:02d}")
        data = ProcedureCreate(
            patient={
                "name": patient_name,
                "identification": identification or f"CC-{counter['n']:04d}",
                "age": 54,
            },
            machine_id=machine.id,
            surgeon_name="Dra. Gómez",
            procedure_date=date.today(),
            start_time=time(8, 30),
            diagnosis="Úlcera por presión sacra",
            products=products or {},
        )
        procedure, _ = procedure_service.create_procedure(data, surgeon_user)
        return procedure
    return _make


@pytest.fixture
def patient(db_session: Session) -> Patient:
    patient = Patient(name="Ana Ruiz", identification="CC-9999", age=61)
    db_session.add(patient)
    db_session.commit()
    return patient
