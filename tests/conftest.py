#configuracion de los test
import os
import sys
import tempfile
import uuid
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Generator

import pytest

# ======================================================
# Variables de entorno ANTES de importar la app
# ======================================================
_TMP_DIR = tempfile.mkdtemp(prefix="circulation-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP_DIR}/circulation_test.db")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["NOTIFICATION_SCHEDULER_ENABLED"] = "false"

# Ajuste del sys.path para que 'circulation/' sea importable sin instalar
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# ======================================================
# Imports de la aplicación
# ======================================================
from fastapi.testclient import TestClient

from circulation.core.config import settings
from circulation.core.security import hash_password
from circulation.db.models import (
    Alert,
    Book,
    CirculationRequest,
    Loan,
    LoanStatus,
    User,
    UserRole,
)
from circulation.db.session import Base, SessionLocal, engine
from circulation.main import app
from circulation.services import inventory_ledger

MEMBER_PASSWORD = "member123"


@lru_cache(maxsize=None)
def _password_hash(password: str) -> str:
    # bcrypt es lento: un hash por contraseña para toda la sesión
    return hash_password(password)


# ======================================================
# ESQUEMA Y LIMPIEZA
# ======================================================
@pytest.fixture(scope="session", autouse=True)
def _schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    engine.dispose()


@pytest.fixture(autouse=True)
def clean_tables(_schema):
    """Cada test empieza sin préstamos, requests, alertas ni libros."""
    yield
    with SessionLocal() as db:
        db.query(Alert).delete()
        db.query(CirculationRequest).delete()
        db.query(Loan).delete()
        db.query(Book).delete()
        db.query(User).filter(User.email != settings.BUILTIN_ADMIN_EMAIL).delete()
        db.commit()


# ======================================================
# DB SESSION FIXTURE
# ======================================================
@pytest.fixture
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# ======================================================
# CLIENT FIXTURE (dispara el startup: admin embebido)
# ======================================================
@pytest.fixture(scope="session")
def client(_schema):
    with TestClient(app) as c:
        yield c


def _login(client: TestClient, email: str, password: str) -> dict:
    resp = client.post(
        "/api/v1/auth/login",
        data={"username": email, "password": password},
    )
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


# ======================================================
# ADMIN FIXTURES
# ======================================================
@pytest.fixture(scope="session")
def admin_credentials():
    return {"email": settings.BUILTIN_ADMIN_EMAIL, "password": settings.BUILTIN_ADMIN_PASSWORD}


@pytest.fixture
def admin_user(client: TestClient) -> User:
    with SessionLocal() as db:
        return db.query(User).filter(User.email == settings.BUILTIN_ADMIN_EMAIL).one()


@pytest.fixture
def admin_headers(client: TestClient, admin_credentials):
    return _login(client, admin_credentials["email"], admin_credentials["password"])


# ======================================================
# FACTORIES
# ======================================================
@pytest.fixture
def make_user():
    """
    Crea un usuario directamente en la BD (aprobado por defecto).

    Las factories usan sesiones cortas: en SQLite cada transacción toma el
    lock de escritura, así que ningún fixture puede dejar una abierta.
    """

    def _make(
        role: UserRole = UserRole.MEMBER,
        is_approved: bool = True,
        email: str | None = None,
    ) -> User:
        user = User(
            email=email or f"{role.value}-{uuid.uuid4().hex[:8]}@example.com",
            full_name=f"Test {role.value}",
            hashed_password=_password_hash(MEMBER_PASSWORD),
            role=role,
            is_active=True,
            is_approved=is_approved,
        )
        with SessionLocal() as db:
            db.add(user)
            db.commit()
            db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_member(client: TestClient, make_user):
    """Member aprobado + headers con su token."""

    def _make(is_approved: bool = True) -> dict:
        user = make_user(UserRole.MEMBER, is_approved=is_approved)
        return {
            "id": user.id,
            "email": user.email,
            "headers": _login(client, user.email, MEMBER_PASSWORD),
        }

    return _make


@pytest.fixture
def member(make_member) -> dict:
    return make_member()


@pytest.fixture
def librarian_headers(client: TestClient, make_user):
    user = make_user(UserRole.LIBRARIAN)
    return _login(client, user.email, MEMBER_PASSWORD)


@pytest.fixture
def make_book():
    def _make(total_copies: int = 1, title: str = "Libro de Pruebas") -> Book:
        book = Book(
            title=title,
            author="Autor Test",
            isbn=f"ISBN-{uuid.uuid4().hex[:10]}",
            total_copies=total_copies,
            available_copies=total_copies,
        )
        with SessionLocal() as db:
            db.add(book)
            db.commit()
            db.refresh(book)
        return book

    return _make


@pytest.fixture
def make_loan():
    """
    Crea un préstamo con fechas arbitrarias respetando el ledger
    (reserva la copia en la misma transacción).
    """

    def _make(
        patron_id: int,
        item_id: int,
        due_at: datetime,
        borrowed_at: datetime | None = None,
        status: LoanStatus = LoanStatus.ACTIVE,
    ) -> Loan:
        with SessionLocal() as db:
            inventory_ledger.try_reserve(db, item_id)
            loan = Loan(
                patron_id=patron_id,
                item_id=item_id,
                borrowed_at=borrowed_at or due_at,
                due_at=due_at,
                status=status,
            )
            db.add(loan)
            db.commit()
            db.refresh(loan)
        return loan

    return _make


# ======================================================
# LECTURAS FRESCAS (sesión nueva, sin caché)
# ======================================================
@pytest.fixture
def available_copies():
    def _read(book_id: int) -> int:
        with SessionLocal() as db:
            return db.get(Book, book_id).available_copies

    return _read


@pytest.fixture
def outstanding_loans():
    def _count(book_id: int) -> int:
        with SessionLocal() as db:
            return (
                db.query(Loan)
                .filter(Loan.item_id == book_id, Loan.status.in_([LoanStatus.ACTIVE, LoanStatus.OVERDUE]))
                .count()
            )

    return _count
