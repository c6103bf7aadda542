from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from circulation.core.clock import as_utc, start_of_day, utcnow
from circulation.core.config import settings
from circulation.core.errors import NoSuchLoan, NotFound
from circulation.db.models import Book, Loan, LoanStatus, OUTSTANDING_LOAN_STATUSES, User, UserRole


# Reglas del flujo de estados del préstamo
ALLOWED_TRANSITIONS: dict[LoanStatus, set[LoanStatus]] = {
    LoanStatus.ACTIVE: {LoanStatus.OVERDUE, LoanStatus.RETURNED},
    LoanStatus.OVERDUE: {LoanStatus.RETURNED},
    LoanStatus.RETURNED: set(),
}


def _source_statuses(new_status: LoanStatus) -> list[LoanStatus]:
    return [old for old, targets in ALLOWED_TRANSITIONS.items() if new_status in targets]


def loan_due_date(borrowed_at: datetime) -> datetime:
    return borrowed_at + timedelta(days=settings.LOAN_PERIOD_DAYS)


def days_overdue(loan: Loan, now: Optional[datetime] = None) -> int:
    """Días de atraso en días calendario, desde la fecha de vencimiento hasta hoy."""
    today = start_of_day(now or utcnow()).date()
    due = as_utc(loan.due_at).date()
    return max(0, (today - due).days)


def open_loan(db: Session, patron_id: int, item_id: int, now: Optional[datetime] = None) -> Loan:
    """
    Crea el préstamo dentro de la transacción del caller.
    Solo lo llama la aprobación de un borrow request, después de reservar la copia.
    """
    now = as_utc(now or utcnow())
    loan = Loan(
        patron_id=patron_id,
        item_id=item_id,
        borrowed_at=now,
        due_at=loan_due_date(now),
        status=LoanStatus.ACTIVE,
        created_at=now,
        updated_at=now,
    )
    db.add(loan)
    db.flush()
    return loan


def transition_loan(
    db: Session,
    loan_id: int,
    new_status: LoanStatus,
    now: Optional[datetime] = None,
) -> bool:
    """
    Cambia el estado con un UPDATE condicional sobre los estados de origen
    permitidos. Devuelve False si el préstamo ya no estaba en un estado válido.
    """
    now = as_utc(now or utcnow())
    values = {"status": new_status, "updated_at": now}
    if new_status == LoanStatus.RETURNED:
        values["returned_at"] = now

    result = db.execute(
        update(Loan)
        .where(Loan.id == loan_id, Loan.status.in_(_source_statuses(new_status)))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def get_loan(db: Session, loan_id: int, refresh: bool = False) -> Loan:
    loan = db.get(Loan, loan_id, populate_existing=refresh)
    if loan is None:
        raise NotFound("Loan not found")
    return loan


def get_loan_for_user(db: Session, loan_id: int, user: User) -> Loan:
    loan = get_loan(db, loan_id)
    # Un member solo ve sus préstamos
    if user.role == UserRole.MEMBER and loan.patron_id != user.id:
        raise NotFound("Loan not found")
    return loan


def get_outstanding_loan(db: Session, loan_id: int, patron_id: int) -> Loan:
    loan = (
        db.query(Loan)
        .filter(
            Loan.id == loan_id,
            Loan.patron_id == patron_id,
            Loan.status.in_(OUTSTANDING_LOAN_STATUSES),
        )
        .first()
    )
    if loan is None:
        raise NoSuchLoan("Borrow record not found")
    return loan


def has_outstanding_loan(db: Session, patron_id: int, item_id: int) -> bool:
    return (
        db.query(Loan.id)
        .filter(
            Loan.patron_id == patron_id,
            Loan.item_id == item_id,
            Loan.status.in_(OUTSTANDING_LOAN_STATUSES),
        )
        .first()
        is not None
    )


def list_loans_for_patron(db: Session, patron_id: int, active_only: bool = False) -> List[Loan]:
    query = db.query(Loan).filter(Loan.patron_id == patron_id)
    if active_only:
        query = query.filter(Loan.status.in_(OUTSTANDING_LOAN_STATUSES))
    return query.order_by(Loan.borrowed_at.desc(), Loan.id.desc()).all()


def list_loans(
    db: Session,
    status: Optional[LoanStatus] = None,
    patron_id: Optional[int] = None,
    item_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[Loan]:
    query = db.query(Loan)
    if status is not None:
        query = query.filter(Loan.status == status)
    if patron_id is not None:
        query = query.filter(Loan.patron_id == patron_id)
    if item_id is not None:
        query = query.filter(Loan.item_id == item_id)
    return query.order_by(Loan.id.desc()).offset(skip).limit(limit).all()


# ---- Contadores (dashboard) ----

def count_loans(
    db: Session,
    statuses: Optional[Iterable[LoanStatus]] = None,
    patron_id: Optional[int] = None,
    item_id: Optional[int] = None,
) -> int:
    query = db.query(func.count(Loan.id))
    if statuses is not None:
        query = query.filter(Loan.status.in_(list(statuses)))
    if patron_id is not None:
        query = query.filter(Loan.patron_id == patron_id)
    if item_id is not None:
        query = query.filter(Loan.item_id == item_id)
    return query.scalar() or 0


def count_outstanding_loans(
    db: Session,
    item_id: Optional[int] = None,
    patron_id: Optional[int] = None,
) -> int:
    """Préstamos que todavía ocupan una copia (active + overdue)."""
    return count_loans(db, OUTSTANDING_LOAN_STATUSES, patron_id=patron_id, item_id=item_id)


def recent_outstanding_loans(db: Session, limit: int = 5) -> List[Loan]:
    return (
        db.query(Loan)
        .filter(Loan.status.in_(OUTSTANDING_LOAN_STATUSES))
        .order_by(Loan.borrowed_at.desc(), Loan.id.desc())
        .limit(limit)
        .all()
    )


def most_borrowed_items(db: Session, limit: int = 5) -> List[Tuple[int, str, int]]:
    # (item_id, title, préstamos), contando también los ya devueltos
    loan_count = func.count(Loan.id).label("loan_count")
    rows = (
        db.query(Book.id, Book.title, loan_count)
        .join(Loan, Loan.item_id == Book.id)
        .group_by(Book.id, Book.title)
        .order_by(loan_count.desc(), Book.id)
        .limit(limit)
        .all()
    )
    return [(row.id, row.title, row.loan_count) for row in rows]
