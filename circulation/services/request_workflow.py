"""
Workflow de solicitudes de circulación (borrow / return).

pending -> approved | rejected, solo por decisión de un admin/librarian.
Todas las escrituras de una decisión (request, inventario, préstamo, alerta)
van en una sola transacción; si algo falla no queda nada a medias.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from circulation.core.clock import as_utc, utcnow
from circulation.core.errors import (
    AlreadyProcessed,
    DuplicateRequest,
    InvalidState,
    ItemUnavailable,
    NotFound,
)
from circulation.core.logging import get_logger
from circulation.db.models import (
    AlertKind,
    CirculationRequest,
    LoanStatus,
    RequestKind,
    RequestStatus,
    User,
)
from circulation.db.session import unit_of_work
from circulation.services import inventory_ledger, loan_service
from circulation.services.notification_service import emit_alert

logger = get_logger("circulation.requests")


class DecisionOutcome(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


def _get_patron(db: Session, patron_id: int) -> User:
    patron = db.get(User, patron_id)
    if patron is None:
        raise NotFound("Patron not found")
    return patron


def _has_pending_request(db: Session, patron_id: int, item_id: int, kind: RequestKind) -> bool:
    return (
        db.query(CirculationRequest.id)
        .filter(
            CirculationRequest.patron_id == patron_id,
            CirculationRequest.item_id == item_id,
            CirculationRequest.kind == kind,
            CirculationRequest.status == RequestStatus.PENDING,
        )
        .first()
        is not None
    )


def _persist_request(db: Session, request: CirculationRequest) -> None:
    db.add(request)
    try:
        db.flush()
    except IntegrityError as exc:
        # El índice parcial de pendientes detectó un envío concurrente
        raise DuplicateRequest("A pending request for this item already exists") from exc


# ---- Envío de solicitudes (patron) ----

def submit_borrow_request(
    db: Session,
    patron_id: int,
    item_id: int,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CirculationRequest:
    with unit_of_work(db):
        _get_patron(db, patron_id)
        book = inventory_ledger.get_item(db, item_id, refresh=True)

        # Validación temprana; la aprobación vuelve a validar en el ledger
        if book.available_copies < 1:
            raise ItemUnavailable("Book not available")

        if _has_pending_request(db, patron_id, item_id, RequestKind.BORROW):
            raise DuplicateRequest("You already have a pending borrow request for this book")

        if loan_service.has_outstanding_loan(db, patron_id, item_id):
            raise DuplicateRequest("You already have this book borrowed")

        request = CirculationRequest(
            patron_id=patron_id,
            item_id=item_id,
            kind=RequestKind.BORROW,
            status=RequestStatus.PENDING,
            note=note,
            submitted_at=as_utc(now or utcnow()),
        )
        _persist_request(db, request)

    logger.info(
        "borrow_request_submitted",
        extra={
            "operation": "request_submit",
            "resource": "circulation_request",
            "request_id": request.id,
            "book_id": item_id,
            "patron_id": patron_id,
        },
    )
    return request


def submit_return_request(
    db: Session,
    patron_id: int,
    loan_id: int,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CirculationRequest:
    with unit_of_work(db):
        _get_patron(db, patron_id)
        loan = loan_service.get_outstanding_loan(db, loan_id, patron_id)

        existing = (
            db.query(CirculationRequest.id)
            .filter(
                CirculationRequest.loan_id == loan.id,
                CirculationRequest.kind == RequestKind.RETURN,
                CirculationRequest.status == RequestStatus.PENDING,
            )
            .first()
        )
        if existing is not None:
            raise DuplicateRequest("You already have a pending return request for this book")

        request = CirculationRequest(
            patron_id=patron_id,
            item_id=loan.item_id,
            loan_id=loan.id,
            kind=RequestKind.RETURN,
            status=RequestStatus.PENDING,
            note=note,
            submitted_at=as_utc(now or utcnow()),
        )
        _persist_request(db, request)

    logger.info(
        "return_request_submitted",
        extra={
            "operation": "request_submit",
            "resource": "circulation_request",
            "request_id": request.id,
            "loan_id": loan_id,
            "patron_id": patron_id,
        },
    )
    return request


# ---- Consultas ----

def get_request(db: Session, request_id: int, refresh: bool = False) -> CirculationRequest:
    request = db.get(CirculationRequest, request_id, populate_existing=refresh)
    if request is None:
        raise NotFound("Request not found")
    return request


def list_pending_requests(db: Session) -> List[CirculationRequest]:
    return (
        db.query(CirculationRequest)
        .filter(CirculationRequest.status == RequestStatus.PENDING)
        .order_by(CirculationRequest.submitted_at.desc(), CirculationRequest.id.desc())
        .all()
    )


def list_requests_for_patron(db: Session, patron_id: int) -> List[CirculationRequest]:
    return (
        db.query(CirculationRequest)
        .filter(CirculationRequest.patron_id == patron_id)
        .order_by(CirculationRequest.submitted_at.desc(), CirculationRequest.id.desc())
        .all()
    )


def count_pending_requests(db: Session, patron_id: Optional[int] = None) -> int:
    query = db.query(func.count(CirculationRequest.id)).filter(
        CirculationRequest.status == RequestStatus.PENDING
    )
    if patron_id is not None:
        query = query.filter(CirculationRequest.patron_id == patron_id)
    return query.scalar() or 0


# ---- Decisión (admin / librarian) ----

def _claim(
    db: Session,
    request: CirculationRequest,
    admin_id: int,
    outcome: DecisionOutcome,
    response_note: Optional[str],
    now: datetime,
) -> None:
    """
    pending -> approved|rejected con un UPDATE condicional: si otra decisión
    ya lo procesó, no cambia ninguna fila.
    """
    new_status = RequestStatus.APPROVED if outcome == DecisionOutcome.APPROVE else RequestStatus.REJECTED
    result = db.execute(
        update(CirculationRequest)
        .where(
            CirculationRequest.id == request.id,
            CirculationRequest.status == RequestStatus.PENDING,
        )
        .values(
            status=new_status,
            admin_response=response_note,
            processed_by_id=admin_id,
            processed_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise AlreadyProcessed("Request already processed")


def _approve_borrow(db: Session, request: CirculationRequest, now: datetime) -> None:
    book = inventory_ledger.try_reserve(db, request.item_id)
    loan = loan_service.open_loan(db, request.patron_id, request.item_id, now=now)

    db.execute(
        update(CirculationRequest)
        .where(CirculationRequest.id == request.id)
        .values(loan_id=loan.id)
        .execution_options(synchronize_session=False)
    )

    due_date = as_utc(loan.due_at).date().isoformat()
    emit_alert(
        db,
        user_id=request.patron_id,
        kind=AlertKind.DECISION,
        title="Borrow Request Approved",
        message=f'Your request to borrow "{book.title}" has been approved. Due date: {due_date}',
        item_id=book.id,
        request_id=request.id,
        loan_id=loan.id,
        now=now,
    )


def _approve_return(db: Session, request: CirculationRequest, now: datetime) -> None:
    if request.loan_id is None:
        raise InvalidState("Return request has no loan")

    if not loan_service.transition_loan(db, request.loan_id, LoanStatus.RETURNED, now=now):
        raise InvalidState("Loan is not active or overdue")

    book = inventory_ledger.release(db, request.item_id)

    emit_alert(
        db,
        user_id=request.patron_id,
        kind=AlertKind.DECISION,
        title="Return Request Approved",
        message=f'Your return of "{book.title}" has been processed successfully.',
        item_id=book.id,
        request_id=request.id,
        loan_id=request.loan_id,
        now=now,
    )


def _reject(db: Session, request: CirculationRequest, response_note: Optional[str], now: datetime) -> None:
    book = inventory_ledger.get_item(db, request.item_id)
    label = "Borrow" if request.kind == RequestKind.BORROW else "Return"
    message = f'Your {request.kind.value} request for "{book.title}" has been rejected.'
    if response_note:
        message = f"{message} {response_note}"

    emit_alert(
        db,
        user_id=request.patron_id,
        kind=AlertKind.DECISION,
        title=f"{label} Request Rejected",
        message=message,
        item_id=book.id,
        request_id=request.id,
        loan_id=request.loan_id,
        now=now,
    )


def decide_request(
    db: Session,
    request_id: int,
    admin_id: int,
    outcome: DecisionOutcome,
    response_note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CirculationRequest:
    """
    Aprueba o rechaza un request pendiente.

    Si la aprobación de un borrow no consigue copia (ItemUnavailable), la
    transacción completa se revierte y el request sigue pending.
    Reintentar tras un TransientStoreFailure es seguro: si un intento previo
    ya se confirmó, se obtiene AlreadyProcessed.
    """
    now = as_utc(now or utcnow())
    outcome = DecisionOutcome(outcome)

    try:
        with unit_of_work(db):
            request = get_request(db, request_id, refresh=True)
            if request.status != RequestStatus.PENDING:
                raise AlreadyProcessed("Request already processed")

            _claim(db, request, admin_id, outcome, response_note, now)

            if outcome == DecisionOutcome.REJECT:
                _reject(db, request, response_note, now)
            elif request.kind == RequestKind.BORROW:
                _approve_borrow(db, request, now)
            else:
                _approve_return(db, request, now)

            request = get_request(db, request_id, refresh=True)
    except ItemUnavailable:
        logger.info(
            "request_left_pending",
            extra={
                "operation": "request_decide",
                "resource": "circulation_request",
                "request_id": request_id,
                "reason": "item_unavailable",
            },
        )
        raise

    logger.info(
        "request_decided",
        extra={
            "operation": "request_decide",
            "resource": "circulation_request",
            "request_id": request.id,
            "kind": request.kind.value,
            "new_status": request.status.value,
            "loan_id": request.loan_id,
            "book_id": request.item_id,
            "processed_by_id": admin_id,
        },
    )
    return request
