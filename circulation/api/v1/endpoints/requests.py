from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from circulation.api.v1.dependencies import get_db
from circulation.api.v1.dependencies_auth import get_current_user, require_approved, require_role
from circulation.core.logging import get_logger
from circulation.db.models import User, UserRole
from circulation.schemas.request import (
    BorrowRequestCreate,
    CirculationRequestRead,
    RequestDecision,
    ReturnRequestCreate,
)
from circulation.services import request_workflow
from circulation.services.request_workflow import DecisionOutcome

logger = get_logger("api.requests")

router = APIRouter(
    prefix="/api/v1/requests",
    tags=["requests"],
)


# ---- Solicitud de préstamo (patron aprobado) ----
@router.post("/borrow", response_model=CirculationRequestRead, status_code=status.HTTP_201_CREATED)
def create_borrow_request(
    payload: BorrowRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approved),
):
    return request_workflow.submit_borrow_request(
        db,
        patron_id=current_user.id,
        item_id=payload.book_id,
        note=payload.notes,
    )


# ---- Solicitud de devolución (patron aprobado) ----
@router.post("/return", response_model=CirculationRequestRead, status_code=status.HTTP_201_CREATED)
def create_return_request(
    payload: ReturnRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approved),
):
    return request_workflow.submit_return_request(
        db,
        patron_id=current_user.id,
        loan_id=payload.loan_id,
        note=payload.notes,
    )


# ---- Pendientes (librarian / admin) ---- (importante: antes de /{request_id})
@router.get(
    "/pending",
    response_model=List[CirculationRequestRead],
    dependencies=[Depends(require_role(UserRole.LIBRARIAN))],
)
def list_pending_requests(db: Session = Depends(get_db)):
    return request_workflow.list_pending_requests(db)


@router.get("/my-requests", response_model=List[CirculationRequestRead])
def my_requests(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return request_workflow.list_requests_for_patron(db, current_user.id)


# ---- Aprobar / rechazar ----
@router.patch("/{request_id}/{action}", response_model=CirculationRequestRead)
def decide_request(
    request_id: int,
    action: DecisionOutcome,
    payload: RequestDecision | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.LIBRARIAN)),
):
    """
    Procesa un request pendiente.
    - approve de un borrow: reserva copia, crea el préstamo y avisa la fecha de vencimiento.
    - approve de un return: cierra el préstamo y libera la copia.
    - reject: solo notifica al patron con la respuesta del admin.
    """
    response_note = payload.admin_response if payload else None
    return request_workflow.decide_request(
        db,
        request_id=request_id,
        admin_id=current_user.id,
        outcome=action,
        response_note=response_note,
    )
