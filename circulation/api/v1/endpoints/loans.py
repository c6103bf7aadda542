from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from circulation.api.v1.dependencies import get_db
from circulation.api.v1.dependencies_auth import get_current_user, require_role
from circulation.db.models import LoanStatus as LoanStatusDB, User, UserRole
from circulation.schemas.loan import LoanRead, LoanStatus
from circulation.services import loan_service

router = APIRouter(
    prefix="/api/v1/loans",
    tags=["loans"],
)


# ---- Préstamos del usuario actual ---- (importante debe ir antes de loan_id)
@router.get("/my-loans", response_model=List[LoanRead])
def my_loans(
    active_only: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return loan_service.list_loans_for_patron(db, current_user.id, active_only=active_only)


# ---- Listar préstamos (librarian / admin) ----
@router.get(
    "/",
    response_model=List[LoanRead],
    dependencies=[Depends(require_role(UserRole.LIBRARIAN))],
)
def list_loans(
    status_filter: Optional[LoanStatus] = Query(None, alias="status"),
    patron_id: Optional[int] = None,
    book_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    return loan_service.list_loans(
        db,
        status=LoanStatusDB(status_filter.value) if status_filter else None,
        patron_id=patron_id,
        item_id=book_id,
        skip=skip,
        limit=limit,
    )


@router.get("/{loan_id}", response_model=LoanRead)
def get_loan(
    loan_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return loan_service.get_loan_for_user(db, loan_id, current_user)
