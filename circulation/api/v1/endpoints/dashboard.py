from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from circulation.api.v1.dependencies import get_db
from circulation.api.v1.dependencies_auth import get_current_user, require_role
from circulation.core.logging import get_logger
from circulation.db.models import Book, LoanStatus, User, UserRole
from circulation.schemas.dashboard import CirculationStats, PatronStats, PopularItem
from circulation.services import loan_service, request_workflow

logger = get_logger("api.dashboard")

router = APIRouter(
    prefix="/api/v1/dashboard",
    tags=["dashboard"],
)


@router.get("/stats", response_model=CirculationStats)
def circulation_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    """
    Contadores globales de circulación (solo ADMIN).
    """

    # === Libros / Inventario ===
    total_books = db.query(func.count(Book.id)).scalar() or 0
    available_copies = db.query(func.coalesce(func.sum(Book.available_copies), 0)).scalar() or 0

    # === Patrons ===
    members = db.query(func.count(User.id)).filter(User.role == UserRole.MEMBER)
    approved_members = members.filter(User.is_approved.is_(True)).scalar() or 0
    pending_approvals = members.filter(User.is_approved.is_(False)).scalar() or 0

    stats = CirculationStats(
        total_books=total_books,
        available_copies=available_copies,
        approved_members=approved_members,
        pending_approvals=pending_approvals,
        borrowed_loans=loan_service.count_outstanding_loans(db),
        overdue_loans=loan_service.count_loans(db, [LoanStatus.OVERDUE]),
        pending_requests=request_workflow.count_pending_requests(db),
        recent_loans=loan_service.recent_outstanding_loans(db),
        popular_books=[
            PopularItem(book_id=book_id, title=title, loan_count=count)
            for book_id, title, count in loan_service.most_borrowed_items(db)
        ],
    )

    logger.info(
        "dashboard_stats_fetched",
        extra={"operation": "dashboard_stats", "resource": "stats", "user_id": current_user.id},
    )
    return stats


# ---- Contadores del usuario actual ----
@router.get("/my-stats", response_model=PatronStats)
def my_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return PatronStats(
        borrowed_loans=loan_service.count_outstanding_loans(db, patron_id=current_user.id),
        overdue_loans=loan_service.count_loans(db, [LoanStatus.OVERDUE], patron_id=current_user.id),
        pending_requests=request_workflow.count_pending_requests(db, patron_id=current_user.id),
        total_loans=loan_service.count_loans(db, patron_id=current_user.id),
    )
