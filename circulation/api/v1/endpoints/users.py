from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from circulation.api.v1.dependencies import get_db
from circulation.api.v1.dependencies_auth import require_role
from circulation.core.logging import get_logger
from circulation.db.models import User, UserRole
from circulation.db.session import unit_of_work
from circulation.schemas.user import UserRead
from circulation.services.notification_service import send_welcome_alert

logger = get_logger("api.users")

router = APIRouter(
    prefix="/api/v1/users",
    tags=["users"],
)


@router.get("/", response_model=List[UserRead], dependencies=[Depends(require_role(UserRole.ADMIN))])
def list_users(
    pending_only: bool = False,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    query = db.query(User)
    if pending_only:
        query = query.filter(User.is_approved.is_(False))
    return query.order_by(User.id).offset(skip).limit(limit).all()


@router.post("/{user_id}/approve", response_model=UserRead)
def approve_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    """
    Aprueba la cuenta de un patron y le envía la alerta de bienvenida
    (en la misma transacción).
    """
    user: Optional[User] = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if user.is_approved:
        return user

    with unit_of_work(db):
        user.is_approved = True
        send_welcome_alert(db, user.id)

    logger.info(
        "user_approved",
        extra={
            "operation": "user_approve",
            "resource": "user",
            "approved_user_id": user.id,
            "user_id": current_user.id,
        },
    )
    return user
