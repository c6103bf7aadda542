from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from circulation.api.v1.dependencies import get_db
from circulation.api.v1.dependencies_auth import get_current_user, require_role
from circulation.db.models import User, UserRole
from circulation.schemas.alert import AlertRead, MarkAllReadResult, SweepSummary, UnreadCount
from circulation.services import notification_service
from circulation.services.notification_sweep import run_notification_sweep


router = APIRouter(
    prefix="/api/v1/notifications",
    tags=["notifications"],
)


@router.get("/", response_model=List[AlertRead])
def list_notifications(
    limit: Optional[int] = Query(None, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return notification_service.list_alerts(db, current_user.id, limit=limit)


@router.get("/unread-count", response_model=UnreadCount)
def unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return UnreadCount(count=notification_service.unread_alert_count(db, current_user.id))


@router.patch("/mark-all-read", response_model=MarkAllReadResult)
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    updated = notification_service.mark_all_alerts_read(db, current_user.id)
    return MarkAllReadResult(message="All notifications marked as read", updated=updated)


@router.patch("/{alert_id}/read", response_model=AlertRead)
def mark_read(
    alert_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return notification_service.mark_alert_read(db, alert_id, current_user.id)


# ---- Sweep manual de recordatorios / atrasos (solo ADMIN) ----
@router.post(
    "/sweep",
    response_model=SweepSummary,
    dependencies=[Depends(require_role(UserRole.ADMIN))],
)
def run_sweep(db: Session = Depends(get_db)):
    """
    Ejecuta el mismo sweep que el scheduler. Es idempotente: dentro de la
    misma ventana no crea alertas duplicadas.
    """
    result = run_notification_sweep(db)
    return SweepSummary.model_validate(result)
