from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from circulation.core.clock import as_utc, utcnow
from circulation.core.config import settings
from circulation.core.errors import NotFound
from circulation.core.logging import get_logger
from circulation.db.models import Alert, AlertKind
from circulation.db.session import unit_of_work

logger = get_logger("circulation.notifications")


def emit_alert(
    db: Session,
    user_id: int,
    kind: AlertKind,
    title: str,
    message: str,
    item_id: Optional[int] = None,
    request_id: Optional[int] = None,
    loan_id: Optional[int] = None,
    dedup_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Alert:
    """
    Agrega una alerta a la transacción del caller (no hace commit).

    Las decisiones del workflow y el sweep la usan para que la alerta se
    confirme junto con el resto de escrituras.
    """
    alert = Alert(
        user_id=user_id,
        kind=kind,
        title=title,
        message=message,
        item_id=item_id,
        request_id=request_id,
        loan_id=loan_id,
        dedup_key=dedup_key,
        is_read=False,
        created_at=as_utc(now or utcnow()),
    )
    db.add(alert)
    return alert


def alert_exists(db: Session, dedup_key: str) -> bool:
    return (
        db.query(Alert.id).filter(Alert.dedup_key == dedup_key).first()
        is not None
    )


def send_welcome_alert(db: Session, user_id: int) -> Alert:
    return emit_alert(
        db,
        user_id=user_id,
        kind=AlertKind.WELCOME,
        title="Welcome to the Library!",
        message=(
            "Your account has been approved. "
            "You can now browse and borrow books from our collection."
        ),
    )


def list_alerts(db: Session, user_id: int, limit: Optional[int] = None) -> List[Alert]:
    if limit is None:
        limit = settings.ALERT_LIST_LIMIT

    return (
        db.query(Alert)
        .filter(Alert.user_id == user_id)
        .order_by(Alert.created_at.desc(), Alert.id.desc())
        .limit(limit)
        .all()
    )


def mark_alert_read(db: Session, alert_id: int, user_id: int) -> Alert:
    # Una alerta de otro usuario se reporta igual que una inexistente
    with unit_of_work(db):
        alert = (
            db.query(Alert)
            .filter(Alert.id == alert_id, Alert.user_id == user_id)
            .first()
        )
        if alert is None:
            raise NotFound("Notification not found")
        alert.is_read = True

    return alert


def mark_all_alerts_read(db: Session, user_id: int) -> int:
    with unit_of_work(db):
        result = db.execute(
            update(Alert)
            .where(Alert.user_id == user_id, Alert.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )

    logger.info(
        "alerts_marked_read",
        extra={
            "operation": "alert_mark_all_read",
            "resource": "alert",
            "user_id": user_id,
            "updated_count": result.rowcount,
        },
    )
    return result.rowcount


def unread_alert_count(db: Session, user_id: int) -> int:
    return (
        db.query(func.count(Alert.id))
        .filter(Alert.user_id == user_id, Alert.is_read.is_(False))
        .scalar()
        or 0
    )
