"""
Sweep de notificaciones: recordatorios de vencimiento y préstamos atrasados.

Cada alerta del sweep lleva una clave de idempotencia (dedup_key), así que
correrlo varias veces (o dos sweeps a la vez) no duplica alertas:

- due_soon:<tier>:<loan_id>:<ventana>   ventana de 24h (3-day) o 12h (tomorrow)
- overdue:<loan_id>:<fecha>             una por préstamo y día calendario
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from circulation.core.clock import as_utc, day_window, start_of_day, utcnow
from circulation.core.logging import get_logger
from circulation.db.models import AlertKind, Loan, LoanStatus, OUTSTANDING_LOAN_STATUSES
from circulation.services import loan_service
from circulation.services.notification_service import alert_exists, emit_alert

logger = get_logger("circulation.sweep")


@dataclass(frozen=True)
class ReminderTier:
    name: str
    days_ahead: int
    window_hours: int
    title: str
    template: str


THREE_DAY_TIER = ReminderTier(
    name="3-day",
    days_ahead=3,
    window_hours=24,
    title="Book Due Soon",
    template='"{title}" is due in 3 days ({due}). Please plan to return it on time.',
)

TOMORROW_TIER = ReminderTier(
    name="tomorrow",
    days_ahead=1,
    window_hours=12,
    title="Book Due Tomorrow!",
    template='"{title}" is due tomorrow ({due}). Please return it to avoid late fees.',
)

REMINDER_TIERS = (THREE_DAY_TIER, TOMORROW_TIER)


@dataclass
class SweepResult:
    due_soon_alerts: int = 0
    overdue_alerts: int = 0
    marked_overdue: int = 0
    skipped_duplicates: int = 0
    errors: int = 0


def reminder_key(tier: ReminderTier, loan_id: int, now: datetime) -> str:
    window = int(as_utc(now).timestamp() // (tier.window_hours * 3600))
    return f"due_soon:{tier.name}:{loan_id}:{window}"


def overdue_key(loan_id: int, now: datetime) -> str:
    return f"overdue:{loan_id}:{start_of_day(now).date().isoformat()}"


def _loans_due_between(db: Session, start: datetime, end: datetime) -> List[int]:
    rows = (
        db.query(Loan.id)
        .filter(
            Loan.status == LoanStatus.ACTIVE,
            Loan.due_at >= start,
            Loan.due_at < end,
        )
        .order_by(Loan.id)
        .all()
    )
    return [row.id for row in rows]


def _loans_past_due(db: Session, before: datetime) -> List[int]:
    # Los ya OVERDUE se vuelven a seleccionar: reescribirlos no tiene efecto
    rows = (
        db.query(Loan.id)
        .filter(
            Loan.status.in_(OUTSTANDING_LOAN_STATUSES),
            Loan.due_at < before,
        )
        .order_by(Loan.id)
        .all()
    )
    return [row.id for row in rows]


def _remind(db: Session, loan_id: int, tier: ReminderTier, now: datetime) -> List[str]:
    loan = loan_service.get_loan(db, loan_id, refresh=True)
    if loan.status != LoanStatus.ACTIVE:
        return []

    key = reminder_key(tier, loan.id, now)
    if alert_exists(db, key):
        return []

    emit_alert(
        db,
        user_id=loan.patron_id,
        kind=AlertKind.DUE_SOON,
        title=tier.title,
        message=tier.template.format(
            title=loan.book.title,
            due=as_utc(loan.due_at).date().isoformat(),
        ),
        item_id=loan.item_id,
        loan_id=loan.id,
        dedup_key=key,
        now=now,
    )
    return ["due_soon_alerts"]


def _flag_overdue(db: Session, loan_id: int, now: datetime) -> List[str]:
    loan = loan_service.get_loan(db, loan_id, refresh=True)
    if loan.status not in OUTSTANDING_LOAN_STATUSES:
        return []

    counters = []
    if loan_service.transition_loan(db, loan.id, LoanStatus.OVERDUE, now=now):
        counters.append("marked_overdue")

    key = overdue_key(loan.id, now)
    if alert_exists(db, key):
        return counters

    days = loan_service.days_overdue(loan, now)
    emit_alert(
        db,
        user_id=loan.patron_id,
        kind=AlertKind.OVERDUE,
        title="Book Overdue!",
        message=(
            f'"{loan.book.title}" is {days} day(s) overdue. '
            "Please return it immediately to avoid additional fees."
        ),
        item_id=loan.item_id,
        loan_id=loan.id,
        dedup_key=key,
        now=now,
    )
    counters.append("overdue_alerts")
    return counters


def _process_each(
    db: Session,
    loan_ids: List[int],
    handler: Callable[[int], List[str]],
    result: SweepResult,
    operation: str,
) -> None:
    """
    Procesa cada préstamo en su propia transacción (cambio de estado + alerta).
    Un error en un registro se loguea y se revierte; el resto del scan sigue.
    Los contadores solo se suman después del commit.
    """
    for loan_id in loan_ids:
        try:
            counters = handler(loan_id)
            db.commit()
        except IntegrityError:
            # Otro sweep insertó la misma dedup_key primero
            db.rollback()
            result.skipped_duplicates += 1
            continue
        except Exception:
            db.rollback()
            result.errors += 1
            logger.exception(
                "sweep_record_failed",
                extra={"operation": operation, "resource": "loan", "loan_id": loan_id},
            )
            continue

        if not counters:
            result.skipped_duplicates += 1
        for counter in counters:
            setattr(result, counter, getattr(result, counter) + 1)


def create_due_date_reminders(db: Session, now: datetime, result: SweepResult) -> None:
    for tier in REMINDER_TIERS:
        start, end = day_window(now, tier.days_ahead)
        loan_ids = _loans_due_between(db, start, end)
        db.rollback()  # cerrar la transacción de lectura
        _process_each(
            db,
            loan_ids,
            lambda loan_id, tier=tier: _remind(db, loan_id, tier, now),
            result,
            "sweep_due_soon",
        )


def create_overdue_notifications(db: Session, now: datetime, result: SweepResult) -> None:
    loan_ids = _loans_past_due(db, start_of_day(now))
    db.rollback()
    _process_each(
        db,
        loan_ids,
        lambda loan_id: _flag_overdue(db, loan_id, now),
        result,
        "sweep_overdue",
    )


def run_notification_sweep(db: Session, now: Optional[datetime] = None) -> SweepResult:
    """
    Ejecuta los dos scans (due soon y overdue). Es idempotente y se puede
    llamar bajo demanda o desde el scheduler.
    """
    now = as_utc(now or utcnow())
    result = SweepResult()

    # Los scans son independientes: un fallo en uno no cancela el otro
    for scan in (create_due_date_reminders, create_overdue_notifications):
        try:
            scan(db, now, result)
        except Exception:
            db.rollback()
            result.errors += 1
            logger.exception(
                "sweep_scan_failed",
                extra={"operation": "notification_sweep", "scan": scan.__name__},
            )

    logger.info(
        "notification_sweep_completed",
        extra={
            "operation": "notification_sweep",
            "resource": "alert",
            "due_soon_alerts": result.due_soon_alerts,
            "overdue_alerts": result.overdue_alerts,
            "marked_overdue": result.marked_overdue,
            "skipped_duplicates": result.skipped_duplicates,
            "errors": result.errors,
        },
    )
    return result
