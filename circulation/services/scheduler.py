"""
Job periódico del sweep de notificaciones.

Un hilo daemon corre el sweep una vez poco después de start() y luego cada
`interval_seconds`. El reloj y la fábrica de sesiones son inyectables para
los tests; run_once() corre un sweep de forma síncrona.
"""
import threading
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from circulation.core.clock import utcnow
from circulation.core.logging import get_logger
from circulation.services.notification_sweep import SweepResult, run_notification_sweep

logger = get_logger("circulation.scheduler")


class NotificationScheduler:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        interval_seconds: float = 3600,
        initial_delay_seconds: float = 5,
        clock: Callable[[], datetime] = utcnow,
        sweep: Callable[..., SweepResult] = run_notification_sweep,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self.clock = clock
        self.sweep = sweep

        self.runs = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> Optional[SweepResult]:
        """
        Corre un sweep completo. Los errores se loguean y nunca salen del
        scheduler: el siguiente tick vuelve a evaluar los mismos préstamos.
        """
        db = self.session_factory()
        try:
            return self.sweep(db, now=self.clock())
        except Exception:
            logger.exception("notification_sweep_failed", extra={"operation": "notification_sweep"})
            return None
        finally:
            self.runs += 1
            db.close()

    def _loop(self) -> None:
        if self._stop_event.wait(self.initial_delay_seconds):
            return
        while True:
            self.run_once()
            if self._stop_event.wait(self.interval_seconds):
                return

    def start(self) -> None:
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop,
            name="notification-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "notification_scheduler_started",
            extra={
                "operation": "scheduler_start",
                "interval_seconds": self.interval_seconds,
                "initial_delay_seconds": self.initial_delay_seconds,
            },
        )

    def stop(self, timeout: Optional[float] = 10) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("notification_scheduler_stopped", extra={"operation": "scheduler_stop"})
