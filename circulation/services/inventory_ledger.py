from sqlalchemy import update
from sqlalchemy.orm import Session

from circulation.core.errors import InvalidState, ItemUnavailable, NotFound
from circulation.core.logging import get_logger
from circulation.db.models import Book

logger = get_logger("circulation.ledger")


def get_item(db: Session, item_id: int, refresh: bool = False) -> Book:
    book = db.get(Book, item_id, populate_existing=refresh)
    if book is None:
        raise NotFound(f"Item {item_id} not found")
    return book


def try_reserve(db: Session, item_id: int) -> Book:
    """
    Reserva una copia del item dentro de la transacción del caller.

    Es un UPDATE condicional (available_copies > 0): la base de datos
    serializa las aprobaciones concurrentes sobre la fila del libro y solo
    una puede bajar la última copia. Lanza ItemUnavailable si no queda ninguna.
    """
    result = db.execute(
        update(Book)
        .where(Book.id == item_id, Book.available_copies > 0)
        .values(available_copies=Book.available_copies - 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Distinguir item inexistente de item sin copias
        get_item(db, item_id)
        logger.info(
            "reservation_failed",
            extra={"operation": "ledger_reserve", "resource": "book", "book_id": item_id},
        )
        raise ItemUnavailable(f"No available copies for item {item_id}")

    return get_item(db, item_id, refresh=True)


def release(db: Session, item_id: int) -> Book:
    """Devuelve una copia al inventario (parte de la transacción del return)."""
    result = db.execute(
        update(Book)
        .where(Book.id == item_id, Book.available_copies < Book.total_copies)
        .values(available_copies=Book.available_copies + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        get_item(db, item_id)
        logger.error(
            "ledger_out_of_balance",
            extra={"operation": "ledger_release", "resource": "book", "book_id": item_id},
        )
        raise InvalidState(f"Item {item_id} already has all copies available")

    return get_item(db, item_id, refresh=True)
