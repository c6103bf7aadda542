import pytest

from circulation.core.errors import InvalidState, ItemUnavailable, NotFound
from circulation.db.models import Book
from circulation.services import inventory_ledger


def test_reserve_decrements_available_copies(db_session, make_book):
    book = make_book(total_copies=2)

    reserved = inventory_ledger.try_reserve(db_session, book.id)
    db_session.commit()

    assert reserved.available_copies == 1
    assert db_session.get(Book, book.id, populate_existing=True).available_copies == 1


def test_reserve_last_copy_then_unavailable(db_session, make_book):
    book = make_book(total_copies=1)

    inventory_ledger.try_reserve(db_session, book.id)
    db_session.commit()

    with pytest.raises(ItemUnavailable):
        inventory_ledger.try_reserve(db_session, book.id)
    db_session.rollback()

    # nunca baja de cero
    assert db_session.get(Book, book.id, populate_existing=True).available_copies == 0


def test_reserve_unknown_item_is_not_found(db_session):
    with pytest.raises(NotFound):
        inventory_ledger.try_reserve(db_session, 999999)
    db_session.rollback()


def test_release_increments_available_copies(db_session, make_book):
    book = make_book(total_copies=3)
    inventory_ledger.try_reserve(db_session, book.id)
    inventory_ledger.try_reserve(db_session, book.id)
    db_session.commit()

    released = inventory_ledger.release(db_session, book.id)
    db_session.commit()

    assert released.available_copies == 2


def test_release_when_all_copies_available_is_invalid_state(db_session, make_book):
    """Liberar sin préstamo pendiente rompería available <= total."""
    book = make_book(total_copies=1)

    with pytest.raises(InvalidState):
        inventory_ledger.release(db_session, book.id)
    db_session.rollback()

    assert db_session.get(Book, book.id, populate_existing=True).available_copies == 1


def test_rollback_restores_reserved_copy(db_session, make_book):
    book = make_book(total_copies=1)

    inventory_ledger.try_reserve(db_session, book.id)
    db_session.rollback()

    assert db_session.get(Book, book.id, populate_existing=True).available_copies == 1
