from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from circulation.api.v1.dependencies import get_db
from circulation.api.v1.dependencies_auth import get_current_user, require_role
from circulation.db.models import Book, UserRole
from circulation.schemas.book import BookCreate, BookRead
from circulation.services.inventory_ledger import get_item

router = APIRouter(
    prefix="/api/v1/books",
    tags=["books"],
    dependencies=[Depends(get_current_user)],
)


@router.get("/", response_model=List[BookRead])
def list_books(
    title: Optional[str] = Query(None),
    available_only: bool = False,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    query = db.query(Book)
    if title:
        query = query.filter(Book.title.ilike(f"%{title}%"))
    if available_only:
        query = query.filter(Book.available_copies > 0)
    return query.order_by(Book.id).offset(skip).limit(limit).all()


@router.get("/{book_id}", response_model=BookRead)
def get_book(
    book_id: int,
    db: Session = Depends(get_db),
):
    return get_item(db, book_id)


@router.post(
    "/",
    response_model=BookRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_role(UserRole.LIBRARIAN))],
)
def create_book(
    payload: BookCreate,
    db: Session = Depends(get_db),
):
    book = Book(
        title=payload.title,
        author=payload.author,
        isbn=payload.isbn,
        total_copies=payload.total_copies,
        available_copies=payload.total_copies,  # al inicio, todas disponibles
    )
    db.add(book)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="ISBN already exists",
        )

    db.refresh(book)
    return book
