from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy.sql import func

from circulation.core.clock import utcnow
from circulation.db.session import Base


# ======================
# Enums
# ======================

class UserRole(str, Enum):
    MEMBER = "member"
    LIBRARIAN = "librarian"
    ADMIN = "admin"


class LoanStatus(str, Enum):
    ACTIVE = "active"
    OVERDUE = "overdue"
    RETURNED = "returned"


# Préstamos que todavía ocupan una copia
OUTSTANDING_LOAN_STATUSES = (LoanStatus.ACTIVE, LoanStatus.OVERDUE)


class RequestKind(str, Enum):
    BORROW = "borrow"
    RETURN = "return"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AlertKind(str, Enum):
    DUE_SOON = "due_soon"
    OVERDUE = "overdue"
    DECISION = "decision"
    WELCOME = "welcome"


# ======================
# User (colaborador externo: identidad y aprobación)
# ======================

class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    role: Mapped[UserRole] = mapped_column(SqlEnum(UserRole), nullable=False, default=UserRole.MEMBER)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Los patrons recién registrados esperan aprobación de un admin
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    loans: Mapped[list["Loan"]] = relationship("Loan", back_populates="patron")


# ======================
# Book (CatalogItem): contadores de copias del inventario
# ======================

class Book(Base):
    __tablename__ = "books"
    __table_args__ = (
        UniqueConstraint("isbn", name="uq_books_isbn"),
        CheckConstraint(
            "available_copies >= 0 AND available_copies <= total_copies",
            name="ck_books_available_copies",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    author: Mapped[str | None] = mapped_column(String(255), nullable=True)
    isbn: Mapped[str] = mapped_column(String(20), nullable=False)

    total_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    available_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    loans: Mapped[list["Loan"]] = relationship("Loan", back_populates="book")


# ======================
# Loan (LoanRecord)
# ======================

class Loan(Base):
    __tablename__ = "loans"
    __table_args__ = (
        Index("ix_loans_status_due_at", "status", "due_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    patron_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    item_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("books.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    borrowed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    due_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    returned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[LoanStatus] = mapped_column(
        SqlEnum(LoanStatus),
        nullable=False,
        default=LoanStatus.ACTIVE,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    patron: Mapped["User"] = relationship("User", back_populates="loans")
    book: Mapped["Book"] = relationship("Book", back_populates="loans")


# ======================
# CirculationRequest (borrow / return)
# ======================

class CirculationRequest(Base):
    __tablename__ = "circulation_requests"
    __table_args__ = (
        # Un solo request pendiente por (patron, item, kind), incluso con envíos concurrentes
        Index(
            "uq_circulation_requests_pending",
            "patron_id",
            "item_id",
            "kind",
            unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'"),
        ),
        Index("ix_circulation_requests_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    patron_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    item_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("books.id", ondelete="RESTRICT"),
        nullable=False,
    )
    loan_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("loans.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    kind: Mapped[RequestKind] = mapped_column(SqlEnum(RequestKind), nullable=False)
    status: Mapped[RequestStatus] = mapped_column(
        SqlEnum(RequestStatus),
        nullable=False,
        default=RequestStatus.PENDING,
    )

    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_response: Mapped[str | None] = mapped_column(Text, nullable=True)

    processed_by_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    book: Mapped["Book"] = relationship("Book")
    loan: Mapped["Loan"] = relationship("Loan")


# ======================
# Alert (notificaciones por usuario)
# ======================

class Alert(Base):
    __tablename__ = "alerts"
    __table_args__ = (
        Index("ix_alerts_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    kind: Mapped[AlertKind] = mapped_column(SqlEnum(AlertKind), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    item_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("books.id", ondelete="SET NULL"),
        nullable=True,
    )
    request_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("circulation_requests.id", ondelete="SET NULL"),
        nullable=True,
    )
    loan_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("loans.id", ondelete="SET NULL"),
        nullable=True,
    )

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Clave de idempotencia de las alertas del scheduler (NULL para el resto)
    dedup_key: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
