from typing import List

from pydantic import BaseModel

from circulation.schemas.loan import LoanRead


class PopularItem(BaseModel):
    book_id: int
    title: str
    loan_count: int


class CirculationStats(BaseModel):
    # Catálogo / inventario
    total_books: int
    available_copies: int

    # Patrons
    approved_members: int
    pending_approvals: int

    # Circulación
    borrowed_loans: int
    overdue_loans: int
    pending_requests: int

    recent_loans: List[LoanRead]
    popular_books: List[PopularItem]


class PatronStats(BaseModel):
    borrowed_loans: int
    overdue_loans: int
    pending_requests: int
    total_loans: int
