from datetime import datetime
from typing import Optional
from enum import Enum

from pydantic import BaseModel


class RequestKind(str, Enum):
    BORROW = "borrow"
    RETURN = "return"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class BorrowRequestCreate(BaseModel):
    book_id: int
    notes: Optional[str] = None


class ReturnRequestCreate(BaseModel):
    loan_id: int
    notes: Optional[str] = None


class RequestDecision(BaseModel):
    admin_response: Optional[str] = None


class CirculationRequestRead(BaseModel):
    id: int
    patron_id: int
    item_id: int
    loan_id: Optional[int]
    kind: RequestKind
    status: RequestStatus
    note: Optional[str]
    admin_response: Optional[str]
    processed_by_id: Optional[int]
    submitted_at: datetime
    processed_at: Optional[datetime]

    class Config:
        from_attributes = True
