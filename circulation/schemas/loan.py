from datetime import datetime
from typing import Optional
from enum import Enum

from pydantic import BaseModel


class LoanStatus(str, Enum):
    ACTIVE = "active"
    OVERDUE = "overdue"
    RETURNED = "returned"


class LoanRead(BaseModel):
    id: int
    patron_id: int
    item_id: int
    borrowed_at: datetime
    due_at: datetime
    returned_at: Optional[datetime]
    status: LoanStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
