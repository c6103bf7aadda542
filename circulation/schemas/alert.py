from datetime import datetime
from typing import Optional
from enum import Enum

from pydantic import BaseModel


class AlertKind(str, Enum):
    DUE_SOON = "due_soon"
    OVERDUE = "overdue"
    DECISION = "decision"
    WELCOME = "welcome"


class AlertRead(BaseModel):
    id: int
    user_id: int
    kind: AlertKind
    title: str
    message: str
    item_id: Optional[int]
    request_id: Optional[int]
    loan_id: Optional[int]
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class UnreadCount(BaseModel):
    count: int


class MarkAllReadResult(BaseModel):
    message: str
    updated: int


class SweepSummary(BaseModel):
    due_soon_alerts: int
    overdue_alerts: int
    marked_overdue: int
    skipped_duplicates: int
    errors: int

    class Config:
        from_attributes = True
