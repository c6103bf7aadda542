from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class BookCreate(BaseModel):
    title: str
    author: Optional[str] = None
    isbn: str
    total_copies: int = Field(1, ge=1)


class BookRead(BaseModel):
    id: int
    title: str
    author: Optional[str] = None
    isbn: str
    total_copies: int
    available_copies: int
    created_at: datetime

    class Config:
        from_attributes = True
