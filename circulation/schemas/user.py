from pydantic import BaseModel, EmailStr
from enum import Enum


class UserRole(str, Enum):
    MEMBER = "member"
    LIBRARIAN = "librarian"
    ADMIN = "admin"


class UserBase(BaseModel):
    email: str
    full_name: str | None = None
    role: UserRole = UserRole.MEMBER
    is_active: bool = True
    is_approved: bool = False


class UserCreate(BaseModel):
    email: EmailStr
    full_name: str
    password: str


class UserRead(UserBase):
    id: int

    class Config:
        from_attributes = True  # pydantic v2
