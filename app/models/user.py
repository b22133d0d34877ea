"""Staff accounts: admins manage the roster, instructors run sessions."""
from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, EmailStr, Field, field_validator


class UserRole(str, Enum):
    ADMIN = "admin"
    INSTRUCTOR = "instructor"


def normalize_subject_codes(codes: list[str]) -> list[str]:
    return sorted({c.strip().upper() for c in codes if c and c.strip()})


class User(Document):
    email: Indexed(EmailStr, unique=True)
    hashed_password: str
    role: UserRole
    full_name: str
    is_active: bool = True
    # courses this instructor usually teaches; listed first by GET /api/subjects/
    subject_codes: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
        use_state_management = True


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    role: UserRole = UserRole.INSTRUCTOR
    full_name: str
    subject_codes: list[str] = Field(default_factory=list)

    @field_validator("subject_codes")
    @classmethod
    def _normalize_subjects(cls, v: list[str]) -> list[str]:
        return normalize_subject_codes(v)


class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    is_active: Optional[bool] = None
    subject_codes: Optional[list[str]] = None


class UserOut(BaseModel):
    id: str
    email: str
    role: UserRole
    full_name: str
    is_active: bool
    subject_codes: list[str] = []

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=str(user.id),
            email=user.email,
            role=user.role,
            full_name=user.full_name,
            is_active=user.is_active,
            subject_codes=user.subject_codes,
        )
