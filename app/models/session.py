"""Attendance sessions: one time-boxed check-in window per subject and date."""
from datetime import datetime
from typing import Annotated, Optional

from beanie import Document, Indexed
from pydantic import AfterValidator, BaseModel, Field, field_validator
from pymongo import ASCENDING, DESCENDING, IndexModel


class AttendanceSession(Document):
    """Session document. Once inactive or past expiry_time it never reopens."""

    session_id: Indexed(str, unique=True)
    date: str  # YYYY-MM-DD
    subject_code: str
    subject_name: str
    secret_code: str  # stored upper-cased
    created_at: datetime = Field(default_factory=datetime.utcnow)
    expiry_time: datetime
    active: bool = True
    total_students: int = 0
    created_by: Optional[str] = None  # user_id
    expired_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Settings:
        name = "attendance_sessions"
        use_state_management = True
        indexes = [
            IndexModel(
                [("date", ASCENDING), ("subject_code", ASCENDING), ("created_at", DESCENDING)],
                name="date_subject_created",
            ),
        ]


def _check_date(v: str) -> str:
    try:
        datetime.strptime(v, "%Y-%m-%d")
    except ValueError:
        raise ValueError("date must be YYYY-MM-DD")
    return v


class SessionCreate(BaseModel):
    date: Annotated[str, AfterValidator(_check_date)]
    subject_code: str
    subject_name: Optional[str] = None  # defaults to the catalog name
    secret_code: Optional[str] = None  # generated when omitted

    @field_validator("subject_code")
    @classmethod
    def _subject_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("subject_code must not be blank")
        return v


class SessionOut(BaseModel):
    """Public view of a session. The secret code is only included for instructors."""
    session_id: str
    date: str
    subject_code: str
    subject_name: str
    created_at: datetime
    expiry_time: datetime
    active: bool
    is_expired: bool
    total_students: int
    secret_code: Optional[str] = None
    checkin_url: Optional[str] = None
