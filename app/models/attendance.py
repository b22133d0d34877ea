from datetime import datetime
from typing import Optional

from beanie import Document
from pydantic import BaseModel, Field, field_validator
from pymongo import ASCENDING, IndexModel


class CheckinLocation(BaseModel):
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    distance: Optional[float] = None  # meters from campus, filled in server-side


class AttendanceEvent(Document):
    """One accepted check-in. Never updated after insert."""

    session_id: str
    student_id: str
    roll_number: int  # rank at check-in time, kept for audit
    name: str
    father: str = ""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    subject_code: str
    subject_name: str
    date: str
    location: Optional[CheckinLocation] = None

    class Settings:
        name = "attendance_events"
        indexes = [
            IndexModel(
                [("session_id", ASCENDING), ("student_id", ASCENDING)],
                unique=True,
                name="session_student_unique",
            ),
            IndexModel([("session_id", ASCENDING), ("timestamp", ASCENDING)], name="session_timestamp"),
            IndexModel([("student_id", ASCENDING)], name="student"),
        ]


class LocationReport(BaseModel):
    """What the device sends about its position: a reading, or the error it hit."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    error: Optional[str] = None  # permission_denied, unavailable, timeout, unsupported


class CheckinRequest(BaseModel):
    # Required fields are optional here so the validator can report MISSING_FIELDS itself
    session_id: Optional[str] = None
    roll_number: Optional[str] = None
    student_name: Optional[str] = None
    secret_code: Optional[str] = None
    location: Optional[LocationReport] = None

    @field_validator("session_id", "roll_number", "student_name", "secret_code", mode="before")
    @classmethod
    def _stringify(cls, v):
        # forms post roll numbers as JSON numbers
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class RangeSummaryRequest(BaseModel):
    start_date: str
    end_date: str
    subject_code: Optional[str] = None
