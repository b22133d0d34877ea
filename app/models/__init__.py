"""Beanie document models and Pydantic schemas."""
from app.models.user import User, UserRole, UserCreate, UserOut, UserUpdate
from app.models.student import Student, StudentCreate, StudentBulkLoad, StudentOut
from app.models.session import AttendanceSession, SessionCreate, SessionOut
from app.models.attendance import (
    AttendanceEvent,
    CheckinLocation,
    CheckinRequest,
    LocationReport,
    RangeSummaryRequest,
)

DOCUMENT_MODELS = [User, Student, AttendanceSession, AttendanceEvent]

__all__ = [
    "User",
    "UserRole",
    "UserCreate",
    "UserOut",
    "UserUpdate",
    "Student",
    "StudentCreate",
    "StudentBulkLoad",
    "StudentOut",
    "AttendanceSession",
    "SessionCreate",
    "SessionOut",
    "AttendanceEvent",
    "CheckinLocation",
    "CheckinRequest",
    "LocationReport",
    "RangeSummaryRequest",
    "DOCUMENT_MODELS",
]
