"""Roster entries. Roll numbers are derived from name order, never stored."""
from datetime import datetime
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field, field_validator


class Student(Document):
    """One registered student."""

    student_id: Indexed(str, unique=True)  # university id, exported as "id"
    name: str
    father: str = ""
    class_group_no: str = "G1"
    lab_group_no: str = "G1"

    source: str = "manual"  # manual, import, seed
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "students"
        use_state_management = True


class StudentCreate(BaseModel):
    id: str
    name: str
    father: Optional[str] = None
    class_group_no: Optional[str] = None
    lab_group_no: Optional[str] = None

    @field_validator("id", "name")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class StudentBulkLoad(BaseModel):
    students: list[StudentCreate] = Field(default_factory=list)
    source: str = "manual"


class StudentOut(BaseModel):
    """Roster row as shown to instructors, with the derived roll number."""
    roll_number: int
    id: str
    name: str
    father: str
    class_group_no: str
    lab_group_no: str
