"""Session lifecycle: create, expire, and reuse an open session for the same class."""
import logging
import secrets
import string
import uuid
from datetime import datetime, timedelta
from typing import Optional

from app.config import settings
from app.models.session import AttendanceSession

logger = logging.getLogger(__name__)

SECRET_CODE_ALPHABET = string.ascii_uppercase + string.digits


def new_session_id() -> str:
    return uuid.uuid4().hex


def generate_secret_code(length: int | None = None) -> str:
    length = length or settings.secret_code_length
    return "".join(secrets.choice(SECRET_CODE_ALPHABET) for _ in range(length))


def normalize_secret_code(code: str) -> str:
    return code.strip().upper()


def build_session(
    date: str,
    subject_code: str,
    subject_name: str,
    secret_code: str,
    roster_size: int,
    now: Optional[datetime] = None,
    created_by: Optional[str] = None,
) -> AttendanceSession:
    now = now or datetime.utcnow()
    return AttendanceSession(
        session_id=new_session_id(),
        date=date,
        subject_code=subject_code,
        subject_name=subject_name,
        secret_code=normalize_secret_code(secret_code),
        created_at=now,
        expiry_time=now + timedelta(minutes=settings.session_duration_minutes),
        active=True,
        total_students=roster_size,
        created_by=created_by,
    )


def is_expired(session: AttendanceSession, now: datetime) -> bool:
    return now > session.expiry_time or not session.active


async def create_session(
    date: str,
    subject_code: str,
    subject_name: str,
    secret_code: str,
    roster_size: int,
    created_by: Optional[str] = None,
) -> AttendanceSession:
    session = build_session(date, subject_code, subject_name, secret_code, roster_size, created_by=created_by)
    await session.insert()
    logger.info(f"Session {session.session_id} opened for {subject_code} on {date} ({roster_size} students)")
    return session


async def expire_session(session: AttendanceSession, now: Optional[datetime] = None) -> AttendanceSession:
    """Close a session for good. Closing an already closed session changes nothing."""
    if not session.active:
        return session
    now = now or datetime.utcnow()
    session.active = False
    session.expired_at = now
    session.updated_at = now
    await session.save()
    logger.info(f"Session {session.session_id} expired")
    return session


async def find_active_for_subject_date(
    date: str,
    subject_code: str,
    now: Optional[datetime] = None,
) -> AttendanceSession | None:
    now = now or datetime.utcnow()
    candidates = await AttendanceSession.find(
        AttendanceSession.date == date,
        AttendanceSession.subject_code == subject_code,
        AttendanceSession.active == True,
    ).sort("-created_at").to_list()
    for candidate in candidates:
        if not is_expired(candidate, now):
            return candidate
    return None


async def start_or_resume_session(
    date: str,
    subject_code: str,
    subject_name: str,
    secret_code: Optional[str],
    roster_size: int,
    created_by: Optional[str] = None,
) -> tuple[AttendanceSession, bool]:
    """Return (session, resumed). An open session for the same date and subject is reused."""
    existing = await find_active_for_subject_date(date, subject_code)
    if existing:
        logger.info(f"Resuming session {existing.session_id} for {subject_code} on {date}")
        return existing, True
    code = secret_code if secret_code and secret_code.strip() else generate_secret_code()
    session = await create_session(date, subject_code, subject_name, code, roster_size, created_by=created_by)
    return session, False
