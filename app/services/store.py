"""Reads and writes against the roster, session and event collections."""
import logging

from pymongo.errors import DuplicateKeyError

from app.models.attendance import AttendanceEvent
from app.models.session import AttendanceSession
from app.models.student import Student

logger = logging.getLogger(__name__)


async def load_roster() -> list[Student]:
    """Whole roster in insertion order; ranking breaks name ties on this order."""
    return await Student.find_all().sort("+_id").to_list()


async def get_session(session_id: str) -> AttendanceSession | None:
    return await AttendanceSession.find_one(AttendanceSession.session_id == session_id)


async def event_exists(session_id: str, student_id: str) -> bool:
    existing = await AttendanceEvent.find_one(
        AttendanceEvent.session_id == session_id,
        AttendanceEvent.student_id == student_id,
    )
    return existing is not None


async def insert_event(event: AttendanceEvent) -> bool:
    """Insert unless (session_id, student_id) is already taken. False on conflict."""
    try:
        await event.insert()
    except DuplicateKeyError:
        logger.warning(f"Duplicate check-in rejected by index: session={event.session_id} student={event.student_id}")
        return False
    return True


async def delete_event(event: AttendanceEvent) -> None:
    await event.delete()


async def events_for_session(session_id: str) -> list[AttendanceEvent]:
    """Events of one session in commit order."""
    return await AttendanceEvent.find(AttendanceEvent.session_id == session_id).sort("+timestamp", "+_id").to_list()


async def events_for_student(student_id: str) -> list[AttendanceEvent]:
    return await AttendanceEvent.find(AttendanceEvent.student_id == student_id).to_list()


async def count_events(session_id: str) -> int:
    return await AttendanceEvent.find(AttendanceEvent.session_id == session_id).count()
