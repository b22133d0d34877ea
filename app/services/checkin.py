"""Check-in validation: decides whether one student's check-in is accepted.

Each attempt walks a fixed sequence of checks and stops at the first one that
fails, reporting a single reason:

    RECEIVED -> CODE_CHECKED -> IDENTITY_RESOLVED -> NAME_MATCHED
             -> LOCATION_VERIFIED -> DUPLICATE_CHECKED -> ACCEPTED

Cheap, generic checks (fields present, session open, code right) come before
anything that reveals whether a roll number exists. The only write is the
final insert, so a rejected or abandoned attempt leaves nothing behind. An
insert that races an instructor closing the session is deleted again.
Store errors are not caught here; callers see them as "could not process",
distinct from a rejection.
"""
import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Callable, Iterable, Optional

from pydantic import BaseModel

from app.config import settings
from app.models.attendance import AttendanceEvent, CheckinLocation, CheckinRequest
from app.models.session import AttendanceSession
from app.models.student import Student
from app.services import store
from app.services.geofence import LocationVerdict
from app.services.roster import is_valid_roll_number, student_at_roll
from app.services.sessions import is_expired, normalize_secret_code

logger = logging.getLogger(__name__)


class CheckinStage(str, Enum):
    RECEIVED = "RECEIVED"
    CODE_CHECKED = "CODE_CHECKED"
    IDENTITY_RESOLVED = "IDENTITY_RESOLVED"
    NAME_MATCHED = "NAME_MATCHED"
    LOCATION_VERIFIED = "LOCATION_VERIFIED"
    DUPLICATE_CHECKED = "DUPLICATE_CHECKED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class RejectionReason(str, Enum):
    MISSING_FIELDS = "MISSING_FIELDS"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    INVALID_CODE = "INVALID_CODE"
    INVALID_ROLL_NUMBER = "INVALID_ROLL_NUMBER"
    STUDENT_NOT_FOUND = "STUDENT_NOT_FOUND"
    NAME_MISMATCH = "NAME_MISMATCH"
    LOCATION_REJECTED = "LOCATION_REJECTED"
    ALREADY_MARKED = "ALREADY_MARKED"


REJECTION_MESSAGES: dict[RejectionReason, str] = {
    RejectionReason.MISSING_FIELDS: "Missing required fields",
    RejectionReason.SESSION_NOT_FOUND: "Session not found",
    RejectionReason.SESSION_EXPIRED: "Session has expired",
    RejectionReason.INVALID_CODE: "Invalid secret code. Please check with your teacher.",
    RejectionReason.INVALID_ROLL_NUMBER: "Invalid roll number. Please check your roll number.",
    RejectionReason.STUDENT_NOT_FOUND: "Student not found for this roll number",
    RejectionReason.NAME_MISMATCH: "Name does not match the roll number",
    RejectionReason.LOCATION_REJECTED: "Location verification required",
    RejectionReason.ALREADY_MARKED: "Attendance already marked for this session",
}


class CheckinOutcome(BaseModel):
    accepted: bool
    stage: CheckinStage
    failed_at: Optional[CheckinStage] = None  # last stage passed before a rejection
    reason: Optional[RejectionReason] = None
    message: str
    event: Optional[AttendanceEvent] = None


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: dict[tuple, asyncio.Lock] = {}
        self._users: dict[tuple, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: tuple) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


def _present(value: Optional[str]) -> bool:
    return value is not None and str(value).strip() != ""


def _rejected(reason: RejectionReason, at: CheckinStage, message: Optional[str] = None) -> CheckinOutcome:
    return CheckinOutcome(
        accepted=False,
        stage=CheckinStage.REJECTED,
        failed_at=at,
        reason=reason,
        message=message or REJECTION_MESSAGES[reason],
    )


class CheckinValidator:
    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.utcnow,
        pinned_last: Optional[Iterable[str]] = None,
        lock: Optional[KeyedLock] = None,
    ):
        self.clock = clock
        self.pinned_last = tuple(settings.pinned_last_student_ids if pinned_last is None else pinned_last)
        self.lock = lock or KeyedLock()

    async def check_in(self, request: CheckinRequest, verdict: Optional[LocationVerdict]) -> CheckinOutcome:
        """Run the full pipeline for one attempt. Never retries."""
        outcome = await self._run(request, verdict)
        if outcome.accepted:
            logger.info(
                f"Check-in accepted: session={request.session_id} student={outcome.event.student_id} "
                f"roll={outcome.event.roll_number}"
            )
        else:
            logger.info(f"Check-in rejected: session={request.session_id} reason={outcome.reason.value}")
        return outcome

    async def _run(self, request: CheckinRequest, verdict: Optional[LocationVerdict]) -> CheckinOutcome:
        stage = CheckinStage.RECEIVED
        if not all(
            _present(v)
            for v in (request.session_id, request.roll_number, request.student_name, request.secret_code)
        ):
            return _rejected(RejectionReason.MISSING_FIELDS, stage)

        session_id = request.session_id.strip()
        session = await store.get_session(session_id)
        if session is None:
            return _rejected(RejectionReason.SESSION_NOT_FOUND, stage)
        if is_expired(session, self.clock()):
            return _rejected(RejectionReason.SESSION_EXPIRED, stage)
        if normalize_secret_code(request.secret_code) != session.secret_code:
            return _rejected(RejectionReason.INVALID_CODE, stage)

        stage = CheckinStage.CODE_CHECKED
        roster = await store.load_roster()
        if not is_valid_roll_number(request.roll_number, len(roster)):
            return _rejected(RejectionReason.INVALID_ROLL_NUMBER, stage)
        roll_number = int(request.roll_number.strip())
        student = student_at_roll(roll_number, roster, self.pinned_last)
        if student is None:
            return _rejected(RejectionReason.STUDENT_NOT_FOUND, stage)

        stage = CheckinStage.IDENTITY_RESOLVED
        if student.name.strip().lower() != request.student_name.strip().lower():
            return _rejected(
                RejectionReason.NAME_MISMATCH,
                stage,
                f"Name mismatch. Expected: {student.name}. Please enter the exact name.",
            )

        stage = CheckinStage.NAME_MATCHED
        if verdict is None:
            return _rejected(RejectionReason.LOCATION_REJECTED, stage)
        if not verdict.accepted:
            return _rejected(RejectionReason.LOCATION_REJECTED, stage, verdict.reason)

        stage = CheckinStage.LOCATION_VERIFIED
        async with self.lock.hold((session_id, student.student_id)):
            if await store.event_exists(session_id, student.student_id):
                return _rejected(RejectionReason.ALREADY_MARKED, stage)

            stage = CheckinStage.DUPLICATE_CHECKED
            # the instructor may have closed the session while this attempt was in flight
            current = await store.get_session(session_id)
            now = self.clock()
            if current is None or is_expired(current, now):
                return _rejected(RejectionReason.SESSION_EXPIRED, stage)

            event = self._build_event(current, student, roll_number, request, verdict, now)
            if not await store.insert_event(event):
                return _rejected(RejectionReason.ALREADY_MARKED, stage)

            # an instructor's expiry that landed during the insert wins
            after = await store.get_session(session_id)
            if after is None or not after.active:
                await store.delete_event(event)
                logger.info(f"Check-in withdrawn, session {session_id} closed during insert")
                return _rejected(RejectionReason.SESSION_EXPIRED, stage)

        return CheckinOutcome(
            accepted=True,
            stage=CheckinStage.ACCEPTED,
            message="Attendance marked successfully",
            event=event,
        )

    @staticmethod
    def _build_event(
        session: AttendanceSession,
        student: Student,
        roll_number: int,
        request: CheckinRequest,
        verdict: LocationVerdict,
        now: datetime,
    ) -> AttendanceEvent:
        location = None
        report = request.location
        if report is not None and report.latitude is not None and report.longitude is not None:
            location = CheckinLocation(
                latitude=report.latitude,
                longitude=report.longitude,
                accuracy=report.accuracy,
                distance=round(verdict.distance) if verdict.distance is not None else None,
            )
        return AttendanceEvent(
            session_id=session.session_id,
            student_id=student.student_id,
            roll_number=roll_number,
            name=student.name,
            father=student.father,
            timestamp=now,
            subject_code=session.subject_code,
            subject_name=session.subject_name,
            date=session.date,
            location=location,
        )


validator = CheckinValidator()
