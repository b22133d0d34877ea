"""Attendance rollups, full attendance sheets and per-student history.

Absence is never stored: a student is absent from a session when no event
exists for that pair, so history walks every session rather than only the
events a student produced.
"""
import logging
import math
import re
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Mapping, Optional, Sequence

from pydantic import BaseModel

from app.models.attendance import AttendanceEvent
from app.models.session import AttendanceSession
from app.models.student import Student
from app.services import store
from app.services.roster import rank_roster

logger = logging.getLogger(__name__)

PRESENT = "Present"
ABSENT = "Absent"

_COURSE_CODE_PREFIX = re.compile(r"^[A-Z]{2,4}\d{4}\s*-\s*", re.IGNORECASE)


class Rollup(BaseModel):
    total: int
    present: int
    absent: int
    percentage: int


class SheetRow(BaseModel):
    roll_number: int
    id: str
    name: str
    father: str
    class_group: str
    lab_group: str
    status: str
    check_in_time: Optional[datetime] = None


class HistoryEntry(BaseModel):
    session_id: str
    date: str
    subject: str
    subject_code: str
    status: str
    timestamp: Optional[datetime] = None


class SubjectStats(BaseModel):
    present: int = 0
    total: int = 0
    percentage: int = 0


class SessionSummary(BaseModel):
    session_id: str
    date: str
    subject: str
    subject_code: str
    total_students: int
    present_count: int
    absent_count: int
    attendance_percentage: int


def attendance_percentage(present: int, total: int) -> int:
    """Whole-number percentage, halves rounded up. An empty denominator gives 0."""
    if total <= 0:
        return 0
    return math.floor(present / total * 100 + 0.5)


def rollup(roster: Sequence[Student], events: Sequence[AttendanceEvent]) -> Rollup:
    # the validator guarantees one event per student per session
    total = len(roster)
    present = len(events)
    return Rollup(
        total=total,
        present=present,
        absent=max(total - present, 0),
        percentage=attendance_percentage(present, total),
    )


def attendance_sheet(
    roster: Sequence[Student],
    events: Iterable[AttendanceEvent],
    pinned_last: Iterable[str] = (),
) -> list[SheetRow]:
    """Every roster member in roll order, marked Present or Absent."""
    by_student = {e.student_id: e for e in events}
    rows = []
    for index, student in enumerate(rank_roster(roster, pinned_last)):
        event = by_student.get(student.student_id)
        rows.append(
            SheetRow(
                roll_number=index + 1,
                id=student.student_id,
                name=student.name,
                father=student.father,
                class_group=student.class_group_no,
                lab_group=student.lab_group_no,
                status=PRESENT if event else ABSENT,
                check_in_time=event.timestamp if event else None,
            )
        )
    return rows


def per_student_history(
    student_id: str,
    sessions: Iterable[AttendanceSession],
    events_by_session: Mapping[str, Sequence[AttendanceEvent]],
) -> list[HistoryEntry]:
    """One entry per session, newest date first.

    ``events_by_session`` must hold a (possibly empty) list for every session
    that could be read; a session without an entry is skipped.
    """
    history = []
    for session in sorted(sessions, key=lambda s: s.date, reverse=True):
        events = events_by_session.get(session.session_id)
        if events is None:
            logger.warning(f"Skipping session {session.session_id} in history of {student_id}: events unavailable")
            continue
        match = next((e for e in events if e.student_id == student_id), None)
        history.append(
            HistoryEntry(
                session_id=session.session_id,
                date=session.date,
                subject=session.subject_name or session.subject_code,
                subject_code=session.subject_code,
                status=PRESENT if match else ABSENT,
                timestamp=match.timestamp if match else None,
            )
        )
    return history


def normalize_subject_name(subject: str) -> str:
    """'CEL1020 - Engineering Mechanics' -> 'Engineering Mechanics'."""
    if not subject:
        return "General"
    cleaned = _COURSE_CODE_PREFIX.sub("", subject).strip()
    return cleaned or subject


def per_subject_stats(history: Iterable[HistoryEntry]) -> dict[str, SubjectStats]:
    stats: dict[str, SubjectStats] = {}
    for entry in history:
        key = normalize_subject_name(entry.subject)
        item = stats.setdefault(key, SubjectStats())
        item.total += 1
        if entry.status == PRESENT:
            item.present += 1
    for item in stats.values():
        item.percentage = attendance_percentage(item.present, item.total)
    return stats


def overall_stats(history: Sequence[HistoryEntry]) -> SubjectStats:
    present = sum(1 for h in history if h.status == PRESENT)
    return SubjectStats(present=present, total=len(history), percentage=attendance_percentage(present, len(history)))


def summarize_sessions(
    sessions: Iterable[AttendanceSession],
    present_counts: Mapping[str, int],
) -> list[SessionSummary]:
    """Per-session counts against each session's roster snapshot."""
    out = []
    for s in sorted(sessions, key=lambda s: s.date):
        present = present_counts.get(s.session_id, 0)
        out.append(
            SessionSummary(
                session_id=s.session_id,
                date=s.date,
                subject=s.subject_name,
                subject_code=s.subject_code,
                total_students=s.total_students,
                present_count=present,
                absent_count=max(s.total_students - present, 0),
                attendance_percentage=attendance_percentage(present, s.total_students),
            )
        )
    return out


async def load_student_history(student_id: str) -> list[HistoryEntry]:
    sessions = await AttendanceSession.find_all().sort("-date").to_list()
    events_by_session: dict[str, list[AttendanceEvent]] = {s.session_id: [] for s in sessions}
    for event in await store.events_for_student(student_id):
        if event.session_id in events_by_session:
            events_by_session[event.session_id].append(event)
    return per_student_history(student_id, sessions, events_by_session)


async def load_range_summary(
    start_date: str,
    end_date: str,
    subject_code: Optional[str] = None,
) -> list[SessionSummary]:
    query = {"date": {"$gte": start_date, "$lte": end_date}}
    if subject_code:
        query["subject_code"] = subject_code
    sessions = await AttendanceSession.find(query).sort("+date").to_list()
    counts = defaultdict(int)
    for s in sessions:
        counts[s.session_id] = await store.count_events(s.session_id)
    return summarize_sessions(sessions, counts)
