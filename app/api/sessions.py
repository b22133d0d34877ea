"""Attendance sessions: start or resume, inspect, expire, live feed."""
from datetime import datetime

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse

from app.api.deps import InstructorOrAdmin
from app.config import settings
from app.models.session import AttendanceSession, SessionCreate, SessionOut
from app.models.student import Student
from app.services import store
from app.services.live import sse_stream, watch_session
from app.services.sessions import (
    expire_session,
    find_active_for_subject_date,
    is_expired,
    start_or_resume_session,
)
from app.subjects import subject_name_for

router = APIRouter()


def _session_out(session: AttendanceSession, include_secret: bool) -> SessionOut:
    return SessionOut(
        session_id=session.session_id,
        date=session.date,
        subject_code=session.subject_code,
        subject_name=session.subject_name,
        created_at=session.created_at,
        expiry_time=session.expiry_time,
        active=session.active,
        is_expired=is_expired(session, datetime.utcnow()),
        total_students=session.total_students,
        secret_code=session.secret_code if include_secret else None,
        checkin_url=f"{settings.checkin_base_url}?session={session.session_id}",
    )


async def _get_or_404(session_id: str) -> AttendanceSession:
    session = await store.get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@router.post("/", status_code=201)
async def start_session(data: SessionCreate, user: InstructorOrAdmin):
    """Open a session, or hand back the one already running for this date and subject."""
    subject_code = data.subject_code.upper()
    subject_name = (data.subject_name or "").strip() or subject_name_for(subject_code)
    roster_size = await Student.count()
    session, resumed = await start_or_resume_session(
        data.date,
        subject_code,
        subject_name,
        data.secret_code,
        roster_size,
        created_by=str(user.id),
    )
    return {
        "success": True,
        "resumed": resumed,
        "session": _session_out(session, include_secret=True),
    }


@router.get("/check")
async def check_existing_session(
    user: InstructorOrAdmin,
    date: str = Query(..., description="YYYY-MM-DD"),
    subject_code: str = Query(...),
):
    existing = await find_active_for_subject_date(date, subject_code.upper())
    return {
        "success": True,
        "existing_session": _session_out(existing, include_secret=True) if existing else None,
    }


@router.get("/{session_id}", response_model=SessionOut)
async def get_session(session_id: str):
    """Public: the check-in page needs subject, date and expiry, never the code."""
    session = await _get_or_404(session_id)
    return _session_out(session, include_secret=False)


@router.post("/{session_id}/expire")
async def expire(session_id: str, user: InstructorOrAdmin):
    session = await _get_or_404(session_id)
    session = await expire_session(session)
    return {"success": True, "message": "Session expired", "session": _session_out(session, include_secret=True)}


@router.get("/{session_id}/stream")
async def stream_session(session_id: str, user: InstructorOrAdmin):
    """Server-sent events with live present/absent counts and each new check-in."""
    session = await _get_or_404(session_id)
    roster_size = await Student.count()
    return StreamingResponse(
        sse_stream(watch_session(session.session_id, roster_size)),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
