"""Student check-in and per-session attendance."""
from fastapi import APIRouter, HTTPException

from app.api.deps import InstructorOrAdmin
from app.config import settings
from app.models.attendance import CheckinRequest
from app.services import store
from app.services.aggregate import attendance_sheet, rollup
from app.services.checkin import RejectionReason, validator
from app.services.geofence import verdict_from_report

router = APIRouter()

REJECTION_STATUS: dict[RejectionReason, int] = {
    RejectionReason.MISSING_FIELDS: 400,
    RejectionReason.SESSION_NOT_FOUND: 404,
    RejectionReason.SESSION_EXPIRED: 410,
    RejectionReason.INVALID_CODE: 400,
    RejectionReason.INVALID_ROLL_NUMBER: 400,
    RejectionReason.STUDENT_NOT_FOUND: 404,
    RejectionReason.NAME_MISMATCH: 400,
    RejectionReason.LOCATION_REJECTED: 403,
    RejectionReason.ALREADY_MARKED: 409,
}


@router.post("/checkin")
async def check_in(data: CheckinRequest):
    """Public endpoint used from students' phones."""
    verdict = verdict_from_report(data.location)
    outcome = await validator.check_in(data, verdict)
    if not outcome.accepted:
        raise HTTPException(
            status_code=REJECTION_STATUS[outcome.reason],
            detail={
                "reason": outcome.reason.value,
                "message": outcome.message,
                "stage": outcome.failed_at.value if outcome.failed_at else None,
            },
        )
    event = outcome.event
    return {
        "success": True,
        "message": outcome.message,
        "roll_number": event.roll_number,
        "name": event.name,
        "timestamp": event.timestamp,
        "distance": event.location.distance if event.location else None,
    }


@router.get("/{session_id}")
async def get_session_attendance(session_id: str, user: InstructorOrAdmin):
    session = await store.get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    roster = await store.load_roster()
    events = await store.events_for_session(session_id)
    return {
        "success": True,
        "stats": rollup(roster, events),
        "attendance": attendance_sheet(roster, events, settings.pinned_last_student_ids),
    }
