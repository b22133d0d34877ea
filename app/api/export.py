"""Session exports and multi-session summaries."""
import io
from datetime import date

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response, StreamingResponse

from app.api.deps import InstructorOrAdmin
from app.config import settings
from app.models.attendance import RangeSummaryRequest
from app.services import export as renderers
from app.services import store
from app.services.aggregate import attendance_sheet, load_range_summary, rollup

router = APIRouter()


@router.get("/{session_id}")
async def export_session(
    session_id: str,
    user: InstructorOrAdmin,
    format: str = Query("json", enum=["json", "csv", "excel", "pdf"]),
):
    session = await store.get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    roster = await store.load_roster()
    events = await store.events_for_session(session_id)
    rows = attendance_sheet(roster, events, settings.pinned_last_student_ids)
    totals = rollup(roster, events)

    if format == "csv":
        return Response(
            content=renderers.to_csv(session, rows, totals),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={renderers.export_filename(session, 'csv')}"},
        )
    if format == "excel":
        return StreamingResponse(
            io.BytesIO(renderers.to_excel(session, rows, totals)),
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": f"attachment; filename={renderers.export_filename(session, 'xlsx')}"},
        )
    if format == "pdf":
        return Response(
            content=renderers.to_pdf(session, rows, totals),
            media_type="application/pdf",
            headers={"Content-Disposition": f"attachment; filename={renderers.export_filename(session, 'pdf')}"},
        )
    return {"success": True, "data": renderers.session_payload(session, rows, totals)}


@router.post("/summary")
async def range_summary(data: RangeSummaryRequest, user: InstructorOrAdmin):
    """Present/absent counts for every session in a date range."""
    try:
        d_from = date.fromisoformat(data.start_date)
        d_to = date.fromisoformat(data.end_date)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format (YYYY-MM-DD)")
    if d_from > d_to:
        raise HTTPException(status_code=400, detail="start_date must not be after end_date")

    subject_code = data.subject_code.upper() if data.subject_code else None
    sessions = await load_range_summary(d_from.isoformat(), d_to.isoformat(), subject_code)
    return {
        "success": True,
        "summary": {
            "date_range": {"start_date": d_from.isoformat(), "end_date": d_to.isoformat()},
            "subject_filter": subject_code or "All",
            "total_sessions": len(sessions),
            "sessions": sessions,
        },
    }
