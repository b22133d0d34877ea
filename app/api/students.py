"""Roster: list with derived roll numbers, bulk load, attendance history."""
from datetime import datetime

from fastapi import APIRouter, HTTPException, Query

from app.api.deps import AdminOnly, InstructorOrAdmin
from app.config import settings
from app.models.student import Student, StudentBulkLoad, StudentOut
from app.services import store
from app.services.aggregate import load_student_history, overall_stats, per_subject_stats
from app.services.roster import rank_roster

router = APIRouter()


@router.get("/", response_model=list[StudentOut])
async def list_students(
    user: InstructorOrAdmin,
    q: str | None = Query(None, description="Search by name, father's name or id"),
):
    """Roster in roll-number order. Numbering is over the whole roster, not the filtered rows."""
    roster = await store.load_roster()
    ranked = rank_roster(roster, settings.pinned_last_student_ids)
    rows = [
        StudentOut(
            roll_number=index + 1,
            id=s.student_id,
            name=s.name,
            father=s.father,
            class_group_no=s.class_group_no,
            lab_group_no=s.lab_group_no,
        )
        for index, s in enumerate(ranked)
    ]
    if q and q.strip():
        search = q.strip().lower()
        rows = [
            r for r in rows
            if search in r.name.lower() or search in r.father.lower() or search in r.id
        ]
    return rows


@router.post("/bulk", status_code=201)
async def bulk_load_students(data: StudentBulkLoad, admin: AdminOnly):
    """Insert or correct students keyed by their id. Changing names renumbers the roster."""
    if not data.students:
        raise HTTPException(status_code=400, detail="No students provided")
    created = 0
    updated = 0
    now = datetime.utcnow()
    for item in data.students:
        existing = await Student.find_one(Student.student_id == item.id)
        if existing:
            existing.name = item.name
            existing.father = item.father or existing.father
            existing.class_group_no = item.class_group_no or existing.class_group_no
            existing.lab_group_no = item.lab_group_no or existing.lab_group_no
            existing.updated_at = now
            await existing.save()
            updated += 1
            continue
        await Student(
            student_id=item.id,
            name=item.name,
            father=item.father or "",
            class_group_no=item.class_group_no or "G1",
            lab_group_no=item.lab_group_no or "G1",
            source=data.source,
        ).insert()
        created += 1
    return {
        "status": "success",
        "message": f"Successfully loaded {created + updated} students",
        "created": created,
        "updated": updated,
        "count": await Student.count(),
    }


@router.get("/{student_id}/history")
async def get_student_history(student_id: str, user: InstructorOrAdmin):
    student = await Student.find_one(Student.student_id == student_id)
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    history = await load_student_history(student_id)
    return {
        "student": {
            "id": student.student_id,
            "name": student.name,
            "father": student.father,
            "class_group_no": student.class_group_no,
            "lab_group_no": student.lab_group_no,
        },
        "overall": overall_stats(history),
        "subjects": per_subject_stats(history),
        "history": history,
    }
