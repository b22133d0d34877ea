from fastapi import APIRouter

from app.api.deps import InstructorOrAdmin
from app.subjects import SUBJECTS

router = APIRouter()


@router.get("/")
async def list_subjects(user: InstructorOrAdmin):
    """Catalog with the caller's own subjects flagged and listed first."""
    assigned = set(user.subject_codes)
    items = [{**s, "assigned": s["code"] in assigned} for s in SUBJECTS]
    # sorted() is stable, so catalog order holds within each group
    return sorted(items, key=lambda s: not s["assigned"])
