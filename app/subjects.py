"""Subject catalog offered when starting a session."""
from __future__ import annotations

SUBJECTS: list[dict[str, str]] = [
    {"code": "CEL1020", "name": "Engineering Mechanics"},
    {"code": "MEL1021", "name": "Engineering Graphics & Drafting"},
    {"code": "MTL1001", "name": "Mathematics I"},
    {"code": "PHL1083", "name": "Physics"},
    {"code": "PBL1021", "name": "Punjabi (Compulsory)"},
    {"code": "PBL1022", "name": "Basic Punjabi"},
    {"code": "HSL4000", "name": "Punjab History & Culture"},
]

SUBJECT_NAMES: dict[str, str] = {s["code"]: s["name"] for s in SUBJECTS}


def subject_name_for(code: str) -> str:
    """Catalog name for a subject code; unknown codes are shown as-is."""
    return SUBJECT_NAMES.get(code.strip().upper(), code.strip())
