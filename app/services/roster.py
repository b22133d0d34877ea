"""Roll numbers derived from the roster's name order.

Nothing here is stored. A student's roll number is their 1-based position in
the roster sorted by name (case- and accent-insensitive), ties kept in the
order the roster was read. Students listed in ``pinned_last`` always come
after everyone else. Adding, removing or renaming a student therefore
renumbers every student after that point.
"""
from __future__ import annotations

import unicodedata
from typing import Iterable, Sequence

from app.models.student import Student


def name_sort_key(name: str) -> str:
    decomposed = unicodedata.normalize("NFKD", name or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold().strip()


def rank_roster(roster: Iterable[Student], pinned_last: Iterable[str] = ()) -> list[Student]:
    """Roster in roll-number order. Every lookup below goes through this sort."""
    pinned = set(pinned_last)
    # sorted() is stable, so equal names keep their original relative order
    return sorted(
        roster,
        key=lambda s: (s.student_id in pinned, name_sort_key(s.name)),
    )


def roll_number_of(student_id: str, roster: Sequence[Student], pinned_last: Iterable[str] = ()) -> int | None:
    for index, student in enumerate(rank_roster(roster, pinned_last)):
        if student.student_id == student_id:
            return index + 1
    return None


def student_at_roll(roll_number: int, roster: Sequence[Student], pinned_last: Iterable[str] = ()) -> Student | None:
    ranked = rank_roster(roster, pinned_last)
    if roll_number < 1 or roll_number > len(ranked):
        return None
    return ranked[roll_number - 1]


def roll_number_mapping(roster: Sequence[Student], pinned_last: Iterable[str] = ()) -> dict[int, Student]:
    """Precomputed roll -> student table for callers doing many lookups."""
    return {index + 1: s for index, s in enumerate(rank_roster(roster, pinned_last))}


def is_valid_roll_number(raw: str | None, roster_size: int) -> bool:
    """True only for a plain integer string in [1, roster_size]."""
    if raw is None:
        return False
    text = str(raw).strip()
    if not text.isascii() or not text.isdigit():
        return False
    num = int(text)
    return 1 <= num <= roster_size
