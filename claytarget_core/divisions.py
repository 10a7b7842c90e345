"""Division classification from grade and first-year status.

The calculated division is kept for operator visibility; an athlete's
override, when set, wins for every downstream computation.
"""
from __future__ import annotations

from dataclasses import dataclass


NOVICE = "Novice"
INTERMEDIATE = "Intermediate"
JUNIOR_VARSITY = "Junior Varsity"
VARSITY = "Varsity"
COLLEGIATE = "Collegiate"


# Accepted spellings per canonical grade key.
_GRADE_ALIASES = {
    "5th": {"5", "5th", "5th grade"},
    "6th": {"6", "6th", "6th grade"},
    "7th": {"7", "7th", "7th grade"},
    "8th": {"8", "8th", "8th grade"},
    "freshman": {"9", "9th", "9th grade", "freshman"},
    "sophomore": {"10", "10th", "10th grade", "sophomore"},
    "junior": {"11", "11th", "11th grade", "junior"},
    "senior": {"12", "12th", "12th grade", "senior"},
    "college": {"college", "trade", "university", "college-trade", "college-trade school"},
}
_ALIAS_TO_GRADE = {alias: key for key, aliases in _GRADE_ALIASES.items() for alias in aliases}

_UPPER_HIGH_SCHOOL = {"sophomore", "junior", "senior"}


def normalize_grade(grade: str | None) -> str | None:
    """Map a raw grade string onto its canonical key (``"7th"``, ``"senior"`` ...)."""
    if not isinstance(grade, str):
        return None
    return _ALIAS_TO_GRADE.get(grade.strip().lower())


def calculate_division(
    grade: str | None, first_year_competition: bool | None = None
) -> str | None:
    """Return the division for a grade, or None when it cannot be decided.

    Freshmen are Junior Varsity regardless of first-year status. Sophomores,
    juniors and seniors need ``first_year_competition`` to be known.
    """
    key = normalize_grade(grade)
    if key is None:
        return None
    if key in {"5th", "6th"}:
        return NOVICE
    if key in {"7th", "8th"}:
        return INTERMEDIATE
    if key == "freshman":
        return JUNIOR_VARSITY
    if key in _UPPER_HIGH_SCHOOL:
        if first_year_competition is True:
            return JUNIOR_VARSITY
        if first_year_competition is False:
            return VARSITY
        return None
    if key == "college":
        return COLLEGIATE
    return None


def effective_division(calculated: str | None, override: str | None) -> str | None:
    # Empty override strings count as unset.
    return override or calculated


@dataclass(frozen=True)
class DivisionAssignment:
    calculated: str | None
    override: str | None

    @property
    def effective(self) -> str | None:
        return effective_division(self.calculated, self.override)

    @property
    def is_overridden(self) -> bool:
        return bool(self.override) and self.override != self.calculated


def assign_division(
    grade: str | None,
    first_year_competition: bool | None,
    override: str | None = None,
) -> DivisionAssignment:
    return DivisionAssignment(
        calculated=calculate_division(grade, first_year_competition),
        override=override or None,
    )
