"""Grid validation.

Everything here is a pure function of (grid, dirty set, original server
grades, period, subject) so the controller can recompute it after every
mutation and get the same answer for the same inputs.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set

from models import (
    GRADE_MAX,
    GRADE_MIN,
    CellKey,
    GradeCell,
    GradeRecord,
    StudentRow,
    ValidationCategory,
    is_in_range,
)

# Priority used both for the save gate and for the primary cell marker
CATEGORY_ORDER = (
    ValidationCategory.OUT_OF_RANGE,
    ValidationCategory.EMPTY,
    ValidationCategory.DUPLICATE,
)

REASON_TEXT = {
    ValidationCategory.OUT_OF_RANGE: f"Value out of range ({GRADE_MIN:g}-{GRADE_MAX:g})",
    ValidationCategory.EMPTY: "The grade cannot be left empty",
    ValidationCategory.DUPLICATE: "This grade already exists for the same period",
}

SAVE_BLOCKED_TEXT = {
    ValidationCategory.OUT_OF_RANGE:
        f"Some grades are outside the allowed range ({GRADE_MIN:g}-{GRADE_MAX:g}).",
    ValidationCategory.EMPTY:
        "Some grade fields were cleared and cannot be saved empty.",
    ValidationCategory.DUPLICATE:
        "A record with the same rubric already exists for this student, subject and period.",
}


@dataclass
class ValidationState:
    out_of_range: Set[CellKey] = field(default_factory=set)
    empty: Set[CellKey] = field(default_factory=set)
    duplicate: Set[CellKey] = field(default_factory=set)

    def of(self, category: ValidationCategory) -> Set[CellKey]:
        if category is ValidationCategory.OUT_OF_RANGE:
            return self.out_of_range
        if category is ValidationCategory.EMPTY:
            return self.empty
        return self.duplicate

    @property
    def is_valid(self) -> bool:
        return not (self.out_of_range or self.empty or self.duplicate)

    def invalid_keys(self) -> Set[CellKey]:
        return self.out_of_range | self.empty | self.duplicate


def _find_cell(rows: Iterable[StudentRow], student_id: int,
               subject_id: int, rubric: str) -> Optional[GradeCell]:
    for row in rows:
        if row.student.id != student_id:
            continue
        block = row.subjects.get(subject_id)
        return block.cells.get(rubric) if block else None
    return None


def recompute_validation(
    rows: List[StudentRow],
    dirty: Set[CellKey],
    original: List[GradeRecord],
    period: str,
    subject_id: int,
) -> ValidationState:
    state = ValidationState()

    # Range: every graded cell of the subject, touched or not
    for row in rows:
        block = row.subjects.get(subject_id)
        if block is None:
            continue
        for rubric, cell in block.cells.items():
            if cell.value is not None and not is_in_range(cell.value):
                state.out_of_range.add((row.student.id, rubric))

    for key in dirty:
        student_id, rubric = key
        cell = _find_cell(rows, student_id, subject_id, rubric)

        # Empty-after-touch: clearing is not the same as never grading
        if cell is None or cell.value is None:
            state.empty.add(key)

        server_id = cell.server_id if cell is not None else None
        for rec in original:
            if (rec.alumno_id == student_id
                    and rec.materia_id == subject_id
                    and rec.rubro == rubric
                    and rec.periodo == period
                    and rec.id != server_id):
                state.duplicate.add(key)
                break

    return state


def cell_error_reasons(state: ValidationState, key: CellKey) -> List[ValidationCategory]:
    """All reasons *key* is invalid, primary reason first."""
    return [c for c in CATEGORY_ORDER if key in state.of(c)]


def blocking_category(state: ValidationState) -> Optional[ValidationCategory]:
    """First non-empty category in priority order, or None when savable."""
    for category in CATEGORY_ORDER:
        if state.of(category):
            return category
    return None


def validation_summary(state: ValidationState) -> List[str]:
    """Human-readable lines for the validation banner."""
    lines = []
    if state.out_of_range:
        lines.append(f"{len(state.out_of_range)} grade(s) outside the allowed range "
                     f"({GRADE_MIN:g}-{GRADE_MAX:g})")
    if state.empty:
        lines.append(f"{len(state.empty)} grade field(s) cannot be left empty")
    if state.duplicate:
        lines.append(f"{len(state.duplicate)} duplicated rubric(s) "
                     "(same student, subject and period)")
    return lines
