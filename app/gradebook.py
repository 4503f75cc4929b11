"""Working copy of a grade grid: edits, dirty tracking, validation and the
batch-save diff.

The Gradebook object is the only owner of the grid state. The grades panel
and the main window never mutate rows directly; they call the operations
below and re-read ``rows``/``validation`` afterwards.
"""
import logging
import math
from typing import Callable, Dict, List, Optional, Set, Tuple

import requests

from api_client import ApiError
from models import (
    DEFAULT_PERIOD,
    CellKey,
    GradeCell,
    GradeRecord,
    GradeUpdate,
    SaveResult,
    SaveStatus,
    Student,
    StudentRow,
    SubjectBlock,
)
from validation import (
    SAVE_BLOCKED_TEXT,
    ValidationState,
    blocking_category,
    recompute_validation,
)

logger = logging.getLogger(__name__)

ALL_RUBRICS = "Todos"
SORT_DESC = "desc"
SORT_ASC = "asc"


def build_grid(
    students: Optional[List[Student]],
    grades: Optional[List[GradeRecord]],
    period: str,
    subject_name: str = "",
) -> List[StudentRow]:
    """Build one StudentRow per student from the server grades of *period*."""
    rows: List[StudentRow] = []
    period_grades = [g for g in (grades or []) if g.periodo == period]
    for student in students or []:
        row = StudentRow(student=student)
        for grade in period_grades:
            if grade.alumno_id != student.id:
                continue
            block = row.subjects.get(grade.materia_id)
            if block is None:
                block = SubjectBlock(subject_id=grade.materia_id, subject_name=subject_name)
                row.subjects[grade.materia_id] = block
            # Later records for the same rubric replace earlier ones
            block.cells[grade.rubro] = GradeCell(
                value=grade.valor,
                comment=grade.comentario,
                server_id=grade.id,
            )
        for block in row.subjects.values():
            block.recompute_average()
        rows.append(row)
    return rows


def next_sort_order(current: Optional[str]) -> Optional[str]:
    """Cycle unsorted → best first → worst first → unsorted."""
    if current is None:
        return SORT_DESC
    if current == SORT_DESC:
        return SORT_ASC
    return None


class Gradebook:
    """Grade grid for one group and one subject."""

    def __init__(self, group_id: int, subject_id: int, subject_name: str = "",
                 period: str = DEFAULT_PERIOD):
        self.group_id = group_id
        self.subject_id = subject_id
        self.subject_name = subject_name
        self._period = period
        self._students: List[Student] = []
        self._original: List[GradeRecord] = []
        self._rows: List[StudentRow] = []
        self._dirty: Set[CellKey] = set()
        self._validation = ValidationState()
        self._in_flight: Set[CellKey] = set()
        self._inserted: Set[CellKey] = set()
        self._touched_in_flight: Set[CellKey] = set()
        # Inserted by the last save but still dirty; their new ids are unknown
        self._awaiting_ids: Set[CellKey] = set()
        self._saving = False

    # ── Read-only views ───────────────────────────────────────────────────────

    @property
    def period(self) -> str:
        return self._period

    @property
    def rows(self) -> List[StudentRow]:
        return self._rows

    @property
    def dirty(self) -> Set[CellKey]:
        return set(self._dirty)

    @property
    def has_unsaved_changes(self) -> bool:
        return bool(self._dirty)

    @property
    def validation(self) -> ValidationState:
        return self._validation

    @property
    def original_grades(self) -> List[GradeRecord]:
        return self._original

    @property
    def is_saving(self) -> bool:
        return self._saving

    @property
    def needs_reload(self) -> bool:
        """True when pending edits need fresh server ids before the next save."""
        return bool(self._awaiting_ids)

    def is_dirty(self, student_id: int, rubric: str) -> bool:
        return (student_id, rubric) in self._dirty

    def row_for(self, student_id: int) -> Optional[StudentRow]:
        return next((r for r in self._rows if r.student.id == student_id), None)

    def cell(self, student_id: int, rubric: str) -> Optional[GradeCell]:
        row = self.row_for(student_id)
        if row is None:
            return None
        block = row.subjects.get(self.subject_id)
        return block.cells.get(rubric) if block else None

    # ── Initialization ────────────────────────────────────────────────────────

    def initialize(self, students: Optional[List[Student]],
                   grades: Optional[List[GradeRecord]]) -> None:
        """Rebuild the grid from authoritative server data; local edits are lost."""
        self._students = list(students or [])
        self._original = list(grades or [])
        self._rebuild()

    def _rebuild(self) -> None:
        self._rows = build_grid(self._students, self._original, self._period,
                                self.subject_name)
        self._dirty = set()
        self._touched_in_flight = set()
        self._awaiting_ids = set()
        self._revalidate()
        logger.debug("Grid rebuilt for period %r: %d student(s), %d grade(s)",
                     self._period, len(self._rows), len(self._original))

    def merge_server_data(self, students: Optional[List[Student]],
                          grades: Optional[List[GradeRecord]]) -> None:
        """Rebuild from fresh server data, then re-apply the pending edits.

        Used after a save that left edits behind: the rebuilt cells carry the
        ids the server assigned, so the next batch updates instead of inserting.
        """
        if self._saving:
            raise RuntimeError("merge_server_data() called while a save is in flight")
        pending = {}
        for key in self._dirty:
            cell = self.cell(*key)
            pending[key] = (cell.value, cell.comment) if cell is not None else (None, None)

        self._students = list(students or [])
        self._original = list(grades or [])
        self._rebuild()

        for (student_id, rubric), (value, comment) in pending.items():
            row = self.row_for(student_id)
            if row is None:
                logger.warning("Pending edit for %s/%s dropped: student no longer listed",
                               student_id, rubric)
                continue
            self._write_cell(row, rubric, value, comment)
            self._dirty.add((student_id, rubric))
        self._revalidate()
        logger.info("Merged server data, %d edit(s) still pending", len(self._dirty))

    def _revalidate(self) -> None:
        self._validation = recompute_validation(
            self._rows, self._dirty, self._original, self._period, self.subject_id,
        )

    # ── Edits ─────────────────────────────────────────────────────────────────

    def edit_cell(self, student_id: int, subject_id: int, rubric: str,
                  value: Optional[float], comment: Optional[str]) -> None:
        """Write *value* and *comment* into a cell and mark it dirty.

        The comment is stored as given: callers that only change the value
        must pass the existing comment back in.
        """
        if subject_id != self.subject_id:
            raise ValueError(
                f"Gradebook is editing subject {self.subject_id}, not {subject_id}"
            )
        if value is not None:
            value = float(value)
            if not math.isfinite(value):
                raise ValueError(f"Grade must be a finite number, got {value!r}")

        row = self.row_for(student_id)
        if row is None:
            logger.warning("edit_cell: unknown student %s ignored", student_id)
            return

        self._write_cell(row, rubric, value, comment)
        key = (student_id, rubric)
        self._dirty.add(key)
        if self._saving:
            self._touched_in_flight.add(key)
        self._revalidate()
        logger.debug("edit_cell %s/%s → %r", student_id, rubric, value)

    def _write_cell(self, row: StudentRow, rubric: str, value: Optional[float],
                    comment: Optional[str]) -> None:
        block = row.subjects.get(self.subject_id)
        if block is None:
            block = SubjectBlock(subject_id=self.subject_id, subject_name=self.subject_name)
            row.subjects[self.subject_id] = block
        cell = block.cells.get(rubric)
        if cell is None:
            cell = GradeCell()
            block.cells[rubric] = cell
        cell.value = value
        cell.comment = comment
        block.recompute_average()

    def edit_comment(self, student_id: int, rubric: str, comment: Optional[str]) -> None:
        """Change only the comment of a cell, keeping its value."""
        cell = self.cell(student_id, rubric)
        value = cell.value if cell is not None else None
        self.edit_cell(student_id, self.subject_id, rubric, value, comment or None)

    # ── Save ──────────────────────────────────────────────────────────────────

    def _existing_ids(self) -> Dict[Tuple[int, str], int]:
        ids: Dict[Tuple[int, str], int] = {}
        for grade in self._original:
            if grade.periodo == self._period and grade.materia_id == self.subject_id:
                ids[(grade.alumno_id, grade.rubro)] = grade.id
        return ids

    def build_updates(self) -> List[GradeUpdate]:
        """One GradeUpdate per dirty cell; untouched cells never appear."""
        existing = self._existing_ids()
        updates = []
        for student_id, rubric in sorted(self._dirty, key=lambda k: (k[0], k[1])):
            cell = self.cell(student_id, rubric) or GradeCell()
            updates.append(GradeUpdate(
                id=existing.get((student_id, rubric)),
                alumno_id=student_id,
                materia_id=self.subject_id,
                grupo_id=self.group_id,
                rubro=rubric,
                valor=cell.value,
                periodo=self._period,
                comentario=cell.comment,
            ))
        return updates

    def begin_save(self) -> SaveResult:
        """Check the save gate and freeze the batch to submit."""
        if self._saving:
            return SaveResult(SaveStatus.BUSY, "A save is already in progress.")

        category = blocking_category(self._validation)
        if category is not None:
            logger.info("Save rejected locally: %s", category.value)
            return SaveResult(SaveStatus.REJECTED, SAVE_BLOCKED_TEXT[category],
                              category=category)

        if not self._dirty:
            return SaveResult(SaveStatus.NOTHING_TO_SAVE, "There are no changes to save.")

        if self._awaiting_ids:
            # Sending these again without their new ids would insert them twice
            return SaveResult(SaveStatus.NEEDS_RELOAD,
                              "Reload the grades from the server before saving again.")

        updates = self.build_updates()
        self._saving = True
        self._in_flight = {(u.alumno_id, u.rubro) for u in updates}
        self._inserted = {(u.alumno_id, u.rubro) for u in updates if u.id is None}
        self._touched_in_flight = set()
        logger.info("Submitting %d grade update(s) for period %r",
                    len(updates), self._period)
        return SaveResult(SaveStatus.READY, updates=updates)

    def finish_save(self, error: Optional[str] = None) -> SaveResult:
        """Record the outcome of the request started by begin_save()."""
        if not self._saving:
            raise RuntimeError("finish_save() called without begin_save()")
        self._saving = False
        submitted, self._in_flight = self._in_flight, set()
        inserted, self._inserted = self._inserted, set()

        if error is not None:
            # Nothing is presumed saved; keep every edit for a retry
            self._touched_in_flight = set()
            logger.warning("Batch save failed: %s", error)
            return SaveResult(SaveStatus.FAILED, error)

        # Cells edited again while the request was in flight stay dirty
        self._dirty = {k for k in self._dirty
                       if k not in submitted or k in self._touched_in_flight}
        self._awaiting_ids = inserted & self._touched_in_flight
        self._touched_in_flight = set()
        self._revalidate()
        logger.info("Batch save succeeded (%d record(s))", len(submitted))
        return SaveResult(SaveStatus.SAVED, "Grades saved successfully.")

    def save(self, submit: Callable[[List[GradeUpdate]], object]) -> SaveResult:
        """Validate, submit the whole batch through *submit*, record the outcome."""
        result = self.begin_save()
        if result.status is not SaveStatus.READY:
            return result
        try:
            submit(result.updates)
        except ApiError as exc:
            return self.finish_save(error=exc.message)
        except requests.RequestException as exc:
            return self.finish_save(error=str(exc))
        except Exception:
            self.finish_save(error="unexpected error")
            raise
        saved = self.finish_save()
        saved.updates = result.updates
        return saved

    # ── Period ────────────────────────────────────────────────────────────────

    def switch_period(self, new_period: str,
                      confirm: Optional[Callable[[], bool]] = None) -> bool:
        """Move to *new_period*, discarding edits only if *confirm* agrees."""
        if new_period == self._period:
            return False
        if self._dirty:
            if confirm is None or not confirm():
                logger.debug("Period switch to %r cancelled", new_period)
                return False
        self._period = new_period
        self._rebuild()
        logger.info("Switched to period %r", new_period)
        return True

    # ── View shaping ──────────────────────────────────────────────────────────

    def filtered_rows(self, search: str = "", rubric: str = ALL_RUBRICS,
                      sort: Optional[str] = None) -> List[StudentRow]:
        rows = self._rows
        text = search.strip().lower()
        if text:
            rows = [r for r in rows if text in r.student.nombre_completo.lower()]
        if rubric != ALL_RUBRICS:
            rows = [r for r in rows
                    if any(rubric in b.cells for b in r.subjects.values())]
        if sort is not None:
            rows = sorted(rows, key=lambda r: r.overall_average(),
                          reverse=(sort == SORT_DESC))
        return list(rows)

    def set_expanded(self, student_id: int, expanded: bool) -> None:
        row = self.row_for(student_id)
        if row is not None:
            row.expanded = expanded

    def toggle_expanded(self, student_id: int) -> None:
        row = self.row_for(student_id)
        if row is not None:
            row.expanded = not row.expanded

    def expand_all(self, expanded: bool = True) -> None:
        for row in self._rows:
            row.expanded = expanded
