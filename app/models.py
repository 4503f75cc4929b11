"""Data models for the gradebook."""
import math
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple


GRADE_MIN = 0.0
GRADE_MAX = 10.0

GRADE_CATEGORIES = ["Tarea", "Participación", "Examen", "Proyecto", "Final"]
PERIODS = [
    "Primer Bimestre",
    "Segundo Bimestre",
    "Tercer Bimestre",
    "Cuarto Bimestre",
    "Quinto Bimestre",
    "Final",
]
DEFAULT_PERIOD = PERIODS[0]

# (student_id, rubric) — identifies a cell of the active subject
CellKey = Tuple[int, str]


@dataclass
class Student:
    id: int
    nombre_completo: str
    extra_fields: Dict[str, str] = field(default_factory=dict)

    def display_name(self) -> str:
        return f"{self.nombre_completo} (#{self.id})"


@dataclass
class GradeRecord:
    """A grade as persisted by the server."""
    id: int
    alumno_id: int
    materia_id: int
    rubro: str
    periodo: str
    valor: Optional[float] = None      # None = ungraded
    comentario: Optional[str] = None
    grupo_id: Optional[int] = None


@dataclass
class GradeCell:
    value: Optional[float] = None
    comment: Optional[str] = None
    server_id: Optional[int] = None    # None = not persisted yet

    @property
    def is_graded(self) -> bool:
        return self.value is not None


@dataclass
class SubjectBlock:
    subject_id: int
    subject_name: str = ""
    cells: Dict[str, GradeCell] = field(default_factory=dict)
    average: float = 0.0

    def recompute_average(self) -> float:
        self.average = compute_average(c.value for c in self.cells.values())
        return self.average


@dataclass
class StudentRow:
    student: Student
    subjects: Dict[int, SubjectBlock] = field(default_factory=dict)
    expanded: bool = False   # view-only

    def overall_average(self) -> float:
        """Mean of the subject averages, used to sort rows."""
        if not self.subjects:
            return 0.0
        return sum(b.average for b in self.subjects.values()) / len(self.subjects)


@dataclass
class GradeUpdate:
    """One element of the batch-save request."""
    alumno_id: int
    materia_id: int
    grupo_id: int
    rubro: str
    valor: Optional[float]
    periodo: str
    comentario: Optional[str] = None
    id: Optional[int] = None           # absent = insert


class ValidationCategory(str, Enum):
    OUT_OF_RANGE = "range"
    EMPTY = "empty"
    DUPLICATE = "duplicate"


class SaveStatus(str, Enum):
    READY = "ready"
    SAVED = "saved"
    NOTHING_TO_SAVE = "nothing_to_save"
    REJECTED = "rejected"
    FAILED = "failed"
    BUSY = "busy"
    NEEDS_RELOAD = "needs_reload"


@dataclass
class SaveResult:
    status: SaveStatus
    message: str = ""
    category: Optional[ValidationCategory] = None
    updates: List[GradeUpdate] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in (SaveStatus.READY, SaveStatus.SAVED)


def compute_average(values) -> float:
    """Mean of the graded *values*, rounded half-up to one decimal.

    Ungraded entries (None) are left out of the denominator; the average of
    nothing is 0.
    """
    graded = [float(v) for v in values if v is not None]
    if not graded:
        return 0.0
    mean = sum(graded) / len(graded)
    return float(Decimal(repr(mean)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def is_in_range(value: float) -> bool:
    return GRADE_MIN <= value <= GRADE_MAX


def format_grade(value: Optional[float], decimals: int = 1) -> str:
    """Render *value* for display; anything unusable shows as a dash."""
    if value is None:
        return "–"
    try:
        value = float(value)
    except (TypeError, ValueError):
        return "–"
    if not math.isfinite(value) or not is_in_range(value):
        return "–"
    return f"{value:.{decimals}f}"


def parse_grade_text(text: Optional[str]) -> Tuple[bool, Optional[float]]:
    """Parse what the user typed into a grade cell.

    Returns *(accepted, value)*. Empty text clears the grade, a decimal comma
    is accepted ("8,5"), anything else that is not a finite number is
    rejected so the caller can restore the previous value.
    """
    text = (text or "").strip().replace(",", ".")
    if text == "":
        return True, None
    try:
        value = float(text)
    except ValueError:
        return False, None
    if not math.isfinite(value):
        return False, None
    return True, value
