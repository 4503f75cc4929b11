"""Wire formats exchanged with the school server.

Server payloads are duck-typed JSON; everything is validated and coerced here
before it reaches the grid.
"""
import logging
import math
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from models import GradeRecord, GradeUpdate, Student

logger = logging.getLogger(__name__)


class StudentPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int
    nombre_completo: str = Field(default="", alias="nombreCompleto")

    def to_model(self) -> Student:
        extra = {k: str(v) for k, v in (self.model_extra or {}).items() if v is not None}
        return Student(id=self.id, nombre_completo=self.nombre_completo, extra_fields=extra)


class GradePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    alumno_id: int = Field(alias="alumnoId")
    materia_id: int = Field(alias="materiaId")
    grupo_id: Optional[int] = Field(default=None, alias="grupoId")
    rubro: str
    periodo: str
    valor: Optional[float] = None
    comentario: Optional[str] = None

    @field_validator("valor", mode="before")
    @classmethod
    def _coerce_valor(cls, v: Any) -> Optional[float]:
        # "8.5", "8,5", 8.5 → 8.5;  None, "" → ungraded
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, str):
            v = v.strip().replace(",", ".")
            if v == "":
                return None
        try:
            value = float(v)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric grade value %r", v)
            return None
        return value if math.isfinite(value) else None

    def to_model(self) -> GradeRecord:
        return GradeRecord(
            id=self.id,
            alumno_id=self.alumno_id,
            materia_id=self.materia_id,
            grupo_id=self.grupo_id,
            rubro=self.rubro,
            periodo=self.periodo,
            valor=self.valor,
            comentario=self.comentario,
        )


class GradeUpdatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[int] = None
    alumno_id: int = Field(alias="alumnoId")
    materia_id: int = Field(alias="materiaId")
    grupo_id: int = Field(alias="grupoId")
    rubro: str
    valor: Optional[float] = None
    periodo: str
    comentario: Optional[str] = None

    @classmethod
    def from_model(cls, update: GradeUpdate) -> "GradeUpdatePayload":
        return cls(
            id=update.id,
            alumno_id=update.alumno_id,
            materia_id=update.materia_id,
            grupo_id=update.grupo_id,
            rubro=update.rubro,
            valor=update.valor,
            periodo=update.periodo,
            comentario=update.comentario,
        )

    def to_wire(self) -> dict:
        data = self.model_dump(by_alias=True)
        # Inserts carry no id key at all
        if data.get("id") is None:
            data.pop("id", None)
        return data


class BatchGradesRequest(BaseModel):
    grades: List[GradeUpdatePayload] = []

    def to_wire(self) -> dict:
        return {"grades": [g.to_wire() for g in self.grades]}


def _parse_list(payload: Any, schema, what: str) -> list:
    if payload is None:
        return []
    if not isinstance(payload, list):
        logger.warning("Expected a list of %s, got %s", what, type(payload).__name__)
        return []
    result = []
    for item in payload:
        try:
            result.append(schema.model_validate(item).to_model())
        except ValidationError as exc:
            logger.warning("Skipping malformed %s record %r: %s", what, item, exc.errors()[0].get("msg"))
    return result


def parse_students(payload: Any) -> List[Student]:
    return _parse_list(payload, StudentPayload, "student")


def parse_grades(payload: Any) -> List[GradeRecord]:
    return _parse_list(payload, GradePayload, "grade")


def batch_body(updates: List[GradeUpdate]) -> dict:
    """Build the JSON body for the batch endpoint."""
    return BatchGradesRequest(
        grades=[GradeUpdatePayload.from_model(u) for u in updates]
    ).to_wire()
