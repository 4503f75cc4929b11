from models import GradeUpdate
from schemas import batch_body, parse_grades, parse_students


def test_parse_students_keeps_extra_fields():
    students = parse_students([
        {"id": 1, "nombreCompleto": "Ana López", "curp": "ABC123", "grupoId": 5},
    ])
    assert len(students) == 1
    assert students[0].id == 1
    assert students[0].nombre_completo == "Ana López"
    assert students[0].extra_fields == {"curp": "ABC123", "grupoId": "5"}


def test_parse_grades_coerces_valor():
    raw = [
        {"id": 1, "alumnoId": 1, "materiaId": 2, "rubro": "Tarea", "valor": "8.5",
         "periodo": "P1", "comentario": None},
        {"id": 2, "alumnoId": 1, "materiaId": 2, "rubro": "Examen", "valor": 9,
         "periodo": "P1"},
        {"id": 3, "alumnoId": 1, "materiaId": 2, "rubro": "Final", "valor": "7,5",
         "periodo": "P1"},
        {"id": 4, "alumnoId": 1, "materiaId": 2, "rubro": "Proyecto", "valor": None,
         "periodo": "P1"},
        {"id": 5, "alumnoId": 1, "materiaId": 2, "rubro": "Participación", "valor": "",
         "periodo": "P1"},
        {"id": 6, "alumnoId": 1, "materiaId": 2, "rubro": "Extra", "valor": "n/a",
         "periodo": "P1"},
    ]
    grades = parse_grades(raw)
    assert [g.valor for g in grades] == [8.5, 9.0, 7.5, None, None, None]
    assert grades[0].alumno_id == 1
    assert grades[0].materia_id == 2


def test_parse_grades_skips_malformed_records():
    grades = parse_grades([
        {"id": 1, "materiaId": 2, "rubro": "Tarea", "periodo": "P1"},   # no alumnoId
        "not a record",
        {"id": 2, "alumnoId": 3, "materiaId": 2, "rubro": "Tarea", "periodo": "P1",
         "valor": "6"},
    ])
    assert [g.id for g in grades] == [2]


def test_parse_non_list_degrades_to_empty():
    assert parse_grades(None) == []
    assert parse_grades({"error": "boom"}) == []
    assert parse_students("") == []


def test_batch_body_uses_server_field_names():
    body = batch_body([
        GradeUpdate(id=10, alumno_id=1, materia_id=2, grupo_id=5, rubro="Tarea",
                    valor=9.0, periodo="P1", comentario="ok"),
        GradeUpdate(alumno_id=3, materia_id=2, grupo_id=5, rubro="Examen",
                    valor=7.0, periodo="P1"),
    ])
    assert body == {"grades": [
        {"id": 10, "alumnoId": 1, "materiaId": 2, "grupoId": 5, "rubro": "Tarea",
         "valor": 9.0, "periodo": "P1", "comentario": "ok"},
        {"alumnoId": 3, "materiaId": 2, "grupoId": 5, "rubro": "Examen",
         "valor": 7.0, "periodo": "P1", "comentario": None},
    ]}
