import pytest

import data_store
from gradebook import Gradebook
from models import GradeRecord, Student

PERIOD = "Primer Bimestre"
NEXT_PERIOD = "Segundo Bimestre"
GROUP_ID = 5
SUBJECT_ID = 2


@pytest.fixture(autouse=True)
def tmp_session_config(tmp_path, monkeypatch):
    """Redirect session config and project paths to a temporary directory."""
    monkeypatch.setattr(data_store, "SESSION_CONFIG_PATH",
                        str(tmp_path / "data" / "session_config.json"))
    monkeypatch.setattr(data_store, "_active_project_dir", None)
    monkeypatch.setattr(data_store, "EXPORT_DIR", "")
    monkeypatch.delenv(data_store.ENV_API_URL, raising=False)
    monkeypatch.delenv(data_store.ENV_API_TOKEN, raising=False)
    return tmp_path


@pytest.fixture()
def students():
    return [
        Student(id=1, nombre_completo="Ana López"),
        Student(id=2, nombre_completo="Bruno Díaz"),
        Student(id=3, nombre_completo="Carla Ruiz"),
    ]


@pytest.fixture()
def grades():
    return [
        GradeRecord(id=10, alumno_id=1, materia_id=SUBJECT_ID, rubro="Tarea",
                    periodo=PERIOD, valor=8.0, comentario="bien"),
        GradeRecord(id=11, alumno_id=1, materia_id=SUBJECT_ID, rubro="Examen",
                    periodo=PERIOD, valor=10.0),
        GradeRecord(id=12, alumno_id=2, materia_id=SUBJECT_ID, rubro="Tarea",
                    periodo=PERIOD, valor=6.0),
        GradeRecord(id=13, alumno_id=1, materia_id=SUBJECT_ID, rubro="Tarea",
                    periodo=NEXT_PERIOD, valor=7.0),
    ]


@pytest.fixture()
def gradebook(students, grades):
    gb = Gradebook(group_id=GROUP_ID, subject_id=SUBJECT_ID, subject_name="Matemáticas",
                   period=PERIOD)
    gb.initialize(students, grades)
    return gb
