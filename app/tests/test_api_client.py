import json

import pytest
import requests

from api_client import ApiError, GradesApi, submit_batch
from models import GradeUpdate


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None, reason="OK"):
        self.status_code = status_code
        self.reason = reason
        if text is None:
            text = "" if payload is None else json.dumps(payload)
        self.text = text
        self.content = text.encode("utf-8")

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return json.loads(self.text)


class FakeSession:
    def __init__(self, *responses):
        self.headers = {}
        self.calls = []
        self._responses = list(responses)

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return self._responses.pop(0)


def test_fetch_students_hits_group_endpoint():
    session = FakeSession(FakeResponse(payload=[{"id": 1, "nombreCompleto": "Ana"}]))
    api = GradesApi("http://school.test/", token="t0k", timeout=3, session=session)
    students = api.fetch_students(5)

    method, url, kwargs = session.calls[0]
    assert (method, url) == ("GET", "http://school.test/api/students/group/5")
    assert kwargs["timeout"] == 3
    assert session.headers["Authorization"] == "Bearer t0k"
    assert [s.nombre_completo for s in students] == ["Ana"]


def test_no_token_sends_no_authorization_header():
    session = FakeSession()
    GradesApi("http://school.test", session=session)
    assert "Authorization" not in session.headers
    assert session.headers["Accept"] == "application/json"


def test_fetch_grades_hits_subject_endpoint():
    session = FakeSession(FakeResponse(payload=[
        {"id": 10, "alumnoId": 1, "materiaId": 2, "rubro": "Tarea", "valor": 8,
         "periodo": "Primer Bimestre"},
    ]))
    api = GradesApi("http://school.test", session=session)
    grades = api.fetch_grades(5, 2)
    assert session.calls[0][1] == "http://school.test/api/grades/group/5/subject/2"
    assert grades[0].valor == 8.0


def test_save_batch_sends_single_put():
    session = FakeSession(FakeResponse(payload={"message": "ok"}))
    api = GradesApi("http://school.test", session=session)
    api.save_batch([
        GradeUpdate(alumno_id=3, materia_id=2, grupo_id=5, rubro="Examen",
                    valor=7.0, periodo="P1"),
    ])
    assert len(session.calls) == 1
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("PUT", "http://school.test/api/grades/batch")
    assert kwargs["json"]["grades"][0]["alumnoId"] == 3
    assert "id" not in kwargs["json"]["grades"][0]


def test_error_message_comes_from_server_body():
    session = FakeSession(FakeResponse(409, {"message": "Calificación duplicada"},
                                       reason="Conflict"))
    api = GradesApi("http://school.test", session=session)
    with pytest.raises(ApiError) as info:
        api.save_batch([])
    assert info.value.status_code == 409
    assert info.value.message == "Calificación duplicada"


def test_error_message_falls_back_to_text():
    session = FakeSession(FakeResponse(502, text="Bad gateway"))
    api = GradesApi("http://school.test", session=session)
    with pytest.raises(ApiError) as info:
        api.fetch_students(1)
    assert info.value.message == "Bad gateway"
    assert str(info.value) == "502: Bad gateway"


def test_empty_response_body_is_none():
    session = FakeSession(FakeResponse(204, reason="No Content"))
    api = GradesApi("http://school.test", session=session)
    assert api.save_batch([]) is None


class RaisingApi:
    def __init__(self, exc):
        self._exc = exc

    def save_batch(self, updates):
        raise self._exc


def test_submit_batch_reports_success_as_none():
    session = FakeSession(FakeResponse(payload={"message": "ok"}))
    assert submit_batch(GradesApi("http://school.test", session=session), []) is None


def test_submit_batch_returns_server_message():
    session = FakeSession(FakeResponse(500, {"detail": "database is locked"}))
    api = GradesApi("http://school.test", session=session)
    assert submit_batch(api, []) == "database is locked"


def test_submit_batch_returns_network_error():
    message = submit_batch(RaisingApi(requests.ConnectionError("connection refused")), [])
    assert "connection refused" in message


def test_submit_batch_never_raises():
    message = submit_batch(RaisingApi(KeyError("alumnoId")), [])
    assert message.startswith("Unexpected error")
