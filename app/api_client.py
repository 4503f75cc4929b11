"""HTTP access to the school server.

Only three calls are needed by the grade table: the group's students, the
group/subject grades, and the batch save.
"""
import logging
import time
from typing import List, Optional

import requests

from models import GradeRecord, GradeUpdate, Student
from schemas import batch_body, parse_grades, parse_students

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class ApiError(Exception):
    """Non-2xx answer from the server; *message* is passed to the user verbatim."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("message", "detail", "error"):
            if data.get(key):
                return str(data[key])
    return response.text or response.reason or "Unknown error"


class GradesApi:
    def __init__(self, base_url: str, token: Optional[str] = None,
                 timeout: float = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    def _request(self, method: str, path: str, **kwargs):
        url = f"{self.base_url}{path}"
        t0 = time.perf_counter()
        logger.info("REQUEST  %s %s", method, path)
        response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        elapsed_ms = (time.perf_counter() - t0) * 1000
        logger.info("RESPONSE %s %s status: %d, time: %.1fms",
                    method, path, response.status_code, elapsed_ms)
        if not response.ok:
            raise ApiError(response.status_code, _error_message(response))
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            logger.warning("%s %s did not return JSON", method, path)
            return None

    def fetch_students(self, group_id: int) -> List[Student]:
        data = self._request("GET", f"/api/students/group/{group_id}")
        students = parse_students(data)
        logger.info("Loaded %d student(s) for group %s", len(students), group_id)
        return students

    def fetch_grades(self, group_id: int, subject_id: int) -> List[GradeRecord]:
        data = self._request("GET", f"/api/grades/group/{group_id}/subject/{subject_id}")
        grades = parse_grades(data)
        logger.info("Loaded %d grade(s) for group %s, subject %s",
                    len(grades), group_id, subject_id)
        return grades

    def save_batch(self, updates: List[GradeUpdate]):
        """Send every update in a single PUT; the server applies them together."""
        return self._request("PUT", "/api/grades/batch", json=batch_body(updates))


def submit_batch(api: GradesApi, updates: List[GradeUpdate]) -> Optional[str]:
    """Send *updates* and return None on success or the message to show the user.

    Never raises: a save worker must always report back, or the gradebook
    would stay in its saving state.
    """
    try:
        api.save_batch(updates)
    except ApiError as exc:
        return exc.message
    except requests.RequestException as exc:
        return str(exc)
    except Exception as exc:
        logger.exception("Unexpected error while saving grades")
        return f"Unexpected error: {exc}"
    return None
