"""HTTP client for the question source API."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field
import requests

from scholar_quiz.constants.network_constants import API_BASE_URL, REQUEST_TIMEOUT_SECONDS
from scholar_quiz.core.errors import QuizApiError

logger = logging.getLogger(__name__)


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class QuizSubjectPayload(_WireModel):
    subject_id: str = Field(alias="subjectId")
    year: int
    number_of_questions: int = Field(alias="numberOfQuestions")


class StartQuizPayload(_WireModel):
    mode: str
    subjects: list[QuizSubjectPayload]
    duration_in_minutes: int = Field(alias="durationInMinutes")


class SubmitQuizPayload(_WireModel):
    answers: dict[str, str]
    time_spent_per_subject: dict[str, int] = Field(alias="timeSpentPerSubject")


@dataclass(slots=True)
class StartedQuiz:
    """The parts of a ``/quiz/start`` response the session needs."""

    quiz_id: str
    grouped_questions: list[dict[str, Any]]


class QuizApiClient:
    """Thin wrapper around the backend REST endpoints used by the quiz engine."""

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        token_provider: Callable[[], str | None] | None = None,
        on_unauthorized: Callable[[], None] | None = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._on_unauthorized = on_unauthorized
        self._timeout = timeout
        self._session = session or requests.Session()

    # --- Quiz lifecycle ---

    def start_quiz(self, payload: StartQuizPayload) -> StartedQuiz:
        body = self._request("POST", "/quiz/start", json=payload.model_dump(by_alias=True))
        quiz = body.get("quiz") if isinstance(body, dict) else None
        if not isinstance(quiz, dict):
            quiz = body if isinstance(body, dict) else {}

        quiz_id = quiz.get("id") or quiz.get("_id")
        if not quiz_id:
            raise QuizApiError("Quiz start response did not include a quiz id.", payload=body)

        grouped = quiz.get("groupedQuestions")
        if not isinstance(grouped, list):
            grouped = []
        return StartedQuiz(quiz_id=str(quiz_id), grouped_questions=[g for g in grouped if isinstance(g, dict)])

    def submit_quiz(self, quiz_id: str, payload: SubmitQuizPayload) -> Any:
        return self._request("POST", f"/quiz/{quiz_id}/submit", json=payload.model_dump(by_alias=True))

    # --- Catalogue and offline sync ---

    def list_subjects(self) -> list[dict[str, Any]]:
        body = self._request("GET", "/subjects")
        if isinstance(body, dict):
            body = body.get("data")
        return [s for s in body or [] if isinstance(s, dict)]

    def fetch_questions(self, subject_id: str, year: int, limit: int = 100) -> list[dict[str, Any]]:
        body = self._request("GET", "/questions", params={"subjectId": subject_id, "year": year, "limit": limit})
        records = body.get("data") if isinstance(body, dict) else body
        return [q for q in records or [] if isinstance(q, dict)]

    def available_years(self, subject_ids: list[str]) -> dict[str, list[int]]:
        body = self._request("GET", "/questions/available-years", params={"subjectIds": ",".join(subject_ids)})
        items = body.get("data") if isinstance(body, dict) else body
        years: dict[str, list[int]] = {}
        for item in items or []:
            if isinstance(item, dict) and item.get("subjectId") is not None:
                years[str(item["subjectId"])] = [int(y) for y in item.get("years") or []]
        return years

    def close(self) -> None:
        """Close the HTTP session; requests still in flight fail with a transport error."""
        self._session.close()

    # --- Internals ---

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self._token_provider() if self._token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        else:
            logger.warning("No user token available for API request")
        return headers

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{endpoint}"
        try:
            response = self._session.request(method, url, headers=self._headers(), timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            logger.error("%s %s failed: %s", method, endpoint, exc)
            raise QuizApiError(f"Could not reach the server: {exc}") from exc

        logger.info("%s %s returned %s", method, endpoint, response.status_code)
        data = _json_or_none(response)

        if response.status_code == 401:
            if self._on_unauthorized:
                self._on_unauthorized()
            raise QuizApiError("Session expired", status=401, payload=data)

        if not response.ok:
            raise QuizApiError(_error_message(data) or response.reason or "Request failed",
                               status=response.status_code, payload=data)
        return data


def _json_or_none(response: requests.Response) -> Any:
    if "application/json" not in response.headers.get("content-type", ""):
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    nested = data.get("data")
    nested_message = nested.get("message") if isinstance(nested, dict) else None
    return data.get("message") or data.get("error") or nested_message
