"""Shared fakes for the quiz engine tests."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from scholar_quiz.core.entitlement import StaticEntitlement
from scholar_quiz.core.errors import QuizApiError
from scholar_quiz.core.models import QuizMode, SubjectSelection
from scholar_quiz.core.quiz_config import QuizConfig
from scholar_quiz.core.quiz_session_manager import QuizSessionManager
from scholar_quiz.core.services.question_cache import MemoryKeyValueStore, QuestionCacheStore
from scholar_quiz.core.services.quiz_api_client import StartedQuiz, StartQuizPayload, SubmitQuizPayload

HOST_ROOT = "https://api.example.test"


def raw_question(qid: str, correct: str | None = "a", option_count: int = 4, **extra: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "_id": qid,
        "question": f"Question {qid}?",
        "options": [f"{qid}-option-{i}" for i in range(option_count)],
        "explanation": f"Because of {qid}.",
    }
    if correct is not None:
        record["correctOption"] = correct
    record.update(extra)
    return record


def selection(subject_id: str, count: int = 10, year: int = 2020, name: str | None = None) -> SubjectSelection:
    return SubjectSelection(subject_id=subject_id, display_name=name or subject_id.title(), year=year, question_count=count)


class FakeQuizApi:
    """In-memory stand-in for the question source API."""

    def __init__(self, groups: list[dict[str, Any]] | None = None, quiz_id: str = "quiz-1") -> None:
        self.groups = groups or []
        self.quiz_id = quiz_id
        self.start_error: QuizApiError | None = None
        self.submit_error: QuizApiError | None = None
        self.start_calls: list[StartQuizPayload] = []
        self.submit_calls: list[tuple[str, SubmitQuizPayload]] = []
        self.on_submit: Callable[[], None] | None = None

    def start_quiz(self, payload: StartQuizPayload) -> StartedQuiz:
        self.start_calls.append(payload)
        if self.start_error is not None:
            raise self.start_error
        return StartedQuiz(quiz_id=self.quiz_id, grouped_questions=self.groups)

    def submit_quiz(self, quiz_id: str, payload: SubmitQuizPayload) -> dict[str, Any]:
        self.submit_calls.append((quiz_id, payload))
        if self.on_submit is not None:
            self.on_submit()
        if self.submit_error is not None:
            raise self.submit_error
        return {"status": "ok"}


class FakeTimer:
    def __init__(self) -> None:
        self.callback: Callable[[], None] | None = None
        self.stop_count = 0

    def start(self, callback: Callable[[], None]) -> None:
        self.callback = callback

    def stop(self) -> None:
        self.callback = None
        self.stop_count += 1

    def is_active(self) -> bool:
        return self.callback is not None

    def fire(self, times: int = 1) -> None:
        for _ in range(times):
            if self.callback is None:
                return
            self.callback()


class EventRecorder:
    def __init__(self) -> None:
        self.events: list[tuple[Any, dict[str, Any]]] = []

    def __call__(self, event: Any, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    def names(self) -> list[Any]:
        return [event for event, _ in self.events]


@pytest.fixture
def cache() -> QuestionCacheStore:
    return QuestionCacheStore(MemoryKeyValueStore())


@pytest.fixture
def timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture
def entitlement() -> StaticEntitlement:
    return StaticEntitlement(premium=True)


@pytest.fixture
def make_manager(cache: QuestionCacheStore, timer: FakeTimer, entitlement: StaticEntitlement):
    def factory(api: FakeQuizApi) -> QuizSessionManager:
        return QuizSessionManager(
            api=api,
            cache=cache,
            entitlement=entitlement,
            timer=timer,
            host_root=HOST_ROOT,
            run_in_background=lambda task: task(),
        )

    return factory


def config(mode: QuizMode, *subjects: SubjectSelection, duration: int = 30) -> QuizConfig:
    return QuizConfig(mode=mode, subjects=list(subjects), duration_minutes=duration)
