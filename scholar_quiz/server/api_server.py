"""FastAPI bridge exposing the quiz engine to a presentation layer."""

from __future__ import annotations

from collections import deque
from contextlib import contextmanager
from dataclasses import asdict
import logging
from threading import Lock, Thread
from typing import Any, Callable, Iterator, Protocol

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field
import uvicorn

from scholar_quiz.constants.about import APP_ABOUT_TEXT, APP_LICENSE, APP_NAME, APP_VERSION
from scholar_quiz.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from scholar_quiz.constants.quiz_constants import DEFAULT_EXAM_DURATION_MINUTES, DEFAULT_QUESTION_COUNT
from scholar_quiz.core.errors import (
    CacheSyncError,
    InvalidSessionStateError,
    QuizApiError,
    QuizConfigError,
    QuizStartError,
    SessionBusyError,
    SubmissionError,
)
from scholar_quiz.core.markdown_math_renderer import renderer
from scholar_quiz.core.models import (
    CorrectionRecord,
    Option,
    Question,
    QuizMode,
    SessionEvent,
    SessionSnapshot,
    SubjectSelection,
)
from scholar_quiz.core.quiz_config import QuizConfig
from scholar_quiz.core.quiz_session_manager import QuizSessionManager
from scholar_quiz.core.services.cache_sync import CacheSyncJob

logger = logging.getLogger(__name__)

_EVENT_BACKLOG = 100


class QuestionCatalogue(Protocol):
    def list_subjects(self) -> list[dict[str, Any]]: ...

    def available_years(self, subject_ids: list[str]) -> dict[str, list[int]]: ...


class SubjectPayload(BaseModel):
    subject_id: str
    display_name: str
    year: int
    question_count: int = DEFAULT_QUESTION_COUNT


class StartSessionPayload(BaseModel):
    mode: QuizMode
    subjects: list[SubjectPayload] = Field(default_factory=list)
    duration_minutes: int = DEFAULT_EXAM_DURATION_MINUTES


class AnswerPayload(BaseModel):
    option_index: int


class SessionHolder:
    """Keeps the one live session and the events it has emitted."""

    def __init__(self, manager_factory: Callable[[], QuizSessionManager]) -> None:
        self._factory = manager_factory
        self._lock = Lock()
        self._manager: QuizSessionManager | None = None
        self._events: deque[dict[str, Any]] = deque(maxlen=_EVENT_BACKLOG)

    def replace(self) -> QuizSessionManager:
        manager = self._factory()
        with self._lock:
            previous = self._manager
            self._manager = manager
            self._events.clear()
        if previous is not None:
            previous.abandon()
        manager.subscribe(self._record_event)
        return manager

    def current(self) -> QuizSessionManager:
        with self._lock:
            manager = self._manager
        if manager is None:
            raise HTTPException(status_code=404, detail="No quiz session is active.")
        return manager

    def discard(self) -> None:
        with self._lock:
            manager = self._manager
            self._manager = None
            self._events.clear()
        if manager is not None:
            manager.abandon()

    def drain_events(self) -> list[dict[str, Any]]:
        with self._lock:
            events = list(self._events)
            self._events.clear()
        return events

    def _record_event(self, event: SessionEvent, payload: dict[str, Any]) -> None:
        with self._lock:
            self._events.append({"event": event.value, **payload})


@contextmanager
def _engine_errors() -> Iterator[None]:
    try:
        yield
    except SessionBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except InvalidSessionStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except SubmissionError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except (QuizConfigError, QuizStartError, ValueError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _option_view(option: Option, index: int, reveal: bool, question: Question) -> dict[str, object]:
    view: dict[str, object] = {
        "index": index,
        "image": option.image,
        **renderer.render_display(option.text),
    }
    if reveal:
        view["is_correct"] = question.is_option_correct(index)
    return view


def _question_view(question: Question, reveal: bool) -> dict[str, object]:
    view: dict[str, object] = {
        "id": question.id,
        **renderer.render_display(question.text),
        "options": [_option_view(opt, i, reveal, question) for i, opt in enumerate(question.options)],
        "question_image": question.question_image,
        "image_position": question.image_position,
    }
    if reveal:
        view["explanation"] = renderer.render_display(question.explanation)
        view["explanation_image"] = question.explanation_image
    return view


def _snapshot_view(snapshot: SessionSnapshot) -> dict[str, object]:
    question = snapshot.question
    return {
        "session_id": snapshot.session_id,
        "mode": snapshot.mode.value,
        "status": snapshot.status.value,
        "is_offline": snapshot.is_offline,
        "subject_index": snapshot.subject_index,
        "subject_count": snapshot.subject_count,
        "subject_id": snapshot.subject_id,
        "subject_name": snapshot.subject_name,
        "question_index": snapshot.question_index,
        "question_count": snapshot.question_count,
        "question": _question_view(question, reveal=snapshot.checked) if question else None,
        "selected_option": snapshot.selected_option,
        "checked": snapshot.checked,
        "remaining_seconds": snapshot.remaining_seconds,
        "elapsed_seconds": snapshot.elapsed_seconds,
    }


def _correction_view(record: CorrectionRecord) -> dict[str, object]:
    view = asdict(record)
    view["question"] = renderer.render_display(record.question)
    view["explanation"] = renderer.render_display(record.explanation)
    return view


def _require_snapshot(manager: QuizSessionManager) -> dict[str, object]:
    snapshot = manager.snapshot()
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No quiz session is active.")
    view = _snapshot_view(snapshot)
    view["busy"] = manager.is_busy()
    return view


def create_api_app(
    holder: SessionHolder,
    sync_job: CacheSyncJob | None = None,
    catalogue: QuestionCatalogue | None = None,
) -> FastAPI:
    app = FastAPI(
        title=f"{APP_NAME} bridge",
        version=APP_VERSION,
        description=APP_ABOUT_TEXT,
        license_info={"name": APP_LICENSE},
    )

    def current_manager() -> QuizSessionManager:
        return holder.current()

    @app.post("/session")
    def start_session(payload: StartSessionPayload) -> dict[str, object]:
        config = QuizConfig(
            mode=payload.mode,
            subjects=[
                SubjectSelection(
                    subject_id=s.subject_id,
                    display_name=s.display_name,
                    year=s.year,
                    question_count=s.question_count,
                )
                for s in payload.subjects
            ],
            duration_minutes=payload.duration_minutes,
        )
        with _engine_errors():
            config.validate()
            manager = holder.replace()
            manager.start(config)
        return _require_snapshot(manager)

    @app.get("/session")
    def get_session(manager: QuizSessionManager = Depends(current_manager)) -> dict[str, object]:
        return _require_snapshot(manager)

    @app.delete("/session")
    def leave_session() -> dict[str, str]:
        holder.discard()
        return {"status": "discarded"}

    @app.post("/session/answer")
    def select_answer(
        payload: AnswerPayload,
        manager: QuizSessionManager = Depends(current_manager),
    ) -> dict[str, object]:
        with _engine_errors():
            accepted = manager.select_option(payload.option_index)
        return {"accepted": accepted, "session": _require_snapshot(manager)}

    @app.post("/session/advance")
    def advance(manager: QuizSessionManager = Depends(current_manager)) -> dict[str, object]:
        with _engine_errors():
            outcome = manager.advance()
        return {"outcome": outcome.value, "session": _require_snapshot(manager)}

    @app.post("/session/back")
    def go_back(manager: QuizSessionManager = Depends(current_manager)) -> dict[str, object]:
        with _engine_errors():
            moved = manager.go_back()
        return {"moved": moved, "session": _require_snapshot(manager)}

    @app.post("/session/submit")
    def submit(manager: QuizSessionManager = Depends(current_manager)) -> dict[str, object]:
        with _engine_errors():
            report = manager.submit()
        if report is None:
            raise HTTPException(status_code=409, detail="Submission already in progress.")
        return asdict(report)

    @app.get("/session/question/document", response_class=HTMLResponse)
    def question_document(manager: QuizSessionManager = Depends(current_manager)) -> str:
        snapshot = manager.snapshot()
        if snapshot is None or snapshot.question is None:
            raise HTTPException(status_code=404, detail="No question to show.")
        return renderer.render_full_document(
            snapshot.question.text,
            title=f"{snapshot.subject_name} {snapshot.question_index + 1}/{snapshot.question_count}",
        )

    @app.get("/session/result")
    def get_result(manager: QuizSessionManager = Depends(current_manager)) -> dict[str, object]:
        with _engine_errors():
            return asdict(manager.score_report())

    @app.get("/session/corrections")
    def get_corrections(manager: QuizSessionManager = Depends(current_manager)) -> list[dict[str, object]]:
        with _engine_errors():
            records = manager.corrections()
        return [_correction_view(record) for record in records]

    @app.get("/session/events")
    def get_events() -> list[dict[str, Any]]:
        return holder.drain_events()

    @app.post("/cache/sync")
    def sync_cache() -> dict[str, object]:
        if sync_job is None:
            raise HTTPException(status_code=503, detail="Offline sync is not configured.")
        try:
            report = sync_job.run()
        except CacheSyncError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return asdict(report)

    def require_catalogue() -> QuestionCatalogue:
        if catalogue is None:
            raise HTTPException(status_code=503, detail="Subject catalogue is not configured.")
        return catalogue

    @app.get("/subjects")
    def list_subjects(source: QuestionCatalogue = Depends(require_catalogue)) -> list[dict[str, Any]]:
        try:
            return source.list_subjects()
        except QuizApiError as exc:
            raise HTTPException(status_code=502, detail=exc.message) from exc

    @app.get("/subjects/years")
    def subject_years(
        subject_ids: str = Query(..., description="Comma-separated subject ids"),
        source: QuestionCatalogue = Depends(require_catalogue),
    ) -> dict[str, list[int]]:
        ids = [s.strip() for s in subject_ids.split(",") if s.strip()]
        if not ids:
            raise HTTPException(status_code=422, detail="Pass at least one subject id.")
        try:
            return source.available_years(ids)
        except QuizApiError as exc:
            raise HTTPException(status_code=502, detail=exc.message) from exc

    return app


def start_api_server(
    holder: SessionHolder,
    sync_job: CacheSyncJob | None = None,
    catalogue: QuestionCatalogue | None = None,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> Thread:
    """Start the FastAPI bridge in a background daemon thread."""
    app = create_api_app(holder, sync_job, catalogue)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)

    def run_server() -> None:
        server.run()

    thread = Thread(target=run_server, name="QuizBridgeServer", daemon=True)
    thread.start()
    logger.info("Quiz bridge listening on http://%s:%d/", host, port)
    return thread
