"""State machine driving one quiz session from loading to submission."""

from __future__ import annotations

import logging
from threading import Lock, Thread
import time
from typing import Any, Callable, Protocol

from scholar_quiz.constants.network_constants import API_HOST_ROOT
from scholar_quiz.constants.quiz_constants import (
    FREE_TIER_QUESTION_LIMIT,
    OFFLINE_EXAM_QUESTION_LIMIT,
    OFFLINE_PRACTICE_QUESTION_LIMIT,
)
from scholar_quiz.core.corrections import assemble_corrections
from scholar_quiz.core.entitlement import EntitlementSource, can_advance
from scholar_quiz.core.errors import (
    InvalidSessionStateError,
    QuizApiError,
    QuizStartError,
    SessionBusyError,
    SubmissionError,
)
from scholar_quiz.core.models import (
    AdvanceOutcome,
    CorrectionRecord,
    QuizMode,
    QuizSession,
    ScoreReport,
    SessionEvent,
    SessionSnapshot,
    SessionStatus,
    SubjectSelection,
    SubjectSession,
)
from scholar_quiz.core.question_normalizer import normalize_questions
from scholar_quiz.core.quiz_config import QuizConfig
from scholar_quiz.core.scoring import score_session
from scholar_quiz.core.services.question_cache import QuestionCacheStore
from scholar_quiz.core.services.quiz_api_client import (
    QuizSubjectPayload,
    StartedQuiz,
    StartQuizPayload,
    SubmitQuizPayload,
)
from scholar_quiz.core.services.session_timer import SessionTimer

logger = logging.getLogger(__name__)

EventListener = Callable[[SessionEvent, dict[str, Any]], None]
TaskRunner = Callable[[Callable[[], None]], None]
_PendingEvents = list[tuple[SessionEvent, dict[str, Any]]]

_NO_QUESTIONS_MESSAGE = (
    "No questions are available for the selected subjects and years, online or offline. "
    "Choose different subjects or years and try again."
)
_NOT_ENOUGH_QUESTIONS_MESSAGE = (
    "Not enough questions available for the selected configuration. "
    "Please try reducing the number of questions."
)


class QuizBackend(Protocol):
    def start_quiz(self, payload: StartQuizPayload) -> StartedQuiz: ...

    def submit_quiz(self, quiz_id: str, payload: SubmitQuizPayload) -> Any: ...


class QuizSessionManager:
    """Owns a single :class:`QuizSession` and every transition it goes through.

    Status flow: LOADING -> IN_PROGRESS -> SUBMITTING -> COMPLETED, with
    SUBMITTING falling back to IN_PROGRESS when the upload fails and LOADING
    ending in FAILED when no questions can be found. Network calls run without
    holding the lock; while one is outstanding, navigation is rejected with
    :class:`SessionBusyError`. Events are delivered after the lock is released,
    so listeners may call back into the manager.
    """

    def __init__(
        self,
        api: QuizBackend,
        cache: QuestionCacheStore,
        entitlement: EntitlementSource,
        timer: SessionTimer | None = None,
        host_root: str = API_HOST_ROOT,
        run_in_background: TaskRunner | None = None,
    ) -> None:
        self._lock = Lock()
        self._run_in_background = run_in_background or _start_daemon_thread
        self._api = api
        self._cache = cache
        self._entitlement = entitlement
        self._timer = timer
        self._host_root = host_root

        self._session: QuizSession | None = None
        self._busy: bool = False
        self._abandoned: bool = False
        self._score_report: ScoreReport | None = None
        self._last_error: str | None = None
        self._listeners: list[EventListener] = []

    # --- Events ---

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _emit_all(self, events: _PendingEvents) -> None:
        if not events:
            return
        with self._lock:
            listeners = list(self._listeners)
            if self._abandoned:
                return
        for event, payload in events:
            logger.debug("Session event %s %s", event.value, payload)
            for listener in listeners:
                try:
                    listener(event, payload)
                except Exception:
                    logger.exception("Listener failed while handling %s", event.value)

    # --- Startup ---

    def start(self, config: QuizConfig) -> QuizSession:
        """Fetch questions (live, else cached) and put the session in progress."""
        config.validate()
        with self._lock:
            if self._session is not None:
                raise InvalidSessionStateError("This manager has already started a session.")
            self._session = QuizSession(id="", mode=config.mode)
            self._busy = True

        try:
            quiz_id, subjects, offline = self._load_subjects(config)
        except QuizStartError as exc:
            with self._lock:
                self._busy = False
                self._session.status = SessionStatus.FAILED
                self._last_error = str(exc)
            logger.error("Quiz start failed: %s", exc)
            self._emit_all([(SessionEvent.SESSION_FAILED, {"message": str(exc)})])
            raise

        events: _PendingEvents = []
        with self._lock:
            self._busy = False
            session = self._session
            if self._abandoned:
                logger.info("Discarding questions for an abandoned session")
                raise InvalidSessionStateError("The session was abandoned while loading.")

            session.id = quiz_id
            session.subjects = subjects
            session.is_offline = offline
            if config.mode.is_timed:
                session.total_duration_seconds = config.duration_minutes * 60
                session.remaining_seconds = session.total_duration_seconds
            session.status = SessionStatus.IN_PROGRESS
            if offline:
                events.append((SessionEvent.OFFLINE_MODE, {"subject_ids": [s.subject_id for s in subjects]}))

        logger.info(
            "Quiz %s started in %s mode with %d subject(s)%s",
            quiz_id,
            config.mode.value,
            len(subjects),
            " from the offline cache" if offline else "",
        )
        if config.mode.is_timed and self._timer is not None:
            self._timer.start(self.tick)
        self._emit_all(events)
        return session

    def _load_subjects(self, config: QuizConfig) -> tuple[str, list[SubjectSession], bool]:
        payload = StartQuizPayload(
            mode=config.mode.value,
            subjects=[
                QuizSubjectPayload(
                    subject_id=selection.subject_id,
                    year=selection.year,
                    number_of_questions=selection.question_count,
                )
                for selection in config.subjects
            ],
            duration_in_minutes=config.request_duration_minutes,
        )

        live_error: QuizApiError | None = None
        try:
            started = self._api.start_quiz(payload)
        except QuizApiError as exc:
            logger.warning("Live question fetch failed, checking offline cache: %s", exc)
            live_error = exc
        else:
            subjects = self._subjects_from_groups(config.subjects, started.grouped_questions)
            if subjects:
                return started.quiz_id, subjects, False
            logger.warning("Server returned no questions, checking offline cache")

        subjects = self._subjects_from_cache(config)
        if subjects:
            return f"offline_{int(time.time() * 1000)}", subjects, True
        raise QuizStartError(_start_failure_message(live_error))

    def _subjects_from_groups(
        self,
        selections: list[SubjectSelection],
        groups: list[dict[str, Any]],
    ) -> list[SubjectSession]:
        subjects: list[SubjectSession] = []
        for selection in selections:
            group = next((g for g in groups if str(g.get("subjectId")) == selection.subject_id), None)
            questions = normalize_questions(group.get("questions") or [], self._host_root) if group else []
            if not questions:
                logger.warning("No questions returned for subject %s", selection.subject_id)
                continue
            subjects.append(_new_subject_session(selection, questions))
        return subjects

    def _subjects_from_cache(self, config: QuizConfig) -> list[SubjectSession]:
        cap = OFFLINE_EXAM_QUESTION_LIMIT if config.mode is QuizMode.EXAM else OFFLINE_PRACTICE_QUESTION_LIMIT
        subjects: list[SubjectSession] = []
        for selection in config.subjects:
            records = self._cache.get(selection.subject_id, selection.year)
            limit = min(cap, selection.question_count)
            questions = normalize_questions(records[:limit], self._host_root)
            if questions:
                subjects.append(_new_subject_session(selection, questions))
            else:
                logger.info("No cached questions for %s %s", selection.subject_id, selection.year)
        return subjects

    # --- Answering and navigation ---

    def select_option(self, option_index: int) -> bool:
        """Record an answer for the current question.

        Returns False without changing anything when feedback for the question
        has already been revealed in practice or study mode.
        """
        with self._lock:
            session = self._require_in_progress()
            subject = session.current_subject
            question = subject.current_question
            if not 0 <= option_index < len(question.options):
                raise ValueError(f"Option index {option_index} out of range")
            if session.mode.reveals_feedback and session.checked:
                return False
            subject.answers[subject.current_index] = option_index
            return True

    def advance(self) -> AdvanceOutcome:
        """Handle a 'next' press: check, move, switch subject, or submit."""
        events: _PendingEvents = []
        outcome: AdvanceOutcome | None
        with self._lock:
            session = self._require_in_progress()
            subject = session.current_subject

            if session.mode.reveals_feedback and not session.checked:
                if subject.current_index in subject.answers:
                    session.checked = True
                    outcome = AdvanceOutcome.CHECKED
                else:
                    events.append((SessionEvent.SELECTION_REQUIRED, {"question_index": subject.current_index}))
                    outcome = AdvanceOutcome.SELECTION_REQUIRED
            else:
                outcome = self._move_forward(session, events)

        self._emit_all(events)
        if outcome is not None:
            return outcome

        try:
            self.submit()
        except SubmissionError:
            return AdvanceOutcome.SUBMIT_FAILED
        return AdvanceOutcome.SUBMITTED

    def _move_forward(self, session: QuizSession, events: _PendingEvents) -> AdvanceOutcome | None:
        count = session.cumulative_position()
        # Re-read on every decision: the user may upgrade mid-quiz.
        if not can_advance(count, self._entitlement.has_active_premium()):
            logger.info("Free-tier limit reached after %d question(s)", count)
            events.append((SessionEvent.ENTITLEMENT_BLOCKED, {"count": count, "limit": FREE_TIER_QUESTION_LIMIT}))
            return AdvanceOutcome.BLOCKED

        subject = session.current_subject
        if not subject.is_on_last_question:
            subject.current_index += 1
            session.checked = False
            return AdvanceOutcome.MOVED

        if not session.is_on_last_subject:
            session.current_subject_index += 1
            next_subject = session.current_subject
            next_subject.current_index = 0
            session.checked = False
            events.append(
                (SessionEvent.SUBJECT_CHANGED, {"subject_id": next_subject.subject_id, "name": next_subject.name})
            )
            return AdvanceOutcome.SUBJECT_CHANGED

        return None

    def go_back(self) -> bool:
        """Step back within the current subject; never crosses subjects."""
        with self._lock:
            session = self._require_in_progress()
            subject = session.current_subject
            if subject.current_index <= 0:
                return False
            subject.current_index -= 1
            session.checked = False
            return True

    # --- Timing ---

    def tick(self) -> None:
        """One second of exam time. Called by the session timer."""
        with self._lock:
            session = self._session
            if (
                session is None
                or self._busy
                or session.status is not SessionStatus.IN_PROGRESS
                or session.remaining_seconds is None
            ):
                return
            session.remaining_seconds = max(0, session.remaining_seconds - 1)
            session.current_subject.elapsed_seconds += 1
            expired = session.remaining_seconds == 0

        if not expired:
            return

        logger.info("Time is up; submitting automatically")
        self._stop_timer()
        self._emit_all([(SessionEvent.TIME_EXPIRED, {})])
        # The upload blocks; keep it off the timer's thread.
        self._run_in_background(self._submit_on_timeout)

    def _submit_on_timeout(self) -> None:
        try:
            self.submit()
        except SubmissionError as exc:
            logger.warning("Automatic submission failed: %s", exc)
        except InvalidSessionStateError as exc:
            logger.info("Automatic submission skipped: %s", exc)

    def _stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.stop()

    # --- Submission ---

    def submit(self) -> ScoreReport | None:
        """Score locally, then upload the answers.

        Returns None when a submission is already outstanding, or when the
        session is abandoned while the upload is in flight. On upload
        failure the session returns to IN_PROGRESS with all answers intact and
        :class:`SubmissionError` is raised.
        """
        with self._lock:
            session = self._session
            if session is None:
                raise InvalidSessionStateError("No session has been started.")
            if session.status is SessionStatus.SUBMITTING:
                logger.info("Submission already in progress; ignoring repeat request")
                return None
            if session.status is SessionStatus.COMPLETED:
                return self._score_report
            if session.status is not SessionStatus.IN_PROGRESS:
                raise InvalidSessionStateError(f"Cannot submit a session that is {session.status.value}.")
            if self._abandoned:
                raise InvalidSessionStateError("The session was abandoned.")

            session.status = SessionStatus.SUBMITTING
            session.checked = False
            self._busy = True
            report = score_session(session)
            quiz_id = session.id
            payload = _build_submission(session)

        logger.info("Submitting quiz %s with %d answer(s)", quiz_id, len(payload.answers))
        try:
            self._api.submit_quiz(quiz_id, payload)
        except QuizApiError as exc:
            message = f"Could not submit quiz results. {exc.message}"
            with self._lock:
                self._busy = False
                session.status = SessionStatus.IN_PROGRESS
                self._last_error = message
            logger.error("Submission of quiz %s failed: %s", quiz_id, exc)
            self._emit_all([(SessionEvent.SUBMISSION_FAILED, {"message": message})])
            raise SubmissionError(message) from exc

        with self._lock:
            self._busy = False
            if self._abandoned:
                logger.info("Quiz %s was abandoned during submission; result not kept", quiz_id)
                return None
            session.status = SessionStatus.COMPLETED
            self._score_report = report
            self._last_error = None
        self._stop_timer()
        logger.info("Quiz %s submitted: %d/%d", quiz_id, report.total_score, report.max_score)
        self._emit_all(
            [(SessionEvent.SUBMISSION_COMPLETE, {"total_score": report.total_score, "max_score": report.max_score})]
        )
        return report

    # --- Teardown ---

    def abandon(self) -> None:
        """Stop the clock and detach all listeners.

        Later submissions are refused. A fetch or upload already in flight is
        not cancelled, but its result is not applied to the session.
        """
        with self._lock:
            self._abandoned = True
            self._listeners.clear()
        self._stop_timer()
        logger.info("Quiz session abandoned")

    # --- Queries ---

    @property
    def session(self) -> QuizSession | None:
        return self._session

    @property
    def status(self) -> SessionStatus | None:
        with self._lock:
            return self._session.status if self._session else None

    @property
    def last_error(self) -> str | None:
        with self._lock:
            return self._last_error

    def is_busy(self) -> bool:
        with self._lock:
            return self._busy

    def snapshot(self) -> SessionSnapshot | None:
        with self._lock:
            session = self._session
            if session is None:
                return None
            subject = session.current_subject
            return SessionSnapshot(
                session_id=session.id,
                mode=session.mode,
                status=session.status,
                is_offline=session.is_offline,
                subject_index=session.current_subject_index,
                subject_count=len(session.subjects),
                subject_id=subject.subject_id if subject else None,
                subject_name=subject.name if subject else None,
                question_index=subject.current_index if subject else 0,
                question_count=len(subject.questions) if subject else 0,
                question=subject.current_question if subject else None,
                selected_option=subject.answers.get(subject.current_index) if subject else None,
                checked=session.checked,
                remaining_seconds=session.remaining_seconds,
                elapsed_seconds={s.subject_id: s.elapsed_seconds for s in session.subjects},
            )

    def score_report(self) -> ScoreReport:
        """Final report once completed; a provisional one before that."""
        with self._lock:
            if self._score_report is not None:
                return self._score_report
            if self._session is None or not self._session.subjects:
                raise InvalidSessionStateError("There is nothing to score yet.")
            return score_session(self._session)

    def corrections(self) -> list[CorrectionRecord]:
        with self._lock:
            if self._session is None or self._session.status in (SessionStatus.LOADING, SessionStatus.FAILED):
                raise InvalidSessionStateError("There is nothing to review.")
            return assemble_corrections(self._session)

    def _require_in_progress(self) -> QuizSession:
        if self._busy:
            raise SessionBusyError("Waiting for the server; try again shortly.")
        session = self._session
        if session is None or session.status is not SessionStatus.IN_PROGRESS:
            status = session.status.value if session else "not started"
            raise InvalidSessionStateError(f"Session is {status}.")
        return session


def _new_subject_session(selection: SubjectSelection, questions: list) -> SubjectSession:
    return SubjectSession(
        subject_id=selection.subject_id,
        name=selection.display_name,
        year=selection.year,
        questions=questions,
    )


def _build_submission(session: QuizSession) -> SubmitQuizPayload:
    answers: dict[str, str] = {}
    for subject in session.subjects:
        for index, selected in subject.answers.items():
            question = subject.questions[index]
            text = question.option_text(selected)
            if question.id and text is not None:
                answers[question.id] = text
    return SubmitQuizPayload(
        answers=answers,
        time_spent_per_subject={s.subject_id: s.elapsed_seconds for s in session.subjects},
    )


def _start_failure_message(live_error: QuizApiError | None) -> str:
    if live_error is not None and live_error.status == 400 and "available for subject" in live_error.message:
        return _NOT_ENOUGH_QUESTIONS_MESSAGE
    return _NO_QUESTIONS_MESSAGE


def _start_daemon_thread(task: Callable[[], None]) -> None:
    Thread(target=task, name="QuizAutoSubmit", daemon=True).start()
