"""Domain models for the quiz session engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from scholar_quiz.constants.quiz_constants import DEFAULT_EXPLANATION, DEFAULT_IMAGE_POSITION


class QuizMode(str, Enum):
    """How a session is run: timed single pass, or untimed check-then-advance."""

    EXAM = "exam"
    PRACTICE = "practice"
    STUDY = "study"

    @property
    def is_timed(self) -> bool:
        return self is QuizMode.EXAM

    @property
    def reveals_feedback(self) -> bool:
        return self is not QuizMode.EXAM


class SessionStatus(str, Enum):
    LOADING = "loading"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    FAILED = "failed"


class SessionEvent(str, Enum):
    """Discrete notifications emitted to the presentation layer."""

    OFFLINE_MODE = "offline_mode"
    SESSION_FAILED = "session_failed"
    SUBJECT_CHANGED = "subject_changed"
    SELECTION_REQUIRED = "selection_required"
    ENTITLEMENT_BLOCKED = "entitlement_blocked"
    TIME_EXPIRED = "time_expired"
    SUBMISSION_COMPLETE = "submission_complete"
    SUBMISSION_FAILED = "submission_failed"


class AdvanceOutcome(str, Enum):
    """Result of a single forward navigation request."""

    CHECKED = "checked"
    SELECTION_REQUIRED = "selection_required"
    BLOCKED = "blocked"
    MOVED = "moved"
    SUBJECT_CHANGED = "subject_changed"
    SUBMITTED = "submitted"
    SUBMIT_FAILED = "submit_failed"


def option_key(index: int) -> str:
    """Return the positional answer key for an option index (0 -> 'a')."""
    if not 0 <= index < 26:
        raise ValueError(f"Option index {index} has no letter key")
    return chr(ord("a") + index)


@dataclass(slots=True, frozen=True)
class SubjectSelection:
    """A subject/year pair chosen when configuring a quiz."""

    subject_id: str
    display_name: str
    year: int
    question_count: int


@dataclass(slots=True, frozen=True)
class Option:
    text: str
    image: str | None = None
    is_correct: bool = False


@dataclass(slots=True, frozen=True)
class Question:
    """Canonical multiple-choice question produced by the normalizer."""

    id: str | None
    text: str
    options: tuple[Option, ...]
    correct_option_key: str | None = None
    explanation: str = DEFAULT_EXPLANATION
    question_image: str | None = None
    explanation_image: str | None = None
    image_position: str = DEFAULT_IMAGE_POSITION

    def is_option_correct(self, index: int) -> bool:
        """Two-source rule: the option's own flag OR a positional key match."""
        if not 0 <= index < len(self.options):
            return False
        if self.options[index].is_correct:
            return True
        if self.correct_option_key is None or index >= 26:
            return False
        return option_key(index) == self.correct_option_key

    def option_text(self, index: int | None) -> str | None:
        if index is None or not 0 <= index < len(self.options):
            return None
        return self.options[index].text


@dataclass(slots=True)
class SubjectSession:
    """Per-subject progress inside a quiz session."""

    subject_id: str
    name: str
    year: int
    questions: list[Question]
    current_index: int = 0
    answers: dict[int, int] = field(default_factory=dict)
    elapsed_seconds: int = 0

    @property
    def current_question(self) -> Question | None:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    @property
    def is_on_last_question(self) -> bool:
        return self.current_index >= len(self.questions) - 1


@dataclass(slots=True)
class QuizSession:
    id: str
    mode: QuizMode
    subjects: list[SubjectSession] = field(default_factory=list)
    current_subject_index: int = 0
    total_duration_seconds: int | None = None
    remaining_seconds: int | None = None
    status: SessionStatus = SessionStatus.LOADING
    checked: bool = False
    is_offline: bool = False

    @property
    def current_subject(self) -> SubjectSession | None:
        if 0 <= self.current_subject_index < len(self.subjects):
            return self.subjects[self.current_subject_index]
        return None

    @property
    def is_on_last_subject(self) -> bool:
        return self.current_subject_index >= len(self.subjects) - 1

    def cumulative_position(self) -> int:
        """Questions passed so far across subjects, counting the current one."""
        passed = sum(len(s.questions) for s in self.subjects[: self.current_subject_index])
        subject = self.current_subject
        return passed + (subject.current_index + 1 if subject else 0)


@dataclass(slots=True, frozen=True)
class CachedQuestionBatch:
    subject_id: str
    year: int
    questions: list[dict[str, Any]]
    cached_at: datetime


@dataclass(slots=True, frozen=True)
class SubjectScore:
    subject_id: str
    name: str
    total_questions: int
    answered: int
    correct: int
    score: int


@dataclass(slots=True, frozen=True)
class ScoreReport:
    """Scores in the aggregate style where every subject is worth 100."""

    subject_scores: tuple[SubjectScore, ...]
    total_score: int
    max_score: int
    total_questions: int
    total_answered: int
    total_correct: int
    total_wrong: int


@dataclass(slots=True, frozen=True)
class CorrectionRecord:
    """One reviewable question after submission."""

    subject_id: str
    subject_name: str
    question: str
    options: tuple[Option, ...]
    correct_option_key: str | None
    user_selected_text: str | None
    is_correct: bool
    explanation: str
    question_image: str | None
    explanation_image: str | None
    image_position: str


@dataclass(slots=True, frozen=True)
class SyncReport:
    total_pairs: int
    completed_pairs: int
    cached_pairs: int
    failed_pairs: tuple[tuple[str, int], ...] = ()


@dataclass(slots=True, frozen=True)
class SessionSnapshot:
    """Read-only view of a session handed to the presentation layer."""

    session_id: str
    mode: QuizMode
    status: SessionStatus
    is_offline: bool
    subject_index: int
    subject_count: int
    subject_id: str | None
    subject_name: str | None
    question_index: int
    question_count: int
    question: Question | None
    selected_option: int | None
    checked: bool
    remaining_seconds: int | None
    elapsed_seconds: dict[str, int]
