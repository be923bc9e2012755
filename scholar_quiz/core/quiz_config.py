"""Validated configuration for starting a quiz session."""

from __future__ import annotations

from dataclasses import dataclass, field

from scholar_quiz.constants.quiz_constants import (
    DEFAULT_EXAM_DURATION_MINUTES,
    MAX_SUBJECTS_PER_QUIZ,
    MIN_EXAM_DURATION_MINUTES,
)
from scholar_quiz.core.errors import QuizConfigError
from scholar_quiz.core.models import QuizMode, SubjectSelection


@dataclass(slots=True)
class QuizConfig:
    """Mode, subjects and duration chosen before a quiz starts."""

    mode: QuizMode
    subjects: list[SubjectSelection] = field(default_factory=list)
    duration_minutes: int = DEFAULT_EXAM_DURATION_MINUTES

    def validate(self) -> "QuizConfig":
        if not self.subjects:
            raise QuizConfigError("Select at least one subject.")
        if len(self.subjects) > MAX_SUBJECTS_PER_QUIZ:
            raise QuizConfigError(f"A quiz can cover at most {MAX_SUBJECTS_PER_QUIZ} subjects.")

        subject_ids = [subject.subject_id for subject in self.subjects]
        if len(set(subject_ids)) != len(subject_ids):
            raise QuizConfigError("Each subject can only be selected once.")
        for subject in self.subjects:
            if subject.question_count <= 0:
                raise QuizConfigError(f"Question count for {subject.display_name} must be positive.")

        if self.mode is QuizMode.EXAM:
            if not isinstance(self.duration_minutes, int) or self.duration_minutes < MIN_EXAM_DURATION_MINUTES:
                raise QuizConfigError(
                    f"Exam duration must be at least {MIN_EXAM_DURATION_MINUTES} minutes."
                )
        return self

    @property
    def request_duration_minutes(self) -> int:
        """Duration sent to the server; untimed modes send 0."""
        return self.duration_minutes if self.mode is QuizMode.EXAM else 0
