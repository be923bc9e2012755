"""Score a finished quiz session."""

from __future__ import annotations

from scholar_quiz.core.models import QuizSession, ScoreReport, SubjectScore, SubjectSession


def normalized_score(correct: int, total: int) -> int:
    """Return ``correct / total`` on a 0-100 scale, rounding halves up."""
    if total <= 0:
        return 0
    return (correct * 200 + total) // (2 * total)


def score_subject(subject: SubjectSession) -> SubjectScore:
    correct = 0
    answered = 0
    for index, question in enumerate(subject.questions):
        selected = subject.answers.get(index)
        if selected is None:
            continue
        answered += 1
        # A question with no flagged option and no usable key is never correct.
        if question.is_option_correct(selected):
            correct += 1

    total = len(subject.questions)
    return SubjectScore(
        subject_id=subject.subject_id,
        name=subject.name,
        total_questions=total,
        answered=answered,
        correct=correct,
        score=normalized_score(correct, total),
    )


def score_session(session: QuizSession) -> ScoreReport:
    """Score every subject out of 100 and sum the subject scores.

    The total is deliberately a sum of per-subject scores rather than a ratio of
    raw counts, so a short subject is worth as much as a long one.
    """
    subject_scores = tuple(score_subject(subject) for subject in session.subjects)
    total_questions = sum(s.total_questions for s in subject_scores)
    total_correct = sum(s.correct for s in subject_scores)
    return ScoreReport(
        subject_scores=subject_scores,
        total_score=sum(s.score for s in subject_scores),
        max_score=100 * len(subject_scores),
        total_questions=total_questions,
        total_answered=sum(s.answered for s in subject_scores),
        total_correct=total_correct,
        total_wrong=total_questions - total_correct,
    )
