"""Build the post-submission review sequence."""

from __future__ import annotations

from scholar_quiz.core.models import CorrectionRecord, QuizSession


def assemble_corrections(session: QuizSession) -> list[CorrectionRecord]:
    """Return one record per question, in the order the quiz was taken."""
    records: list[CorrectionRecord] = []
    for subject in session.subjects:
        for index, question in enumerate(subject.questions):
            selected = subject.answers.get(index)
            records.append(
                CorrectionRecord(
                    subject_id=subject.subject_id,
                    subject_name=subject.name,
                    question=question.text,
                    options=question.options,
                    correct_option_key=question.correct_option_key,
                    user_selected_text=question.option_text(selected),
                    is_correct=selected is not None and question.is_option_correct(selected),
                    explanation=question.explanation,
                    question_image=question.question_image,
                    explanation_image=question.explanation_image,
                    image_position=question.image_position,
                )
            )
    return records
