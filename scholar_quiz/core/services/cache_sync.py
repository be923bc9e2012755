"""Bulk download of past questions into the offline cache."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Protocol

from scholar_quiz.constants.quiz_constants import SYNC_BATCH_LIMIT, SYNC_YEARS
from scholar_quiz.core.errors import CacheSyncError, QuizApiError
from scholar_quiz.core.models import SyncReport
from scholar_quiz.core.services.question_cache import QuestionCacheStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class QuestionSource(Protocol):
    def list_subjects(self) -> list[dict[str, Any]]: ...

    def fetch_questions(self, subject_id: str, year: int, limit: int = ...) -> list[dict[str, Any]]: ...


class CacheSyncJob:
    """Walks every (subject, year) pair once and caches what the server returns.

    One failing pair is logged and skipped, so a partial sync still leaves a
    usable cache. The job shares nothing with quiz sessions beyond the cache.
    """

    def __init__(
        self,
        source: QuestionSource,
        cache: QuestionCacheStore,
        years: Iterable[int] = SYNC_YEARS,
        batch_limit: int = SYNC_BATCH_LIMIT,
    ) -> None:
        self._source = source
        self._cache = cache
        self._years = tuple(years)
        self._batch_limit = batch_limit

    def run(
        self,
        on_progress: ProgressCallback | None = None,
        fallback_subjects: list[dict[str, Any]] | None = None,
    ) -> SyncReport:
        subject_ids = self._resolve_subject_ids(fallback_subjects)
        total = len(subject_ids) * len(self._years)
        completed = 0
        cached = 0
        failed: list[tuple[str, int]] = []

        logger.info("Starting offline sync of %d subject/year pairs", total)
        for subject_id in subject_ids:
            for year in self._years:
                try:
                    questions = self._source.fetch_questions(subject_id, year, limit=self._batch_limit)
                    if questions:
                        self._cache.put(subject_id, year, questions)
                        cached += 1
                        logger.info("Cached %d questions for %s %s", len(questions), subject_id, year)
                except (QuizApiError, OSError) as exc:
                    logger.warning("Sync failed for %s %s: %s", subject_id, year, exc)
                    failed.append((subject_id, year))
                completed += 1
                if on_progress:
                    on_progress(completed, total)

        logger.info("Offline sync finished: %d cached, %d failed", cached, len(failed))
        return SyncReport(
            total_pairs=total,
            completed_pairs=completed,
            cached_pairs=cached,
            failed_pairs=tuple(failed),
        )

    def _resolve_subject_ids(self, fallback_subjects: list[dict[str, Any]] | None) -> list[str]:
        try:
            subjects = self._source.list_subjects()
        except QuizApiError as exc:
            if not fallback_subjects:
                raise CacheSyncError(f"Could not load the subject list: {exc}") from exc
            logger.warning("Using known subjects for sync; subject list unavailable: %s", exc)
            subjects = fallback_subjects

        subject_ids: list[str] = []
        for subject in subjects or fallback_subjects or []:
            subject_id = subject.get("id") or subject.get("_id")
            if subject_id is not None and str(subject_id) not in subject_ids:
                subject_ids.append(str(subject_id))
        return subject_ids
