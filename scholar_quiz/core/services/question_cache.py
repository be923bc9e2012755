"""Persistent cache of downloaded questions, keyed by subject and year."""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import os
from pathlib import Path
import re
import tempfile
from threading import Lock
from typing import Any, Protocol

from scholar_quiz.core.models import CachedQuestionBatch

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Host-provided storage of JSON text blobs."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """Process-local store, useful for tests and for running without a disk cache."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}
        self._lock = Lock()

    def get_item(self, key: str) -> str | None:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)


class FileKeyValueStore:
    """Stores each key as a JSON file inside ``root``.

    Writes go to a temporary file in the same directory and are renamed into
    place, so a reader sees either the previous blob or the new one in full.
    """

    _UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _path_for(self, key: str) -> Path:
        return self.root / f"{self._UNSAFE.sub('_', key)}.json"

    def get_item(self, key: str) -> str | None:
        path = self._path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set_item(self, key: str, value: str) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        target = self._path_for(key)
        fd, temp_name = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(temp_name, target)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise

    def remove_item(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)


def cache_key(subject_id: str, year: int) -> str:
    return f"questions_{subject_id}_{year}"


class QuestionCacheStore:
    """Whole-batch cache of raw question records per (subject, year)."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def put(self, subject_id: str, year: int, questions: list[dict[str, Any]]) -> CachedQuestionBatch:
        """Overwrite the cached batch for ``(subject_id, year)``."""
        batch = CachedQuestionBatch(
            subject_id=str(subject_id),
            year=int(year),
            questions=list(questions),
            cached_at=datetime.now(timezone.utc),
        )
        document = {
            "subjectId": batch.subject_id,
            "year": batch.year,
            "cachedAt": batch.cached_at.isoformat(),
            "questions": batch.questions,
        }
        self._store.set_item(cache_key(subject_id, year), json.dumps(document, ensure_ascii=False))
        logger.debug("Cached %d questions for %s/%s", len(batch.questions), subject_id, year)
        return batch

    def get(self, subject_id: str, year: int) -> list[dict[str, Any]]:
        """Return the cached records, or an empty list if nothing usable is stored."""
        batch = self.get_batch(subject_id, year)
        return batch.questions if batch else []

    def get_batch(self, subject_id: str, year: int) -> CachedQuestionBatch | None:
        key = cache_key(subject_id, year)
        try:
            blob = self._store.get_item(key)
        except OSError:
            logger.warning("Could not read cache entry %s", key, exc_info=True)
            return None
        if not blob:
            return None

        try:
            document = json.loads(blob)
        except ValueError:
            logger.warning("Discarding unreadable cache entry %s", key)
            return None

        # Entries written as a bare list predate the envelope format.
        if isinstance(document, list):
            document = {"questions": document}
        if not isinstance(document, dict) or not isinstance(document.get("questions"), list):
            logger.warning("Discarding malformed cache entry %s", key)
            return None

        return CachedQuestionBatch(
            subject_id=str(subject_id),
            year=int(year),
            questions=document["questions"],
            cached_at=_parse_timestamp(document.get("cachedAt")),
        )

    def clear(self, subject_id: str, year: int) -> None:
        self._store.remove_item(cache_key(subject_id, year))


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return datetime.fromtimestamp(0, tz=timezone.utc)
