"""Application entry point for the ScholarQuiz engine."""

from __future__ import annotations

import os
from pathlib import Path
import signal
import sys

from PySide6.QtCore import QCoreApplication

from scholar_quiz.constants.network_constants import API_BASE_URL, DEFAULT_HOST, DEFAULT_PORT
from scholar_quiz.core.entitlement import StaticEntitlement
from scholar_quiz.core.quiz_session_manager import QuizSessionManager
from scholar_quiz.core.services.cache_sync import CacheSyncJob
from scholar_quiz.core.services.question_cache import FileKeyValueStore, QuestionCacheStore
from scholar_quiz.core.services.quiz_api_client import QuizApiClient
from scholar_quiz.core.services.session_timer import QtSessionTimer
from scholar_quiz.server.api_server import SessionHolder, start_api_server
from scholar_quiz.utils.logging_config import configure_logging

_CACHE_DIR = Path(os.environ.get("SCHOLAR_QUIZ_CACHE_DIR", Path.home() / ".scholar_quiz" / "cache"))


def main() -> None:
    """Initialize logging, wire the engine, start the bridge and run the Qt loop."""
    logger = configure_logging()
    logger.info("Starting ScholarQuiz against %s", API_BASE_URL)

    app = QCoreApplication(sys.argv)
    # Let Ctrl+C end the Qt loop.
    signal.signal(signal.SIGINT, signal.SIG_DFL)

    api_client = QuizApiClient(token_provider=lambda: os.environ.get("SCHOLAR_QUIZ_TOKEN"))
    cache = QuestionCacheStore(FileKeyValueStore(_CACHE_DIR))
    entitlement = StaticEntitlement(premium=os.environ.get("SCHOLAR_QUIZ_PREMIUM") == "1")
    # Created on the main thread so its QTimer ticks on the Qt event loop.
    timer = QtSessionTimer()

    holder = SessionHolder(
        lambda: QuizSessionManager(api=api_client, cache=cache, entitlement=entitlement, timer=timer)
    )
    start_api_server(
        holder,
        CacheSyncJob(api_client, cache),
        catalogue=api_client,
        host=DEFAULT_HOST,
        port=DEFAULT_PORT,
    )

    exit_code = app.exec()
    holder.discard()
    api_client.close()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
