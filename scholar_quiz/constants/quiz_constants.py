"""Quiz-related constants shared across core and server layers."""

FREE_TIER_QUESTION_LIMIT: int = 5
TICK_INTERVAL_MS: int = 1000

OFFLINE_EXAM_QUESTION_LIMIT: int = 40
OFFLINE_PRACTICE_QUESTION_LIMIT: int = 10

MAX_SUBJECTS_PER_QUIZ: int = 4
DEFAULT_QUESTION_COUNT: int = 10
DEFAULT_EXAM_DURATION_MINUTES: int = 120
MIN_EXAM_DURATION_MINUTES: int = 10

SYNC_YEARS: tuple[int, ...] = tuple(range(2024, 2009, -1))
SYNC_BATCH_LIMIT: int = 100

DEFAULT_IMAGE_POSITION: str = "top"
DEFAULT_EXPLANATION: str = "No explanation provided."
