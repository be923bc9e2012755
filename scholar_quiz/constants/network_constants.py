"""Network configuration constants for the quiz client."""

import os

API_BASE_URL: str = os.environ.get("SCHOLAR_QUIZ_API_URL", "https://api.scholargens.com/api")
# Relative image paths are served from the host root, not from the /api prefix.
API_HOST_ROOT: str = API_BASE_URL.rstrip("/").removesuffix("/api")
REQUEST_TIMEOUT_SECONDS: float = 20.0

DEFAULT_HOST: str = "127.0.0.1"
DEFAULT_PORT: int = 8000
