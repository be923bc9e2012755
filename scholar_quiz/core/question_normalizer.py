"""Turn raw question records into canonical :class:`Question` objects.

Records reach the client from two places, the live ``/quiz/start`` response and
the offline cache, and the backend is not consistent about their shape:

    options            JSON-encoded string, list of strings, or list of objects
                       ``{text|value, image, isCorrect|correct|answer}``
    images             JSON array, JSON object, bare string, or missing
    explanationImage   JSON object as a string, plain URL string, or object
    correctOption      letter key such as "B " or "c"

Every variant is resolved here, once, so nothing downstream inspects raw
shapes again. Garbled JSON in any of these fields degrades to "absent" instead
of raising, because one broken field must not hide the rest of the question.

Image references of every kind (question, option, explanation) go through
:func:`resolve_image_url`; it is the only place that knows how the backend
writes image paths.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

from scholar_quiz.constants.network_constants import API_HOST_ROOT
from scholar_quiz.constants.quiz_constants import DEFAULT_EXPLANATION, DEFAULT_IMAGE_POSITION
from scholar_quiz.core.models import Option, Question

logger = logging.getLogger(__name__)

_CORRECTNESS_ALIASES = ("isCorrect", "correct", "answer")
_IMAGE_POSITIONS = ("top", "bottom")


def resolve_image_url(reference: Any, host_root: str = API_HOST_ROOT) -> str | None:
    """Return an absolute URL for an image reference, or None if there is none.

    ``reference`` may be a string or an object carrying ``url``.
    """
    if isinstance(reference, dict):
        reference = reference.get("url")
    if not isinstance(reference, str):
        return None

    url = reference.strip()
    if not url:
        return None

    root = host_root.rstrip("/")
    if url.startswith("/"):
        return f"{root}{url}"
    if url.startswith("http"):
        return url
    if "cloudinary" in url or "www" in url:
        return f"https://{url}"
    return f"{root}/{url}"


def normalize_question(raw: dict[str, Any], host_root: str = API_HOST_ROOT) -> Question:
    """Normalize one raw question record."""
    raw_id = raw.get("id") or raw.get("_id")
    text = raw.get("question")
    if text is None:
        text = raw.get("text", "")

    parsed_images = _parse_images(raw.get("images"))

    return Question(
        id=str(raw_id) if raw_id is not None else None,
        text=str(text),
        options=tuple(_parse_options(raw.get("options"), host_root)),
        correct_option_key=_parse_correct_key(raw.get("correctOption")),
        explanation=raw.get("explanation") or DEFAULT_EXPLANATION,
        question_image=resolve_image_url(_select_image(parsed_images), host_root),
        explanation_image=resolve_image_url(_parse_explanation_image(raw.get("explanationImage")), host_root),
        image_position=_parse_image_position(raw.get("imagePosition"), parsed_images),
    )


def normalize_questions(records: Iterable[Any], host_root: str = API_HOST_ROOT) -> list[Question]:
    """Normalize a batch, dropping entries that are not records at all."""
    questions: list[Question] = []
    for record in records or ():
        if not isinstance(record, dict):
            logger.warning("Skipping question record of type %s", type(record).__name__)
            continue
        questions.append(normalize_question(record, host_root))
    return questions


def _loads(text: str, default: Any) -> Any:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        logger.debug("Ignoring malformed JSON field: %.60r", text)
        return default


def _is_true(value: Any) -> bool:
    if value is True or value in ("true", "1"):
        return True
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == 1


def _parse_options(raw_options: Any, host_root: str) -> list[Option]:
    if isinstance(raw_options, str):
        raw_options = _loads(raw_options, [])
    if not isinstance(raw_options, list):
        return []

    options: list[Option] = []
    for entry in raw_options:
        if isinstance(entry, dict):
            text = entry.get("text") or entry.get("value") or ""
            options.append(
                Option(
                    text=str(text),
                    image=resolve_image_url(entry.get("image"), host_root),
                    is_correct=any(_is_true(entry.get(alias)) for alias in _CORRECTNESS_ALIASES),
                )
            )
        else:
            options.append(Option(text=str(entry)))
    return options


def _parse_images(raw_images: Any) -> Any:
    if isinstance(raw_images, str):
        cleaned = raw_images.strip()
        if cleaned.startswith(("[", "{")):
            return _loads(cleaned, [])
        return [cleaned]
    if isinstance(raw_images, (list, dict)):
        return raw_images
    return []


def _is_usable_image(entry: Any) -> bool:
    if isinstance(entry, str):
        candidate = entry.strip()
        return len(candidate) > 5 and candidate not in ("[", "]") and "undefined" not in candidate
    if isinstance(entry, dict):
        url = entry.get("url")
        return isinstance(url, str) and bool(url.strip())
    return False


def _select_image(parsed_images: Any) -> Any:
    if isinstance(parsed_images, list):
        return next((entry for entry in parsed_images if _is_usable_image(entry)), None)
    if isinstance(parsed_images, dict):
        return parsed_images
    return None


def _parse_image_position(raw_position: Any, parsed_images: Any) -> str:
    position = raw_position or DEFAULT_IMAGE_POSITION
    if isinstance(parsed_images, list) and parsed_images:
        first = parsed_images[0]
        if isinstance(first, dict) and first.get("position"):
            position = first["position"]
    position = str(position).strip().lower()
    return position if position in _IMAGE_POSITIONS else DEFAULT_IMAGE_POSITION


def _parse_explanation_image(raw_image: Any) -> Any:
    if isinstance(raw_image, str) and raw_image.strip().startswith("{"):
        return _loads(raw_image.strip(), None)
    return raw_image


def _parse_correct_key(raw_key: Any) -> str | None:
    if raw_key is None:
        return None
    key = str(raw_key).strip().lower()
    return key or None
