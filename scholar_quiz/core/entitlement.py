"""Free-tier gating of forward navigation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from scholar_quiz.constants.quiz_constants import FREE_TIER_QUESTION_LIMIT


class EntitlementSource(Protocol):
    """Read-only view of the signed-in user's premium status."""

    def has_active_premium(self) -> bool: ...


@dataclass(slots=True)
class StaticEntitlement:
    """Entitlement source backed by a plain flag the host can flip."""

    premium: bool = False

    def has_active_premium(self) -> bool:
        return self.premium


def can_advance(cumulative_count: int, has_entitlement: bool) -> bool:
    """Return True when moving past question number ``cumulative_count`` is allowed.

    The free-tier cap spans every subject in the session, so switching subjects
    does not reset it.
    """
    if has_entitlement:
        return True
    return cumulative_count < FREE_TIER_QUESTION_LIMIT
