"""
Doubts feature: Doubt lifecycle (state machine).

  processing ─► resolved | pending | failed | cancelled
  pending / resolved / failed / cancelled ─► escalated   (learner)
  any settled state ─► answered                          (instructor)
  answered ─► resolved                                   (learner accepts, needs resolved_at)

Nothing ever moves back to `pending` once resolved or answered.
"""

from enum import Enum

from app.core.exceptions import InvalidTransitionError


class DoubtStatus(str, Enum):
    PROCESSING = "processing"
    PENDING = "pending"
    RESOLVED = "resolved"
    ESCALATED = "escalated"
    ANSWERED = "answered"
    FAILED = "failed"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS: dict[DoubtStatus, set[DoubtStatus]] = {
    DoubtStatus.PROCESSING: {
        DoubtStatus.RESOLVED,
        DoubtStatus.PENDING,
        DoubtStatus.FAILED,
        DoubtStatus.CANCELLED,
    },
    DoubtStatus.PENDING: {DoubtStatus.RESOLVED, DoubtStatus.ESCALATED, DoubtStatus.ANSWERED},
    DoubtStatus.RESOLVED: {DoubtStatus.ESCALATED, DoubtStatus.ANSWERED},
    DoubtStatus.ESCALATED: {DoubtStatus.ESCALATED, DoubtStatus.ANSWERED},
    DoubtStatus.ANSWERED: {DoubtStatus.ESCALATED, DoubtStatus.ANSWERED, DoubtStatus.RESOLVED},
    DoubtStatus.FAILED: {DoubtStatus.ESCALATED, DoubtStatus.ANSWERED},
    DoubtStatus.CANCELLED: {DoubtStatus.ESCALATED, DoubtStatus.ANSWERED},
}


def status_for_confidence(confidence: float, threshold: float = 80) -> DoubtStatus:
    """Initial status of an answered question."""
    return DoubtStatus.RESOLVED if confidence >= threshold else DoubtStatus.PENDING


def can_transition(current: str | DoubtStatus, target: str | DoubtStatus) -> bool:
    return DoubtStatus(target) in ALLOWED_TRANSITIONS.get(DoubtStatus(current), set())


def transition(current: str | DoubtStatus, target: str | DoubtStatus) -> DoubtStatus:
    """Validate a transition and return the target status.

    Raises:
        InvalidTransitionError: If the move is not allowed.
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(str(DoubtStatus(current).value), str(DoubtStatus(target).value))
    return DoubtStatus(target)