"""Round gate: may a prospect begin round N given round N-1's outcome?

Pure and read-only. The policy values live in ``RoundGateSettings``.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Mapping

from .config import RoundGateSettings
from .errors import ValidationError

MAX_ROUNDS = 3


class EligibilityReason(str, Enum):
    """Why a round is or is not available."""
    CONVERSATION_NOT_FOUND = "conversation_not_found"
    PREVIOUS_ROUND_INCOMPLETE = "previous_round_incomplete"
    SCORE_BELOW_MINIMUM = "score_below_minimum"
    TOO_SOON = "too_soon"
    REQUIREMENTS_MET = "requirements_met"


@dataclass(frozen=True)
class RoundRequirement:
    min_score: float
    min_hours: float


@dataclass(frozen=True)
class RoundRecord:
    """The slice of a persisted round the gate looks at."""
    round_number: int
    status: str
    completed_at: datetime | None
    score: float | None


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reason: EligibilityReason


def policy_from_settings(gate_settings: RoundGateSettings) -> dict[int, RoundRequirement]:
    return {
        2: RoundRequirement(gate_settings.round_2_min_score, gate_settings.round_2_min_hours),
        3: RoundRequirement(gate_settings.round_3_min_score, gate_settings.round_3_min_hours),
    }


def check_eligibility(
    rounds: Iterable[RoundRecord] | None,
    requested_round: int,
    policy: Mapping[int, RoundRequirement],
    now: datetime,
) -> Eligibility:
    """Decide whether ``requested_round`` may begin.

    Args:
        rounds: The prospect's existing rounds, or None if the prospect has none
        requested_round: Round number to start (1..3)
        policy: Requirements keyed by round number; missing rounds are ungated
        now: Current time, same timezone convention as ``completed_at``

    Raises:
        ValidationError: If requested_round is outside 1..3
    """
    if not 1 <= requested_round <= MAX_ROUNDS:
        raise ValidationError(
            f"Round must be between 1 and {MAX_ROUNDS}",
            errors=[{"field": "round_number", "message": f"got {requested_round}"}],
        )

    requirement = policy.get(requested_round)
    if requested_round == 1 or requirement is None:
        return Eligibility(True, EligibilityReason.REQUIREMENTS_MET)

    by_number = {r.round_number: r for r in rounds or ()}
    if not by_number:
        return Eligibility(False, EligibilityReason.CONVERSATION_NOT_FOUND)

    previous = by_number.get(requested_round - 1)
    if previous is None or previous.completed_at is None or previous.score is None:
        return Eligibility(False, EligibilityReason.PREVIOUS_ROUND_INCOMPLETE)

    if previous.score < requirement.min_score:
        return Eligibility(False, EligibilityReason.SCORE_BELOW_MINIMUM)

    if now - previous.completed_at < timedelta(hours=requirement.min_hours):
        return Eligibility(False, EligibilityReason.TOO_SOON)

    return Eligibility(True, EligibilityReason.REQUIREMENTS_MET)
