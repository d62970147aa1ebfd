"""Round pipeline: eligibility checks and readiness scoring of completed rounds."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ai.scoring import ReadinessScorer, RoundScore
from yenta import models
from yenta.config import settings
from yenta.errors import StateConflictError
from yenta.gate import Eligibility, EligibilityReason, check_eligibility, policy_from_settings
from yenta.pipelines.qualification import load_round, save_round, to_round_record
from yenta.stepper import STATUS_COMPLETED

logger = logging.getLogger(__name__)


async def check_round_eligibility(
    session: AsyncSession,
    prospect_id: int,
    requested_round: int,
    *,
    now: datetime | None = None,
) -> Eligibility:
    """Read-only eligibility check for ``requested_round``.

    Unknown prospects are reported as ``conversation_not_found``.
    """
    prospect_exists = await session.scalar(
        select(models.Prospect.id).where(models.Prospect.id == prospect_id)
    )
    if prospect_exists is None:
        return Eligibility(False, EligibilityReason.CONVERSATION_NOT_FOUND)

    result = await session.execute(
        select(models.ConversationRound)
        .where(models.ConversationRound.prospect_id == prospect_id)
        .order_by(models.ConversationRound.round_number)
    )
    rounds = [to_round_record(r) for r in result.scalars().all()]

    eligibility = check_eligibility(
        rounds,
        requested_round,
        policy_from_settings(settings.rounds),
        now or datetime.utcnow(),
    )
    logger.info(
        f"Eligibility for prospect {prospect_id} round {requested_round}: "
        f"{eligibility.eligible} ({eligibility.reason.value})"
    )
    return eligibility


async def score_round(
    session: AsyncSession,
    scorer: ReadinessScorer,
    conversation_id: int,
    *,
    now: datetime | None = None,
) -> RoundScore:
    """Score a completed round and persist the result.

    The round is only written after the scorer succeeds, so a failed attempt
    leaves it unscored and can be retried.

    Raises:
        NotFoundError: If the round does not exist
        StateConflictError: If the round is not completed
        UpstreamError: If the scorer fails
    """
    round_ = await load_round(session, conversation_id)
    if round_.status != STATUS_COMPLETED:
        raise StateConflictError(
            "Only completed rounds can be scored",
            current_step=round_.current_step,
            reason=round_.status,
        )

    result = await scorer.score(round_.transcript or [])

    round_.score = result.total_score
    round_.score_category = result.category
    round_.score_summary = result.summary
    round_.scored_at = now or datetime.utcnow()
    await save_round(session, round_)

    logger.info(f"Round {conversation_id} scored {result.total_score:.0f} ({result.category})")
    return result
