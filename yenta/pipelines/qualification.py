"""Qualification pipeline: start a round, process turns, report status and results.

Each turn loads the round, runs the stepper over the normalized utterance,
appends the exchange to the transcript and persists the new state in one
commit.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from yenta import models
from yenta.config import settings
from yenta.errors import NotFoundError, QualificationError, StateConflictError, UpstreamError, ValidationError
from yenta.gate import RoundRecord, check_eligibility, policy_from_settings
from yenta.pipelines.ingest import get_prospect
from yenta.pipelines.normalization import normalize_utterance
from yenta.quality import DataQuality, analyze
from yenta.stepper import (
    TOTAL_STEPS,
    Completed,
    InProgress,
    QualificationStepper,
    state_from_columns,
    state_to_columns,
)

logger = logging.getLogger(__name__)


@dataclass
class StartedQualification:
    conversation_id: int
    round_number: int
    question: str
    step_title: str
    current_step: int = 1
    total_steps: int = TOTAL_STEPS


@dataclass
class TurnResult:
    conversation_id: int
    question: str
    step_title: str
    current_step: int
    is_follow_up: bool
    section_complete: bool
    is_complete: bool
    progress: int
    missing_required: list[str] = field(default_factory=list)
    is_optional: bool = False
    total_steps: int = TOTAL_STEPS


@dataclass
class QualificationStatus:
    conversation_id: int
    round_number: int
    status: str
    current_step: int
    progress: int
    extracted_data: dict[str, Any]
    started_at: datetime | None
    completed_at: datetime | None
    total_steps: int = TOTAL_STEPS


@dataclass
class QualificationResults:
    conversation_id: int
    status: str
    completed_at: datetime | None
    extracted_data: dict[str, Any]
    data_quality: DataQuality


def to_round_record(round_: models.ConversationRound) -> RoundRecord:
    return RoundRecord(
        round_number=round_.round_number,
        status=round_.status,
        completed_at=round_.completed_at,
        score=round_.score,
    )


async def load_round(session: AsyncSession, conversation_id: int) -> models.ConversationRound:
    """Load a round by id.

    Raises:
        NotFoundError: If no such round exists
    """
    result = await session.execute(
        select(models.ConversationRound).where(models.ConversationRound.id == conversation_id)
    )
    round_ = result.scalar_one_or_none()
    if round_ is None:
        raise NotFoundError(f"Qualification session {conversation_id} not found")
    return round_


def append_transcript(round_: models.ConversationRound, *messages: dict[str, str]) -> None:
    """Append messages to the round transcript.

    The JSON column is reassigned, not mutated in place, so the change is
    tracked by the session.
    """
    round_.transcript = [*(round_.transcript or []), *messages]


async def save_round(session: AsyncSession, round_: models.ConversationRound) -> None:
    """Commit pending changes to a round.

    Raises:
        UpstreamError: If the database rejects the write
    """
    session.add(round_)
    try:
        await session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Failed to save round {round_.id}: {e}", exc_info=True)
        await session.rollback()
        raise UpstreamError("Failed to save qualification state", detail=str(e)) from e


async def start_qualification(
    session: AsyncSession,
    stepper: QualificationStepper,
    *,
    prospect_id: int,
    company_name: str | None = None,
    round_number: int = 1,
    now: datetime | None = None,
) -> StartedQualification:
    """Open a qualification round and return the first question.

    Raises:
        NotFoundError: If the prospect does not exist
        ValidationError: If round_number is out of range
        StateConflictError: If the round exists, including one created
            concurrently, or the gate rejects it
    """
    now = now or datetime.utcnow()
    prospect = await get_prospect(session, prospect_id)

    if any(r.round_number == round_number for r in prospect.rounds):
        raise StateConflictError(
            f"Round {round_number} already started for prospect {prospect_id}",
            reason="round_already_started",
        )

    eligibility = check_eligibility(
        [to_round_record(r) for r in prospect.rounds],
        round_number,
        policy_from_settings(settings.rounds),
        now,
    )
    if not eligibility.eligible:
        logger.info(f"Prospect {prospect_id} not eligible for round {round_number}: {eligibility.reason.value}")
        raise StateConflictError(
            f"Prospect is not eligible for round {round_number}",
            reason=eligibility.reason.value,
        )

    state = InProgress(1)
    status, current_step = state_to_columns(state)
    question = stepper.opening_question(company_name or prospect.company_name)

    round_ = models.ConversationRound(
        prospect_id=prospect.id,
        round_number=round_number,
        status=status,
        current_step=current_step,
        optional_asked=False,
        extracted_data={},
        transcript=[],
        started_at=now,
    )
    append_transcript(round_, {"role": "assistant", "content": question})
    session.add(round_)
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise StateConflictError(
            f"Round {round_number} already started for prospect {prospect_id}",
            reason="round_already_started",
            detail=str(e.orig),
        ) from e
    except SQLAlchemyError as e:
        logger.error(f"Failed to start round {round_number} for prospect {prospect_id}: {e}", exc_info=True)
        await session.rollback()
        raise UpstreamError("Failed to save qualification state", detail=str(e)) from e

    logger.info(f"Started round {round_number} (conversation {round_.id}) for prospect {prospect_id}")
    return StartedQualification(
        conversation_id=round_.id,
        round_number=round_number,
        question=question,
        step_title=stepper.step_definition(1).title,
    )


async def submit_response(
    session: AsyncSession,
    stepper: QualificationStepper,
    *,
    conversation_id: int,
    response_text: str,
    now: datetime | None = None,
) -> TurnResult:
    """Process one user turn.

    Raises:
        ValidationError: If the response is blank
        NotFoundError: If the round does not exist
        StateConflictError: If the round is already completed
        UpstreamError: If extraction or storage fails
    """
    if not response_text or not response_text.strip():
        raise ValidationError(
            "Response cannot be empty",
            errors=[{"field": "response", "message": "must not be blank"}],
        )

    round_ = await load_round(session, conversation_id)
    state = state_from_columns(round_.status, round_.current_step)

    # advance() may block on the LLM extractor
    try:
        outcome = await asyncio.to_thread(
            stepper.advance,
            state,
            dict(round_.extracted_data or {}),
            normalize_utterance(response_text),
            optional_asked=round_.optional_asked,
        )
    except QualificationError:
        await session.rollback()
        raise

    status, current_step = state_to_columns(outcome.state)
    round_.status = status
    round_.current_step = current_step
    round_.optional_asked = outcome.optional_asked
    round_.extracted_data = outcome.extracted_data
    if round_.started_at is None:
        round_.started_at = now or datetime.utcnow()
    if isinstance(outcome.state, Completed):
        round_.completed_at = now or datetime.utcnow()
    append_transcript(
        round_,
        {"role": "user", "content": response_text.strip()},
        {"role": "assistant", "content": outcome.question},
    )
    await save_round(session, round_)

    if outcome.updates:
        logger.debug(f"Conversation {conversation_id} captured: {outcome.updates}")

    return TurnResult(
        conversation_id=round_.id,
        question=outcome.question,
        step_title=outcome.step_title,
        current_step=outcome.current_step,
        is_follow_up=outcome.is_follow_up,
        section_complete=outcome.section_complete,
        is_complete=outcome.is_complete,
        progress=outcome.progress,
        missing_required=outcome.missing_required,
        is_optional=outcome.is_optional,
    )


async def get_status(
    session: AsyncSession,
    stepper: QualificationStepper,
    conversation_id: int,
) -> QualificationStatus:
    """Current step, status and captured data for a round."""
    round_ = await load_round(session, conversation_id)
    state = state_from_columns(round_.status, round_.current_step)
    extracted = dict(round_.extracted_data or {})
    return QualificationStatus(
        conversation_id=round_.id,
        round_number=round_.round_number,
        status=round_.status,
        current_step=round_.current_step,
        progress=stepper.progress(state, extracted),
        extracted_data=extracted,
        started_at=round_.started_at,
        completed_at=round_.completed_at,
    )


async def get_results(
    session: AsyncSession,
    stepper: QualificationStepper,
    conversation_id: int,
) -> QualificationResults:
    """Final extracted data with a quality summary.

    Raises:
        StateConflictError: If the round is not completed yet, with its progress
    """
    round_ = await load_round(session, conversation_id)
    state = state_from_columns(round_.status, round_.current_step)
    extracted = dict(round_.extracted_data or {})

    if not isinstance(state, Completed):
        raise StateConflictError(
            "Qualification not yet completed",
            current_step=round_.current_step,
            progress=stepper.progress(state, extracted),
            reason=round_.status,
        )

    return QualificationResults(
        conversation_id=round_.id,
        status=round_.status,
        completed_at=round_.completed_at,
        extracted_data=extracted,
        data_quality=analyze(extracted),
    )


async def get_transcript(session: AsyncSession, conversation_id: int) -> list[dict[str, str]]:
    round_ = await load_round(session, conversation_id)
    return list(round_.transcript or [])
