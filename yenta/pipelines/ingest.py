"""Prospect intake: create prospects and resolve session tokens."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .. import models
from ..errors import NotFoundError, UpstreamError

logger = logging.getLogger(__name__)


def new_session_token() -> str:
    return uuid.uuid4().hex


async def create_prospect(
    session: AsyncSession,
    *,
    company_name: str | None = None,
    contact_name: str | None = None,
    email: str | None = None,
) -> models.Prospect:
    """Create a prospect with a fresh session token."""
    prospect = models.Prospect(
        session_token=new_session_token(),
        company_name=company_name or None,
        contact_name=contact_name or None,
        email=email or None,
    )
    session.add(prospect)
    try:
        await session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Failed to create prospect: {e}", exc_info=True)
        await session.rollback()
        raise UpstreamError("Failed to create prospect", detail=str(e)) from e

    logger.info(f"Created prospect {prospect.id} ({company_name or 'no company'})")
    return prospect


async def get_prospect(session: AsyncSession, prospect_id: int) -> models.Prospect:
    """Load a prospect with its rounds.

    Raises:
        NotFoundError: If no such prospect exists
    """
    result = await session.execute(
        select(models.Prospect)
        .where(models.Prospect.id == prospect_id)
        .options(selectinload(models.Prospect.rounds))
        .execution_options(populate_existing=True)
    )
    prospect = result.scalar_one_or_none()
    if prospect is None:
        raise NotFoundError(f"Prospect {prospect_id} not found")
    return prospect


async def get_prospect_by_session(session: AsyncSession, session_token: str) -> models.Prospect:
    """Resolve a session token to its prospect.

    Raises:
        NotFoundError: If the token is unknown
    """
    result = await session.execute(
        select(models.Prospect)
        .where(models.Prospect.session_token == session_token)
        .options(selectinload(models.Prospect.rounds))
        .execution_options(populate_existing=True)
    )
    prospect = result.scalar_one_or_none()
    if prospect is None:
        raise NotFoundError("Session not found")
    return prospect
