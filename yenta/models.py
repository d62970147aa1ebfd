"""Core SQLAlchemy models (2.x style) for prospects and qualification rounds."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Prospect(Base):
    """Prospects table. One row per intake session."""
    __tablename__ = "prospects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    company_name: Mapped[str | None] = mapped_column(String(255), index=True)
    contact_name: Mapped[str | None] = mapped_column(String(255))
    email: Mapped[str | None] = mapped_column(String(320))
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    # Relationships
    rounds: Mapped[list[ConversationRound]] = relationship(
        "ConversationRound",
        back_populates="prospect",
        order_by="ConversationRound.round_number",
    )


class ConversationRound(Base):
    """One qualification conversation (round 1..3) for a prospect."""
    __tablename__ = "conversation_rounds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    prospect_id: Mapped[int] = mapped_column(
        ForeignKey("prospects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    round_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="not_started", index=True)
    current_step: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    optional_asked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    extracted_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    transcript: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    started_at: Mapped[datetime | None] = mapped_column()
    completed_at: Mapped[datetime | None] = mapped_column()

    # Readiness score, written by the scorer after completion
    score: Mapped[float | None] = mapped_column(Float)
    score_category: Mapped[str | None] = mapped_column(String(20))
    score_summary: Mapped[str | None] = mapped_column(Text)
    scored_at: Mapped[datetime | None] = mapped_column()

    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    # Relationship
    prospect: Mapped[Prospect] = relationship("Prospect", back_populates="rounds")

    __table_args__ = (
        UniqueConstraint("prospect_id", "round_number", name="uq_conversation_rounds_prospect_round"),
        Index("ix_conversation_rounds_created_at", "created_at"),
    )
