"""FastAPI app with health, prospect intake and qualification endpoints.

Exposes the staged qualification flow, round eligibility and readiness
scoring over HTTP with consistent error responses.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ai.extraction import LLMFieldExtractor
from ai.scoring import ReadinessScorer
from .config import ExtractionBackend, settings
from .db import get_session
from .errors import NotFoundError, QualificationError, StateConflictError, UpstreamError, ValidationError
from .logging_config import setup_logging
from .pipelines import ingest, qualification, rounds
from .rules import KeywordFieldExtractor
from .stepper import QualificationStepper

logger = logging.getLogger(__name__)


# Pydantic request/response models
class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: str | None = None
    errors: list[dict] | None = None
    current_step: int | None = None
    progress: int | None = None
    reason: str | None = None


class CreateProspectRequest(BaseModel):
    """Create prospect request."""
    company_name: str | None = Field(default=None, max_length=255)
    contact_name: str | None = Field(default=None, max_length=255)
    email: EmailStr | None = None


class CreateProspectResponse(BaseModel):
    """Create prospect response."""
    prospect_id: int
    session_token: str
    company_name: str | None


class RoundSummaryDTO(BaseModel):
    """Round summary in prospect lookups."""
    conversation_id: int
    round_number: int
    status: str
    current_step: int
    score: float | None
    completed_at: datetime | None


class ProspectResponse(BaseModel):
    """Prospect lookup by session token."""
    prospect_id: int
    session_token: str
    company_name: str | None
    contact_name: str | None
    email: str | None
    rounds: list[RoundSummaryDTO] = Field(default_factory=list)


class StartQualificationRequest(BaseModel):
    """Start qualification request."""
    prospect_id: int = Field(ge=1)
    company_name: str | None = Field(default=None, max_length=255)
    round_number: int = Field(default=1, ge=1, le=3)


class StartQualificationResponse(BaseModel):
    """First question of a new round."""
    conversation_id: int
    round_number: int
    question: str
    step_title: str
    current_step: int
    total_steps: int


class SubmitResponseRequest(BaseModel):
    """User answer for the current step."""
    conversation_id: int = Field(ge=1)
    response: str = Field(min_length=1, max_length=5000)


class SubmitResponseResponse(BaseModel):
    """Next question and progress after a user turn."""
    conversation_id: int
    question: str
    step_title: str
    is_follow_up: bool
    section_complete: bool
    current_step: int
    total_steps: int
    progress: int
    is_complete: bool
    missing_required: list[str] = Field(default_factory=list)
    is_optional: bool = False


class StatusResponse(BaseModel):
    """Qualification status."""
    conversation_id: int
    round_number: int
    current_step: int
    total_steps: int
    status: str
    extracted_data: dict[str, Any]
    progress: int
    started_at: datetime | None
    completed_at: datetime | None


class DataQualityDTO(BaseModel):
    """Data quality summary."""
    completeness: str
    quality: str
    filled_fields: int
    total_fields: int
    missing_critical: list[str]


class ResultsResponse(BaseModel):
    """Final qualification results."""
    conversation_id: int
    status: str
    completed_at: datetime | None
    extracted_data: dict[str, Any]
    data_quality: DataQualityDTO


class TranscriptMessageDTO(BaseModel):
    role: str
    content: str


class ScoreResponse(BaseModel):
    """Readiness score for a completed round."""
    conversation_id: int
    total_score: float
    category: str
    summary: str


class EligibilityResponse(BaseModel):
    """Round gate decision."""
    prospect_id: int
    round_number: int
    eligible: bool
    reason: str


# Dependencies
@lru_cache(maxsize=1)
def get_stepper() -> QualificationStepper:
    """Stepper wired to the configured extraction backend."""
    if settings.extraction.backend == ExtractionBackend.LLM:
        extractor = LLMFieldExtractor()
    else:
        extractor = KeywordFieldExtractor(
            fuzzy_matching=settings.extraction.fuzzy_matching,
            fuzzy_threshold=settings.extraction.fuzzy_threshold,
        )
    return QualificationStepper(extractor)


@lru_cache(maxsize=1)
def get_scorer() -> ReadinessScorer:
    return ReadinessScorer()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging()
    logger.info(f"{settings.app_name} starting up (extraction={settings.extraction.backend.value})")

    yield

    # Shutdown
    logger.info("Application shutting down")


app = FastAPI(
    title="Yenta Qualification API",
    version=settings.version,
    description="Staged prospect qualification with round gating",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
def _error_response(status_code: int, exc: QualificationError, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=exc.error_code,
            detail=exc.detail or exc.message,
            **extra,
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    """Handle malformed input."""
    logger.warning(f"Validation error on {request.url.path}: {exc.message}")
    return _error_response(status.HTTP_400_BAD_REQUEST, exc, errors=exc.errors or None)


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    """Handle unknown prospects and conversations."""
    logger.info(f"Not found on {request.url.path}: {exc.message}")
    return _error_response(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(StateConflictError)
async def state_conflict_error_handler(request: Request, exc: StateConflictError):
    """Handle operations that the round's state does not allow yet."""
    logger.info(f"State conflict on {request.url.path}: {exc.message}")
    return _error_response(
        status.HTTP_409_CONFLICT,
        exc,
        current_step=exc.current_step,
        progress=exc.progress,
        reason=exc.reason,
    )


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    """Handle extractor, scorer and storage failures."""
    logger.error(f"Upstream error on {request.url.path}: {exc.message} ({exc.detail})", exc_info=exc)
    return _error_response(status.HTTP_502_BAD_GATEWAY, exc)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    """Anything else is a 500 with the traceback in the log."""
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error="internal_error", detail="Internal server error").model_dump(exclude_none=True),
    )


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        version=settings.version,
    )


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.version,
        "endpoints": {
            "health": "/health",
            "create_prospect": "/prospects",
            "start": "/qualification/start",
            "respond": "/qualification/respond",
            "status": "/qualification/{conversation_id}/status",
            "results": "/qualification/{conversation_id}/results",
            "score": "/qualification/{conversation_id}/score",
            "eligibility": "/prospects/{prospect_id}/rounds/{round_number}/eligibility",
            "docs": "/docs",
        },
    }


@app.post(
    "/prospects",
    response_model=CreateProspectResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_prospect(
    request: CreateProspectRequest,
    session: AsyncSession = Depends(get_session),
) -> CreateProspectResponse:
    """Create a prospect and its session token."""
    prospect = await ingest.create_prospect(
        session,
        company_name=request.company_name,
        contact_name=request.contact_name,
        email=request.email,
    )
    return CreateProspectResponse(
        prospect_id=prospect.id,
        session_token=prospect.session_token,
        company_name=prospect.company_name,
    )


@app.get("/prospects/session/{session_token}", response_model=ProspectResponse)
async def get_prospect_by_session(
    session_token: str,
    session: AsyncSession = Depends(get_session),
) -> ProspectResponse:
    """Resolve a session token to its prospect and rounds."""
    prospect = await ingest.get_prospect_by_session(session, session_token)
    return ProspectResponse(
        prospect_id=prospect.id,
        session_token=prospect.session_token,
        company_name=prospect.company_name,
        contact_name=prospect.contact_name,
        email=prospect.email,
        rounds=[
            RoundSummaryDTO(
                conversation_id=r.id,
                round_number=r.round_number,
                status=r.status,
                current_step=r.current_step,
                score=r.score,
                completed_at=r.completed_at,
            )
            for r in prospect.rounds
        ],
    )


@app.get(
    "/prospects/{prospect_id}/rounds/{round_number}/eligibility",
    response_model=EligibilityResponse,
)
async def round_eligibility(
    prospect_id: int,
    round_number: int,
    session: AsyncSession = Depends(get_session),
) -> EligibilityResponse:
    """Check whether a prospect may start the given round."""
    eligibility = await rounds.check_round_eligibility(session, prospect_id, round_number)
    return EligibilityResponse(
        prospect_id=prospect_id,
        round_number=round_number,
        eligible=eligibility.eligible,
        reason=eligibility.reason.value,
    )


@app.post(
    "/qualification/start",
    response_model=StartQualificationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_qualification(
    request: StartQualificationRequest,
    session: AsyncSession = Depends(get_session),
    stepper: QualificationStepper = Depends(get_stepper),
) -> StartQualificationResponse:
    """Start a qualification round and return the opening question."""
    logger.info(f"Starting round {request.round_number} for prospect {request.prospect_id}")
    started = await qualification.start_qualification(
        session,
        stepper,
        prospect_id=request.prospect_id,
        company_name=request.company_name,
        round_number=request.round_number,
    )
    return StartQualificationResponse(
        conversation_id=started.conversation_id,
        round_number=started.round_number,
        question=started.question,
        step_title=started.step_title,
        current_step=started.current_step,
        total_steps=started.total_steps,
    )


@app.post("/qualification/respond", response_model=SubmitResponseResponse)
async def submit_response(
    request: SubmitResponseRequest,
    session: AsyncSession = Depends(get_session),
    stepper: QualificationStepper = Depends(get_stepper),
) -> SubmitResponseResponse:
    """Submit an answer and get the next question."""
    turn = await qualification.submit_response(
        session,
        stepper,
        conversation_id=request.conversation_id,
        response_text=request.response,
    )
    return SubmitResponseResponse(
        conversation_id=turn.conversation_id,
        question=turn.question,
        step_title=turn.step_title,
        is_follow_up=turn.is_follow_up,
        section_complete=turn.section_complete,
        current_step=turn.current_step,
        total_steps=turn.total_steps,
        progress=turn.progress,
        is_complete=turn.is_complete,
        missing_required=turn.missing_required,
        is_optional=turn.is_optional,
    )


@app.get("/qualification/{conversation_id}/status", response_model=StatusResponse)
async def get_status(
    conversation_id: int,
    session: AsyncSession = Depends(get_session),
    stepper: QualificationStepper = Depends(get_stepper),
) -> StatusResponse:
    """Current step, status and captured data."""
    state = await qualification.get_status(session, stepper, conversation_id)
    return StatusResponse(
        conversation_id=state.conversation_id,
        round_number=state.round_number,
        current_step=state.current_step,
        total_steps=state.total_steps,
        status=state.status,
        extracted_data=state.extracted_data,
        progress=state.progress,
        started_at=state.started_at,
        completed_at=state.completed_at,
    )


@app.get("/qualification/{conversation_id}/results", response_model=ResultsResponse)
async def get_results(
    conversation_id: int,
    session: AsyncSession = Depends(get_session),
    stepper: QualificationStepper = Depends(get_stepper),
) -> ResultsResponse:
    """Final extracted data and data quality; 409 until the round completes."""
    results = await qualification.get_results(session, stepper, conversation_id)
    quality = results.data_quality
    return ResultsResponse(
        conversation_id=results.conversation_id,
        status=results.status,
        completed_at=results.completed_at,
        extracted_data=results.extracted_data,
        data_quality=DataQualityDTO(
            completeness=f"{quality.completeness}%",
            quality=quality.quality.value,
            filled_fields=quality.filled_fields,
            total_fields=quality.total_fields,
            missing_critical=quality.missing_critical,
        ),
    )


@app.get(
    "/qualification/{conversation_id}/transcript",
    response_model=list[TranscriptMessageDTO],
)
async def get_transcript(
    conversation_id: int,
    session: AsyncSession = Depends(get_session),
) -> list[TranscriptMessageDTO]:
    """Ordered transcript of the round."""
    messages = await qualification.get_transcript(session, conversation_id)
    return [TranscriptMessageDTO(role=m["role"], content=m["content"]) for m in messages]


@app.post("/qualification/{conversation_id}/score", response_model=ScoreResponse)
async def score_round(
    conversation_id: int,
    session: AsyncSession = Depends(get_session),
    scorer: ReadinessScorer = Depends(get_scorer),
) -> ScoreResponse:
    """Score a completed round. Safe to retry after a 502."""
    result = await rounds.score_round(session, scorer, conversation_id)
    return ScoreResponse(
        conversation_id=conversation_id,
        total_score=result.total_score,
        category=result.category,
        summary=result.summary,
    )
