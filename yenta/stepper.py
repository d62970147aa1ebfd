"""Staged qualification flow: four steps, follow-ups until each step's
required fields are captured.

Round state is an explicit variant (``NotStarted``, ``InProgress(step)``,
``Completed``) and is only converted to the ``status``/``current_step``
columns at the persistence boundary.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Union

from config.qualification_rules import (
    COMPLETION_MESSAGE,
    FIELD_CATEGORIES,
    FOLLOW_UP_QUESTIONS,
    OPTIONAL_PROMPT_SUFFIX,
    QUALIFICATION_STEPS,
)

from .errors import StateConflictError
from .rules import FieldExtractor, derive_categories

logger = logging.getLogger(__name__)

TOTAL_STEPS = 4

STATUS_NOT_STARTED = "not_started"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"


@dataclass(frozen=True)
class NotStarted:
    pass


@dataclass(frozen=True)
class InProgress:
    step: int

    def __post_init__(self) -> None:
        if not 1 <= self.step <= TOTAL_STEPS:
            raise ValueError(f"step must be between 1 and {TOTAL_STEPS}, got {self.step}")


@dataclass(frozen=True)
class Completed:
    pass


RoundState = Union[NotStarted, InProgress, Completed]


def state_from_columns(status: str, current_step: int) -> RoundState:
    """Rebuild the round state from persisted columns."""
    if status == STATUS_NOT_STARTED:
        return NotStarted()
    if status == STATUS_IN_PROGRESS:
        if not 1 <= current_step <= TOTAL_STEPS:
            raise StateConflictError(
                f"Round is in progress with invalid step {current_step}",
                current_step=current_step,
            )
        return InProgress(current_step)
    if status == STATUS_COMPLETED:
        return Completed()
    raise StateConflictError(f"Unknown round status: {status!r}", current_step=current_step)


def state_to_columns(state: RoundState) -> tuple[str, int]:
    """Map a round state to ``(status, current_step)``."""
    if isinstance(state, NotStarted):
        return STATUS_NOT_STARTED, 1
    if isinstance(state, InProgress):
        return STATUS_IN_PROGRESS, state.step
    if isinstance(state, Completed):
        return STATUS_COMPLETED, TOTAL_STEPS
    raise TypeError(f"Not a round state: {state!r}")


@dataclass(frozen=True)
class QualificationStep:
    """One of the four intake stages."""
    step: int
    title: str
    question: str
    required_fields: tuple[str, ...]
    optional_fields: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> QualificationStep:
        return cls(
            step=data["step"],
            title=data["title"],
            question=data["question"],
            required_fields=tuple(data["required_fields"]),
            optional_fields=tuple(data.get("optional_fields", ())),
        )


def load_steps(raw_steps: Iterable[Mapping[str, Any]] = QUALIFICATION_STEPS) -> tuple[QualificationStep, ...]:
    steps = tuple(QualificationStep.from_dict(s) for s in raw_steps)
    if [s.step for s in steps] != list(range(1, TOTAL_STEPS + 1)):
        raise ValueError(f"Expected steps 1..{TOTAL_STEPS} in order")
    return steps


@dataclass
class TurnOutcome:
    """Result of processing one user utterance."""
    state: RoundState
    question: str
    step_title: str
    current_step: int
    is_follow_up: bool
    section_complete: bool
    is_complete: bool
    progress: int
    extracted_data: dict[str, Any]
    updates: dict[str, Any] = field(default_factory=dict)
    missing_required: list[str] = field(default_factory=list)
    is_optional: bool = False
    optional_asked: bool = False  # persist with the round; reset when the step changes


def is_satisfied(value: Any) -> bool:
    return value is not None and value != ""


def merge_fields(existing: Mapping[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    """Merge extractor output into accumulated data.

    Non-empty values overwrite (last write wins); empty values never erase.
    """
    merged = dict(existing)
    for key, value in updates.items():
        if is_satisfied(value):
            merged[key] = value
    return merged


def humanize_field(field_name: str) -> str:
    """``budgetStatus`` -> ``budget status``."""
    words = []
    current = ""
    for char in field_name:
        if char.isupper() and current:
            words.append(current)
            current = char.lower()
        else:
            current += char.lower()
    if current:
        words.append(current)
    return " ".join(words)


class QualificationStepper:
    """Decides follow-up, advance or completion for each user turn."""

    def __init__(
        self,
        extractor: FieldExtractor,
        steps: Iterable[QualificationStep] | None = None,
        follow_up_questions: Mapping[str, str] | None = None,
        completion_message: str = COMPLETION_MESSAGE,
        field_categories: Mapping[str, Mapping[str, str]] | None = None,
    ) -> None:
        self.extractor = extractor
        self.steps = tuple(steps) if steps is not None else load_steps()
        self.follow_up_questions = dict(FOLLOW_UP_QUESTIONS if follow_up_questions is None else follow_up_questions)
        self.completion_message = completion_message
        self.field_categories = FIELD_CATEGORIES if field_categories is None else field_categories

    def step_definition(self, step: int) -> QualificationStep:
        return self.steps[step - 1]

    def missing_required(self, step: int, extracted_data: Mapping[str, Any]) -> list[str]:
        return [
            f for f in self.step_definition(step).required_fields
            if not is_satisfied(extracted_data.get(f))
        ]

    def progress(self, state: RoundState, extracted_data: Mapping[str, Any]) -> int:
        """Percent complete: 25 per finished step plus the share of the current step."""
        if isinstance(state, Completed):
            return 100
        step = state.step if isinstance(state, InProgress) else 1
        required = self.step_definition(step).required_fields
        filled = len(required) - len(self.missing_required(step, extracted_data))
        section_share = filled / len(required) if required else 1.0
        base = (step - 1) * 100 // TOTAL_STEPS
        return min(100, base + round(section_share * 100 / TOTAL_STEPS))

    def missing_optional(self, step: int, extracted_data: Mapping[str, Any]) -> list[str]:
        return [
            f for f in self.step_definition(step).optional_fields
            if not is_satisfied(extracted_data.get(f))
        ]

    def follow_up_question(self, field_name: str) -> str:
        question = self.follow_up_questions.get(field_name)
        if question:
            return question
        return f"Could you tell me a bit more about {humanize_field(field_name)}?"

    def opening_question(self, company_name: str | None = None) -> str:
        first = self.step_definition(1)
        intro = "I'd like to understand your AI project needs through a few focused questions."
        greeting = f"Hi {company_name}!" if company_name else "Hi!"
        return f"{greeting} {intro} {first.question}"

    def advance(
        self,
        state: RoundState,
        extracted_data: Mapping[str, Any],
        utterance: str,
        *,
        optional_asked: bool = False,
    ) -> TurnOutcome:
        """Process one utterance and return the next prompt and state.

        Once a step's required fields are in, its first missing optional
        field is asked for once (``optional_asked`` tracks this per step);
        the following turn advances whether or not it was answered.

        Raises:
            StateConflictError: If the round is already completed
        """
        if isinstance(state, Completed):
            raise StateConflictError(
                "Qualification already completed",
                current_step=TOTAL_STEPS,
                progress=100,
                reason="already_completed",
            )
        if isinstance(state, NotStarted):
            state = InProgress(1)
        if not isinstance(state, InProgress):
            raise TypeError(f"Not a round state: {state!r}")

        step = state.step
        definition = self.step_definition(step)

        updates = dict(self.extractor.extract(utterance))
        updates.update(derive_categories(updates, self.field_categories))
        merged = merge_fields(extracted_data, updates)
        missing = self.missing_required(step, merged)

        if missing:
            logger.info(f"Step {step} incomplete - missing: {', '.join(missing)}")
            return TurnOutcome(
                state=state,
                question=self.follow_up_question(missing[0]),
                step_title=f"{definition.title} (gathering details...)",
                current_step=step,
                is_follow_up=True,
                section_complete=False,
                is_complete=False,
                progress=self.progress(state, merged),
                extracted_data=merged,
                updates=dict(updates),
                missing_required=missing,
                optional_asked=optional_asked,
            )

        missing_optional = self.missing_optional(step, merged)
        if missing_optional and not optional_asked:
            logger.info(f"Step {step} complete, asking for optional {missing_optional[0]}")
            return TurnOutcome(
                state=state,
                question=f"{self.follow_up_question(missing_optional[0])} {OPTIONAL_PROMPT_SUFFIX}",
                step_title=f"{definition.title} (optional details)",
                current_step=step,
                is_follow_up=True,
                section_complete=True,
                is_complete=False,
                progress=self.progress(state, merged),
                extracted_data=merged,
                updates=dict(updates),
                is_optional=True,
                optional_asked=True,
            )

        if step == TOTAL_STEPS:
            logger.info("Final step completed, qualification complete")
            return TurnOutcome(
                state=Completed(),
                question=self.completion_message,
                step_title=definition.title,
                current_step=TOTAL_STEPS,
                is_follow_up=False,
                section_complete=True,
                is_complete=True,
                progress=100,
                extracted_data=merged,
                updates=dict(updates),
            )

        next_state = InProgress(step + 1)
        next_definition = self.step_definition(step + 1)
        logger.info(f"Step {step} completed, moving to step {step + 1}")
        return TurnOutcome(
            state=next_state,
            question=next_definition.question,
            step_title=next_definition.title,
            current_step=next_state.step,
            is_follow_up=False,
            section_complete=True,
            is_complete=False,
            progress=self.progress(next_state, merged),
            extracted_data=merged,
            updates=dict(updates),
        )
