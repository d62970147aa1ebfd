import pytest

from config.qualification_rules import OPTIONAL_PROMPT_SUFFIX
from conftest import StubExtractor
from yenta.errors import StateConflictError
from yenta.stepper import (
    Completed,
    InProgress,
    NotStarted,
    QualificationStepper,
    humanize_field,
    load_steps,
    merge_fields,
    state_from_columns,
    state_to_columns,
)

STEP_ANSWERS = {
    "step one": {"problemType": "customer_support", "jobFunction": "vp", "industry": "healthcare"},
    "step two": {"solutionType": "off_the_shelf", "implementationCapacity": "internal_team", "techCapability": "high"},
    "step three": {"businessUrgency": "under_3_months", "decisionRole": "final_decision"},
    "step four": {"budgetStatus": "approved", "budgetAmount": "$50k"},
    "industry only": {"industry": "healthcare"},
    "budget status only": {"budgetStatus": "approved"},
}


@pytest.fixture
def stub_stepper() -> QualificationStepper:
    return QualificationStepper(StubExtractor(STEP_ANSWERS))


def test_default_steps_load_in_order() -> None:
    steps = load_steps()
    assert [s.step for s in steps] == [1, 2, 3, 4]
    assert steps[0].required_fields == ("problemType", "jobFunction", "industry")
    assert steps[3].optional_fields == ("budgetAmount",)


def test_steps_out_of_order_rejected() -> None:
    raw = [
        {"step": 2, "title": "b", "question": "?", "required_fields": ["x"]},
        {"step": 1, "title": "a", "question": "?", "required_fields": ["y"]},
    ]
    with pytest.raises(ValueError):
        load_steps(raw)


def test_state_column_mapping() -> None:
    assert state_to_columns(InProgress(3)) == ("in_progress", 3)
    assert state_to_columns(Completed()) == ("completed", 4)
    assert state_from_columns("in_progress", 2) == InProgress(2)
    assert state_from_columns("not_started", 1) == NotStarted()
    assert state_from_columns("completed", 4) == Completed()


def test_state_from_invalid_columns() -> None:
    with pytest.raises(StateConflictError):
        state_from_columns("in_progress", 7)
    with pytest.raises(StateConflictError):
        state_from_columns("paused", 1)


def test_in_progress_step_range() -> None:
    with pytest.raises(ValueError):
        InProgress(0)
    with pytest.raises(ValueError):
        InProgress(5)


def test_merge_never_erases() -> None:
    """Empty updates keep the existing value; non-empty updates overwrite."""
    merged = merge_fields({"industry": "healthcare", "jobFunction": "manager"}, {"industry": "", "jobFunction": "vp"})
    assert merged == {"industry": "healthcare", "jobFunction": "vp"}
    assert merge_fields({"industry": "retail"}, {"industry": None}) == {"industry": "retail"}


def test_humanize_field() -> None:
    assert humanize_field("budgetStatus") == "budget status"
    assert humanize_field("industry") == "industry"


def test_opening_question_greets_company(stub_stepper: QualificationStepper) -> None:
    question = stub_stepper.opening_question("Acme")
    assert question.startswith("Hi Acme! I'd like to understand your AI project needs")
    assert question.endswith(stub_stepper.step_definition(1).question)
    assert stub_stepper.opening_question().startswith("Hi! ")


def test_partial_answer_asks_follow_up(stub_stepper: QualificationStepper) -> None:
    """Missing required fields keep the round on the same step."""
    outcome = stub_stepper.advance(InProgress(1), {}, "industry only")
    assert outcome.state == InProgress(1)
    assert outcome.is_follow_up is True
    assert outcome.section_complete is False
    assert outcome.missing_required == ["problemType", "jobFunction"]
    assert outcome.question == stub_stepper.follow_up_question("problemType")
    assert outcome.extracted_data == {"industry": "healthcare", "industryCategory": "service"}
    assert outcome.progress == 8


def test_unmatched_utterance_keeps_data(stub_stepper: QualificationStepper) -> None:
    """An utterance with no facts leaves data unchanged and repeats the follow-up."""
    data = {"industry": "healthcare"}
    outcome = stub_stepper.advance(InProgress(1), data, "nothing useful")
    assert outcome.extracted_data == data
    assert outcome.updates == {}
    assert outcome.question == stub_stepper.follow_up_question("problemType")


def test_follow_up_falls_back_to_generic_question() -> None:
    stepper = QualificationStepper(StubExtractor(), follow_up_questions={})
    assert stepper.follow_up_question("decisionRole") == "Could you tell me a bit more about decision role?"


def test_not_started_treated_as_step_one(stub_stepper: QualificationStepper) -> None:
    outcome = stub_stepper.advance(NotStarted(), {}, "step one")
    assert outcome.state == InProgress(2)
    assert outcome.question == stub_stepper.step_definition(2).question


def test_full_flow_completes(stub_stepper: QualificationStepper) -> None:
    """Four complete answers walk the round to completion at 100%."""
    state, data = InProgress(1), {}
    steps_seen = []
    for utterance in ("step one", "step two", "step three"):
        outcome = stub_stepper.advance(state, data, utterance)
        assert outcome.section_complete is True
        assert outcome.is_complete is False
        state, data = outcome.state, outcome.extracted_data
        steps_seen.append(outcome.current_step)

    assert steps_seen == [2, 3, 4]
    assert stub_stepper.progress(state, data) == 75

    final = stub_stepper.advance(state, data, "step four")
    assert final.state == Completed()
    assert final.is_complete is True
    assert final.progress == 100
    assert final.question == stub_stepper.completion_message
    assert final.extracted_data["budgetAmount"] == "$50k"
    assert final.extracted_data["techCapability"] == "high"
    assert final.extracted_data["problemTypeCategory"] == "communication"
    assert final.extracted_data["jobFunctionCategory"] == "executive"
    assert final.extracted_data["budgetStatusCategory"] == "approved"
    assert "budgetAmountCategory" not in final.extracted_data


def test_fields_stay_filled_across_turns(stub_stepper: QualificationStepper) -> None:
    outcome = stub_stepper.advance(InProgress(1), {}, "industry only")
    outcome = stub_stepper.advance(outcome.state, outcome.extracted_data, "nothing useful")
    assert outcome.extracted_data["industry"] == "healthcare"


def test_completed_round_rejects_more_input(stub_stepper: QualificationStepper) -> None:
    with pytest.raises(StateConflictError) as exc_info:
        stub_stepper.advance(Completed(), {}, "step one")
    assert exc_info.value.reason == "already_completed"
    assert exc_info.value.progress == 100


def test_progress_counts_current_step_share(stub_stepper: QualificationStepper) -> None:
    assert stub_stepper.progress(InProgress(1), {}) == 0
    assert stub_stepper.progress(InProgress(1), {"industry": "retail", "jobFunction": "vp"}) == 17
    assert stub_stepper.progress(InProgress(3), {}) == 50
    assert stub_stepper.progress(InProgress(4), {"budgetStatus": "approved"}) == 100
    assert stub_stepper.progress(Completed(), {}) == 100


def test_keyword_stepper_end_to_end(stepper: QualificationStepper) -> None:
    """Real keyword rules take a round from greeting to completion."""
    answers = [
        "we're a healthcare clinic and i'm the vp of operations. our problem is customer support tickets piling up.",
        "we'd prefer an off-the-shelf tool, our internal team would handle the rollout and they know python.",
        "it's urgent and i make the final decision.",
        "we have an approved budget of $50k.",
    ]
    state, data = InProgress(1), {}
    for answer in answers:
        outcome = stepper.advance(state, data, answer)
        assert outcome.is_follow_up is False
        state, data = outcome.state, outcome.extracted_data

    assert state == Completed()
    assert data["solutionType"] == "off_the_shelf"
    assert data["decisionRole"] == "final_decision"
    assert data["budgetStatus"] == "approved"
    assert data["techCapability"] == "high"


def test_missing_optional_field_is_asked_once(stub_stepper: QualificationStepper) -> None:
    """A complete step with an optional gap asks once, then moves on."""
    data = {"industry": "healthcare"}
    outcome = stub_stepper.advance(InProgress(4), data, "budget status only")
    assert outcome.state == InProgress(4)
    assert outcome.is_optional is True
    assert outcome.optional_asked is True
    assert outcome.is_follow_up is True
    assert outcome.section_complete is True
    assert outcome.is_complete is False
    assert outcome.question == f"{stub_stepper.follow_up_question('budgetAmount')} {OPTIONAL_PROMPT_SUFFIX}"
    assert outcome.step_title.endswith("(optional details)")

    final = stub_stepper.advance(outcome.state, outcome.extracted_data, "nothing useful", optional_asked=True)
    assert final.state == Completed()
    assert final.is_optional is False
    assert final.optional_asked is False
    assert "budgetAmount" not in final.extracted_data


def test_optional_prompt_skipped_when_optional_field_given(stub_stepper: QualificationStepper) -> None:
    outcome = stub_stepper.advance(InProgress(4), {}, "step four")
    assert outcome.state == Completed()
    assert outcome.is_optional is False


def test_optional_flag_carries_through_required_follow_ups(stub_stepper: QualificationStepper) -> None:
    outcome = stub_stepper.advance(InProgress(1), {}, "industry only", optional_asked=True)
    assert outcome.is_optional is False
    assert outcome.optional_asked is True


def test_steps_never_move_backwards(stub_stepper: QualificationStepper) -> None:
    """Across follow-ups, optional prompts and advances the step only grows."""
    state, data, asked = InProgress(1), {}, False
    steps = [1]
    for utterance in (
        "industry only", "step one", "nothing useful", "step two", "step three",
        "nothing useful", "budget status only", "nothing useful",
    ):
        outcome = stub_stepper.advance(state, data, utterance, optional_asked=asked)
        state, data, asked = outcome.state, outcome.extracted_data, outcome.optional_asked
        steps.append(outcome.current_step)

    assert steps == sorted(steps)
    assert steps == [1, 1, 2, 2, 3, 4, 4, 4, 4]
    assert state == Completed()
