"""Functional tests for per-question branching evaluation and execution."""

from __future__ import annotations

import logging

import pytest

from app.logic.errors import BranchingEvaluationError, ParticipationNotFoundError
from app.logic.rule_evaluator import (
    DEFAULT_DISQUALIFY_MESSAGE,
    DEFAULT_END_MESSAGE,
    DEFAULT_JUMP_MESSAGE,
    RuleEvaluator,
    build_context,
)
from app.models.logic import LogicType
from app.models.response import SurveyResponse


@pytest.fixture
def data(fake_data):
    fake_data.add_participation("P1", "S1", current_section_id="SEC1")
    return fake_data


def test_terminal_action_stops_processing(data, make_rule) -> None:
    data.rules = [
        make_rule("Q1", "show_question", value="yes", target="Q2", rule_id="L1"),
        make_rule("Q1", "end_survey", value="yes", rule_id="L2"),
        make_rule("Q1", "show_question", value="yes", target="Q3", rule_id="L3"),
    ]
    result = RuleEvaluator(data).evaluate_question("Q1", "yes", "P1")

    assert result.has_actions and not result.is_error
    assert [a.action_type for a in result.actions] == [LogicType.SHOW_QUESTION, LogicType.END_SURVEY]
    assert result.actions[0].target_question_id == "Q2"
    assert result.actions[1].message == DEFAULT_END_MESSAGE
    assert result.actions[1].metadata == {"rule_id": "L2", "source_question_id": "Q1"}


def test_no_rules_yields_no_actions(data) -> None:
    result = RuleEvaluator(data).evaluate_question("Q9", "anything", "P1")
    assert result.has_actions is False
    assert result.is_error is False
    assert result.actions == []


def test_inactive_and_non_matching_rules_are_ignored(data, make_rule) -> None:
    data.rules = [
        make_rule("Q1", "end_survey", value="yes", active=False),
        make_rule("Q1", "show_question", value="no", target="Q2"),
    ]
    result = RuleEvaluator(data).evaluate_question("Q1", "yes", "P1")
    assert result.has_actions is False
    assert result.is_error is False


def test_unknown_logic_type_contributes_nothing(data, make_rule) -> None:
    data.rules = [
        make_rule("Q1", "teleport", value="yes", target="Q2"),
        make_rule("Q1", "disqualify", value="yes"),
    ]
    result = RuleEvaluator(data).evaluate_question("Q1", "yes", "P1")
    assert [a.action_type for a in result.actions] == [LogicType.DISQUALIFY]
    assert result.actions[0].message == DEFAULT_DISQUALIFY_MESSAGE


def test_rule_message_overrides_default(data, make_rule) -> None:
    data.rules = [make_rule("Q1", "jump_to_section", value="b", section="SEC2", message="Go to B")]
    result = RuleEvaluator(data).evaluate_question("Q1", "B", "P1")
    assert result.actions[0].message == "Go to B"
    assert result.actions[0].target_section_id == "SEC2"

    data.rules = [make_rule("Q1", "jump_to_section", value="b", section="SEC2")]
    result = RuleEvaluator(data).evaluate_question("Q1", "B", "P1")
    assert result.actions[0].message == DEFAULT_JUMP_MESSAGE


def test_show_questions_carries_every_target(data, make_rule) -> None:
    data.rules = [make_rule("Q1", "show_questions", value="yes", targets=["Q2", "Q3"])]
    action = RuleEvaluator(data).evaluate_question("Q1", "yes", "P1").actions[0]
    assert action.action_type is LogicType.SHOW_QUESTIONS
    assert action.target_question_ids == ["Q2", "Q3"]


def test_store_failure_is_an_error_result(data, make_rule, caplog) -> None:
    data.logic_error = ConnectionError("rule store unavailable")
    with caplog.at_level(logging.ERROR, logger="app.logic.rule_evaluator"):
        result = RuleEvaluator(data).evaluate_question("Q1", "yes", "P1")
    assert result.is_error is True
    assert result.has_actions is False
    assert "rule store unavailable" in result.error_message
    assert any("branching_evaluation_failed" in r.getMessage() for r in caplog.records)


def test_unknown_participation_with_rules_is_an_error_result(data, make_rule) -> None:
    data.rules = [make_rule("Q1", "end_survey", value="yes")]
    result = RuleEvaluator(data).evaluate_question("Q1", "yes", "P404")
    assert result.is_error is True
    assert "P404" in result.error_message


def test_build_context_keeps_latest_answer(data) -> None:
    data.answer("Q1", "first")
    data.answer("Q1", "second")
    data.answer("Q2", "other")
    ctx = build_context(data.get_participation("P1"), reversed(data.responses))
    assert ctx.responses == {"Q1": "second", "Q2": "other"}
    assert ctx.current_section_id == "SEC1"


def test_process_response_jump_updates_section(data, make_rule) -> None:
    data.rules = [make_rule("Q1", "jump_to_section", value="yes", section="SEC3")]
    response = SurveyResponse(participation_id="P1", question_id="Q1", answer="yes")
    action = RuleEvaluator(data).process_response_branching(response, "P1")
    assert action.action_type is LogicType.JUMP_TO_SECTION
    assert data.participations["P1"].current_section_id == "SEC3"
    assert data.participations["P1"].current_question_id is None


def test_process_response_end_completes_participation(data, make_rule) -> None:
    data.rules = [make_rule("Q1", "end_survey", condition_type="less_than", value="18")]
    response = SurveyResponse(participation_id="P1", question_id="Q1", answer="16")
    action = RuleEvaluator(data).process_response_branching(response, "P1")
    assert action.action_type is LogicType.END_SURVEY
    assert data.participations["P1"].status_id == 3


def test_process_response_skip_updates_current_question(data, make_rule) -> None:
    data.rules = [make_rule("Q1", "skip_to_question", value="no", target="Q7")]
    response = SurveyResponse(participation_id="P1", question_id="Q1", answer="No")
    RuleEvaluator(data).process_response_branching(response, "P1")
    assert data.participations["P1"].current_question_id == "Q7"


def test_process_response_without_match_is_no_action(data, make_rule) -> None:
    data.rules = [make_rule("Q1", "end_survey", value="yes")]
    response = SurveyResponse(participation_id="P1", question_id="Q1", answer="no")
    action = RuleEvaluator(data).process_response_branching(response, "P1")
    assert action.action_type is LogicType.NONE
    assert data.participations["P1"].status_id == 1


def test_process_response_primary_is_first_action(data, make_rule, caplog) -> None:
    data.rules = [
        make_rule("Q1", "show_question", value="yes", target="Q2"),
        make_rule("Q1", "end_survey", value="yes"),
    ]
    response = SurveyResponse(participation_id="P1", question_id="Q1", answer="yes")
    with caplog.at_level(logging.WARNING, logger="app.logic.rule_evaluator"):
        action = RuleEvaluator(data).process_response_branching(response, "P1")
    assert action.action_type is LogicType.SHOW_QUESTION
    assert data.participations["P1"].status_id == 1
    assert any("branching_primary_not_terminal" in r.getMessage() for r in caplog.records)


def test_process_response_unknown_participation_raises(data) -> None:
    response = SurveyResponse(participation_id="P404", question_id="Q1", answer="yes")
    with pytest.raises(ParticipationNotFoundError):
        RuleEvaluator(data).process_response_branching(response, "P404")


def test_process_response_store_failure_raises(data) -> None:
    data.logic_error = ConnectionError("down")
    response = SurveyResponse(participation_id="P1", question_id="Q1", answer="yes")
    with pytest.raises(BranchingEvaluationError) as excinfo:
        RuleEvaluator(data).process_response_branching(response, "P1")
    assert excinfo.value.question_id == "Q1"
