"""Repository tests against the migrated SQLite database.

Seeds one survey through plain SQL and exercises the SQL-backed data
source the flow engine uses in production.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import text as sql_text

from app.db.base import get_engine
from app.logic.flow_data import SqlFlowDataSource
from app.logic.flow_state import FlowStateTracker
from app.models.logic import LogicType
from app.models.response import SurveyResponse


SEED_SQL = [
    "INSERT INTO survey (survey_id, name) VALUES ('RS1', 'Repository survey')",
    "INSERT INTO survey_section (section_id, survey_id, name, section_order) VALUES ('RSEC2', 'RS1', 'Second', 2)",
    "INSERT INTO survey_section (section_id, survey_id, name, section_order) VALUES ('RSEC1', 'RS1', 'First', 1)",
    "INSERT INTO question (question_id, section_id, type_id, question_text, question_order, is_mandatory)"
    " VALUES ('RQ3', 'RSEC2', 1, 'Why?', 1, FALSE)",
    "INSERT INTO question (question_id, section_id, type_id, question_text, question_order, is_mandatory, min_value)"
    " VALUES ('RQ1', 'RSEC1', 5, 'Rate us', 1, TRUE, 2)",
    "INSERT INTO question (question_id, section_id, type_id, question_text, question_order)"
    " VALUES ('RQ2', 'RSEC1', 8, 'Grid', 2)",
    "INSERT INTO question (question_id, section_id, type_id, question_text, question_order, is_deleted)"
    " VALUES ('RQX', 'RSEC1', 1, 'Gone', 3, TRUE)",
    "INSERT INTO question_choice (choice_id, question_id, value, is_exclusive_option) VALUES ('RC2', 'RQ3', 'None', TRUE)",
    "INSERT INTO question_choice (choice_id, question_id, value) VALUES ('RC1', 'RQ3', 'Some')",
    "INSERT INTO question_choice (choice_id, question_id, value, is_deleted) VALUES ('RC3', 'RQ3', 'Old', TRUE)",
    "INSERT INTO matrix_row (row_id, question_id, label) VALUES ('RR1', 'RQ2', 'Speed')",
    "INSERT INTO matrix_column (column_id, question_id, value) VALUES ('RK1', 'RQ2', 'Agree')",
    "INSERT INTO question_logic (logic_id, question_id, logic_type, condition_type, condition_value,"
    " target_question_id, created_at) VALUES ('RL2', 'RQ1', 'show_question', 'greater_than', '3', 'RQ3',"
    " '2024-01-02T00:00:00Z')",
    "INSERT INTO question_logic (logic_id, question_id, logic_type, condition_type, condition_value,"
    " target_question_ids, created_at) VALUES ('RL1', 'RQ1', 'show_questions', 'equals', '5', '[\"RQ2\", \"RQ3\"]',"
    " '2024-01-01T00:00:00Z')",
    "INSERT INTO question_logic (logic_id, question_id, logic_type, condition_type, condition_value,"
    " target_section_id, is_active, created_at) VALUES ('RL3', 'RQ1', 'jump_to_section', 'equals', '1', 'RSEC2',"
    " FALSE, '2024-01-03T00:00:00Z')",
    "INSERT INTO question_logic (logic_id, question_id, logic_type, condition_type, condition_value,"
    " target_question_ids, is_deleted, created_at) VALUES ('RL4', 'RQ1', 'show_questions', 'equals', '1', 'RQ2,RQ3',"
    " TRUE, '2024-01-04T00:00:00Z')",
    "INSERT INTO survey_participation (participation_id, survey_id) VALUES ('RP1', 'RS1')",
]


@pytest.fixture(scope="module")
def sql_data() -> SqlFlowDataSource:
    with get_engine().begin() as conn:
        for stmt in SEED_SQL:
            conn.execute(sql_text(stmt))
    return SqlFlowDataSource()


def test_question_logic_in_creation_order_without_deleted_rows(sql_data) -> None:
    rules = sql_data.get_question_logic("RQ1")
    assert [r.rule_id for r in rules] == ["RL1", "RL2", "RL3"]
    assert rules[0].target_question_ids == ["RQ2", "RQ3"]
    assert rules[0].action is LogicType.SHOW_QUESTIONS
    assert rules[2].is_active is False
    assert sql_data.get_survey_logic("RS1") == rules


def test_question_metadata_joins_question_type(sql_data) -> None:
    meta = sql_data.get_question_metadata("RQ1")
    assert meta.question_type == "Rating"
    assert meta.is_mandatory is True
    assert meta.min_value == Decimal("2")
    assert meta.default_min_value == Decimal("1")
    assert meta.default_max_value == Decimal("5")
    assert sql_data.get_question_metadata("RQX") is None
    assert sql_data.get_question_metadata("missing") is None


def test_choices_and_matrix_lookups(sql_data) -> None:
    choices = sql_data.list_choices("RQ3")
    assert [(c.choice_id, c.value, c.is_exclusive) for c in choices] == [("RC1", "Some", False), ("RC2", "None", True)]
    assert sql_data.matrix_row_exists("RQ2", "RR1") is True
    assert sql_data.matrix_row_exists("RQ2", "RR9") is False
    assert sql_data.matrix_column_exists("RQ2", " agree ") is True
    assert sql_data.matrix_column_exists("RQ2", "Disagree") is False


def test_survey_catalog_follows_section_order(sql_data) -> None:
    catalog = sql_data.list_survey_questions("RS1")
    assert [(q.question_id, q.section_id) for q in catalog] == [("RQ1", "RSEC1"), ("RQ2", "RSEC1"), ("RQ3", "RSEC2")]


def test_save_is_an_upsert_per_question(sql_data) -> None:
    t0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    first = SurveyResponse(participation_id="RP1", question_id="RQ3", answer="draft", response_datetime=t0)
    assert sql_data.save_survey_response(first) is True
    assert first.response_id

    second = SurveyResponse(
        participation_id="RP1", question_id="RQ3", answer="final", response_datetime=t0 + timedelta(minutes=5)
    )
    assert sql_data.save_survey_response(second) is True
    assert second.response_id == first.response_id

    saved = [r for r in sql_data.get_saved_responses("RP1") if r.question_id == "RQ3"]
    assert len(saved) == 1
    assert saved[0].answer == "final"
    assert saved[0].response_datetime == t0 + timedelta(minutes=5)


def test_matrix_rows_are_saved_separately(sql_data) -> None:
    for row_id in ("RR1", "RR2"):
        sql_data.save_survey_response(
            SurveyResponse(participation_id="RP1", question_id="RQ2", answer="Agree", matrix_row_id=row_id)
        )
    rows = [r.matrix_row_id for r in sql_data.get_saved_responses("RP1") if r.question_id == "RQ2"]
    assert sorted(rows) == ["RR1", "RR2"]


def test_participation_updates(sql_data) -> None:
    assert sql_data.update_current_question("RP1", "RQ2") is True
    assert sql_data.get_participation("RP1").current_question_id == "RQ2"

    assert sql_data.update_current_section("RP1", "RSEC2") is True
    p = sql_data.get_participation("RP1")
    assert p.current_section_id == "RSEC2"
    assert p.current_question_id is None

    assert sql_data.update_current_section("RP404", "RSEC2") is False
    assert sql_data.get_participation("RP404") is None


def test_flow_state_over_sql_source(sql_data) -> None:
    sql_data.save_survey_response(
        SurveyResponse(
            participation_id="RP1",
            question_id="RQ1",
            answer="5",
            response_datetime=datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc),
        )
    )
    tracker = FlowStateTracker(sql_data)
    assert tracker.compute_available_questions("RP1") == {"RQ1", "RQ2", "RQ3"}
    assert tracker.get_available_questions("RP1", "RSEC1") == ["RQ1", "RQ2"]


def test_complete_survey_sets_status(sql_data) -> None:
    assert sql_data.complete_survey("RP1") is True
    assert sql_data.get_participation("RP1").status_id == 3
