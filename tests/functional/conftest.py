from __future__ import annotations

"""Functional test bootstrap for the survey flow service.

Repository tests run against a file-backed SQLite database whose schema is
applied once at session start. Engine-level tests use `FakeFlowData`, an
in-memory object implementing both data ports, so rule semantics can be
exercised without SQL.
"""

import os
import pathlib
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

_ROOT = pathlib.Path(__file__).resolve().parents[2]
_DB_FILE = _ROOT / "tmp" / "functional_tests.db"
_DB_FILE.parent.mkdir(parents=True, exist_ok=True)
if _DB_FILE.exists():
    _DB_FILE.unlink()

# Use a file-backed SQLite DB to ensure persistence across connections
os.environ["TEST_DATABASE_URL"] = f"sqlite:///{_DB_FILE}"
os.environ["DATABASE_URL"] = os.environ["TEST_DATABASE_URL"]
# Disable app startup auto-migrations; the session fixture applies them
os.environ["AUTO_APPLY_MIGRATIONS"] = "0"

from app.models.logic import LogicRule  # noqa: E402
from app.models.response import (  # noqa: E402
    ChoiceOption,
    Participation,
    QuestionMetadata,
    SurveyQuestion,
    SurveyResponse,
)

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _apply_sqlite_migrations() -> None:
    from app.db.base import get_engine, reset_engine
    from app.db.migrations_runner import apply_migrations

    reset_engine()
    engine = get_engine(os.environ["TEST_DATABASE_URL"])
    apply_migrations(engine, migrations_dir=str(_ROOT / "migrations"))


@pytest.fixture(scope="session", autouse=True)
def functional_sqlite_bootstrap() -> None:
    """Session-level bootstrap: apply migrations once for the shared DB."""
    _apply_sqlite_migrations()
    yield


def rule(
    question_id: str,
    logic_type: str,
    condition_type: str = "equals",
    value: Optional[str] = None,
    value2: Optional[str] = None,
    target: Optional[str] = None,
    targets: Optional[List[str]] = None,
    section: Optional[str] = None,
    rule_id: Optional[str] = None,
    active: bool = True,
    message: Optional[str] = None,
) -> LogicRule:
    return LogicRule(
        rule_id=rule_id,
        question_id=question_id,
        logic_type=logic_type,
        condition_type=condition_type,
        condition_value=value,
        condition_value2=value2,
        target_question_id=target,
        target_question_ids=list(targets or []),
        target_section_id=section,
        is_active=active,
        message=message,
    )


class FakeFlowData:
    """In-memory implementation of FlowDataSource and QuestionReferenceData."""

    def __init__(self) -> None:
        self.rules: List[LogicRule] = []
        self.participations: Dict[str, Participation] = {}
        self.responses: List[SurveyResponse] = []
        self.catalog: Dict[str, List[SurveyQuestion]] = {}
        self.metadata: Dict[str, QuestionMetadata] = {}
        self.choices: Dict[str, List[ChoiceOption]] = {}
        self.matrix_rows: Dict[str, List[str]] = {}
        self.matrix_columns: Dict[str, List[str]] = {}
        self.save_failures = 0
        self.save_calls = 0
        self.logic_error: Optional[Exception] = None
        self._clock = 0

    # -- seeding helpers ---------------------------------------------------

    def add_participation(self, participation_id: str = "P1", survey_id: str = "S1", **kw) -> Participation:
        p = Participation(participation_id=participation_id, survey_id=survey_id, **kw)
        self.participations[participation_id] = p
        return p

    def add_question(
        self,
        question_id: str,
        section_id: str = "SEC1",
        survey_id: str = "S1",
        question_type: str = "ShortText",
        **kw,
    ) -> QuestionMetadata:
        questions = self.catalog.setdefault(survey_id, [])
        questions.append(
            SurveyQuestion(question_id=question_id, section_id=section_id, question_order=len(questions) + 1)
        )
        meta = QuestionMetadata(question_id=question_id, question_type=question_type, section_id=section_id, **kw)
        self.metadata[question_id] = meta
        return meta

    def answer(self, question_id: str, answer: Optional[str], participation_id: str = "P1") -> SurveyResponse:
        self._clock += 1
        resp = SurveyResponse(
            response_id=f"R{self._clock}",
            participation_id=participation_id,
            question_id=question_id,
            answer=answer,
            response_datetime=T0 + timedelta(minutes=self._clock),
        )
        self.responses.append(resp)
        return resp

    # -- FlowDataSource ----------------------------------------------------

    def get_question_logic(self, question_id: str) -> List[LogicRule]:
        if self.logic_error is not None:
            raise self.logic_error
        return [r for r in self.rules if r.question_id == question_id]

    def get_survey_logic(self, survey_id: str) -> List[LogicRule]:
        return list(self.rules)

    def get_participation(self, participation_id: str) -> Optional[Participation]:
        return self.participations.get(participation_id)

    def get_saved_responses(self, participation_id: str) -> List[SurveyResponse]:
        return [r for r in self.responses if r.participation_id == participation_id]

    def save_survey_response(self, response: SurveyResponse) -> bool:
        self.save_calls += 1
        if self.save_failures > 0:
            self.save_failures -= 1
            raise ConnectionError("database unavailable")
        self._clock += 1
        response.response_id = response.response_id or f"R{self._clock}"
        self.responses = [
            r
            for r in self.responses
            if not (
                r.participation_id == response.participation_id
                and r.question_id == response.question_id
                and r.matrix_row_id == response.matrix_row_id
            )
        ]
        self.responses.append(response)
        return True

    def complete_survey(self, participation_id: str) -> bool:
        p = self.participations.get(participation_id)
        if p is None:
            return False
        p.status_id = 3
        return True

    def update_current_section(self, participation_id: str, section_id: str) -> bool:
        p = self.participations.get(participation_id)
        if p is None:
            return False
        p.current_section_id = section_id
        p.current_question_id = None
        return True

    def update_current_question(self, participation_id: str, question_id: str) -> bool:
        p = self.participations.get(participation_id)
        if p is None:
            return False
        p.current_question_id = question_id
        return True

    def list_survey_questions(self, survey_id: str) -> List[SurveyQuestion]:
        return list(self.catalog.get(survey_id, []))

    # -- QuestionReferenceData --------------------------------------------

    def get_question_metadata(self, question_id: str) -> Optional[QuestionMetadata]:
        return self.metadata.get(question_id)

    def list_choices(self, question_id: str) -> List[ChoiceOption]:
        return list(self.choices.get(question_id, []))

    def matrix_row_exists(self, question_id: str, row_id: str) -> bool:
        return row_id in self.matrix_rows.get(question_id, [])

    def matrix_column_exists(self, question_id: str, value: str) -> bool:
        return value.lower() in {v.lower() for v in self.matrix_columns.get(question_id, [])}


@pytest.fixture
def fake_data() -> FakeFlowData:
    return FakeFlowData()


@pytest.fixture
def make_rule():
    return rule


@pytest.fixture(autouse=True)
def _clear_event_buffer():
    from app.logic import events

    events.EVENT_BUFFER.clear()
    events.set_dispatcher(None)
    yield
    events.EVENT_BUFFER.clear()
    events.set_dispatcher(None)
