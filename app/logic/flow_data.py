"""Data-access ports consumed by the flow engine.

The engine components only ever talk to these Protocols. `SqlFlowDataSource`
is the production implementation backed by the repository modules; tests
substitute an in-memory object with the same method names.
"""

from __future__ import annotations

from typing import List, Optional, Protocol

from app.logic import repository_logic, repository_participations, repository_questions
from app.models.logic import LogicRule
from app.models.response import (
    ChoiceOption,
    Participation,
    QuestionMetadata,
    SurveyQuestion,
    SurveyResponse,
)


class FlowDataSource(Protocol):
    def get_question_logic(self, question_id: str) -> List[LogicRule]:
        ...

    def get_survey_logic(self, survey_id: str) -> List[LogicRule]:
        ...

    def get_participation(self, participation_id: str) -> Optional[Participation]:
        ...

    def get_saved_responses(self, participation_id: str) -> List[SurveyResponse]:
        ...

    def save_survey_response(self, response: SurveyResponse) -> bool:
        ...

    def complete_survey(self, participation_id: str) -> bool:
        ...

    def update_current_section(self, participation_id: str, section_id: str) -> bool:
        ...

    def update_current_question(self, participation_id: str, question_id: str) -> bool:
        ...

    def list_survey_questions(self, survey_id: str) -> List[SurveyQuestion]:
        ...


class QuestionReferenceData(Protocol):
    def get_question_metadata(self, question_id: str) -> Optional[QuestionMetadata]:
        ...

    def list_choices(self, question_id: str) -> List[ChoiceOption]:
        ...

    def matrix_row_exists(self, question_id: str, row_id: str) -> bool:
        ...

    def matrix_column_exists(self, question_id: str, value: str) -> bool:
        ...


class SqlFlowDataSource:
    """Both ports over the shared SQLAlchemy engine."""

    def get_question_logic(self, question_id: str) -> List[LogicRule]:
        return repository_logic.get_question_logic(question_id)

    def get_survey_logic(self, survey_id: str) -> List[LogicRule]:
        return repository_logic.get_survey_logic(survey_id)

    def get_participation(self, participation_id: str) -> Optional[Participation]:
        return repository_participations.get_participation(participation_id)

    def get_saved_responses(self, participation_id: str) -> List[SurveyResponse]:
        return repository_participations.get_saved_responses(participation_id)

    def save_survey_response(self, response: SurveyResponse) -> bool:
        return repository_participations.save_survey_response(response)

    def complete_survey(self, participation_id: str) -> bool:
        return repository_participations.complete_survey(participation_id)

    def update_current_section(self, participation_id: str, section_id: str) -> bool:
        return repository_participations.update_current_section(participation_id, section_id)

    def update_current_question(self, participation_id: str, question_id: str) -> bool:
        return repository_participations.update_current_question(participation_id, question_id)

    def list_survey_questions(self, survey_id: str) -> List[SurveyQuestion]:
        return repository_questions.list_survey_questions(survey_id)

    def get_question_metadata(self, question_id: str) -> Optional[QuestionMetadata]:
        return repository_questions.get_question_metadata(question_id)

    def list_choices(self, question_id: str) -> List[ChoiceOption]:
        return repository_questions.list_choices(question_id)

    def matrix_row_exists(self, question_id: str, row_id: str) -> bool:
        return repository_questions.matrix_row_exists(question_id, row_id)

    def matrix_column_exists(self, question_id: str, value: str) -> bool:
        return repository_questions.matrix_column_exists(question_id, value)


__all__ = ["FlowDataSource", "QuestionReferenceData", "SqlFlowDataSource"]
