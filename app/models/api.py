"""Pydantic request bodies for the survey branching and response routes."""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.logic import LogicRule
from app.models.response import SurveyResponse


def _id_text(value: Any) -> Any:
    # ids arrive as JSON numbers from older clients
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    return value


class BranchingEvaluationRequest(BaseModel):
    question_id: str
    participation_id: str
    submitted_value: Optional[str] = None

    @field_validator("question_id", "participation_id", mode="before")
    @classmethod
    def _ids(cls, v: Any) -> Any:
        return _id_text(v)


class ResponseBranchingRequest(BaseModel):
    question_id: str
    participation_id: str
    answer: Optional[str] = ""

    @field_validator("question_id", "participation_id", mode="before")
    @classmethod
    def _ids(cls, v: Any) -> Any:
        return _id_text(v)


class LogicValidationRequest(BaseModel):
    """A rule as an author is configuring it; never persisted."""

    question_id: str
    logic_type: Optional[str] = None
    action_type: Optional[str] = None
    condition_type: str = ""
    condition_value: Optional[str] = None
    condition_value2: Optional[str] = None
    target_question_id: Optional[str] = None
    target_question_ids: List[str] = Field(default_factory=list)
    target_section_id: Optional[str] = None
    message: Optional[str] = None

    @field_validator("question_id", "target_question_id", "target_section_id", mode="before")
    @classmethod
    def _ids(cls, v: Any) -> Any:
        return _id_text(v)

    @field_validator("target_question_ids", mode="before")
    @classmethod
    def _id_list(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [_id_text(item) for item in v]
        return v

    def to_rule(self) -> LogicRule:
        return LogicRule(
            question_id=self.question_id,
            logic_type=self.logic_type or self.action_type or "",
            condition_type=self.condition_type,
            condition_value=self.condition_value,
            condition_value2=self.condition_value2,
            target_question_id=self.target_question_id,
            target_question_ids=list(self.target_question_ids),
            target_section_id=self.target_section_id,
            message=self.message,
        )


class SurveyResponseSubmission(BaseModel):
    participation_id: str
    question_id: str
    answer: Optional[str] = None
    matrix_row_id: Optional[str] = None

    @field_validator("participation_id", "question_id", "matrix_row_id", mode="before")
    @classmethod
    def _ids(cls, v: Any) -> Any:
        return _id_text(v)

    def to_response(self) -> SurveyResponse:
        return SurveyResponse(
            participation_id=self.participation_id,
            question_id=self.question_id,
            answer=self.answer,
            matrix_row_id=self.matrix_row_id,
        )


class BatchResponseSubmission(BaseModel):
    responses: List[SurveyResponseSubmission] = Field(default_factory=list)


__all__ = [
    "BranchingEvaluationRequest",
    "ResponseBranchingRequest",
    "LogicValidationRequest",
    "SurveyResponseSubmission",
    "BatchResponseSubmission",
]
