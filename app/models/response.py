"""Survey response, question metadata and validation result models."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.branching import BranchingAction


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SurveyResponse(BaseModel):
    """One answer row per (participation, question[, matrix row])."""

    response_id: Optional[str] = None
    participation_id: str
    question_id: str
    answer: Optional[str] = None
    matrix_row_id: Optional[str] = None
    response_datetime: datetime = Field(default_factory=_utcnow)

    @field_validator("response_datetime")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        return v.replace(tzinfo=timezone.utc) if v.tzinfo is None else v


class ChoiceOption(BaseModel):
    choice_id: str
    value: str
    is_exclusive: bool = False


class QuestionMetadata(BaseModel):
    """Validation-relevant view of a question joined with its question type."""

    question_id: str
    question_type: str
    text: str = ""
    section_id: Optional[str] = None
    is_mandatory: bool = False
    is_screening_question: bool = False
    min_value: Optional[Decimal] = None
    max_value: Optional[Decimal] = None
    default_min_value: Optional[Decimal] = None
    default_max_value: Optional[Decimal] = None
    validation_regex: Optional[str] = None
    validation_message: Optional[str] = None


class SurveyQuestion(BaseModel):
    """Catalog entry used for base-question seeding and section filtering."""

    question_id: str
    section_id: Optional[str] = None
    question_order: int = 0


class ValidationResult(BaseModel):
    is_valid: bool = True
    errors: List[str] = Field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.is_valid = False


class ScreeningResult(BaseModel):
    is_qualified: bool = True
    disqualification_reason: Optional[str] = None


class ResponseValidationResult(BaseModel):
    is_valid: bool = False
    errors: List[str] = Field(default_factory=list)
    response_id: Optional[str] = None
    is_screening_response: bool = False
    screening_result: Optional[ScreeningResult] = None
    next_action: Optional[BranchingAction] = None

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.is_valid = False


class FailedResponse(BaseModel):
    question_id: str
    errors: List[str] = Field(default_factory=list)


class BatchResponseResult(BaseModel):
    valid_responses: List[SurveyResponse] = Field(default_factory=list)
    failed_responses: List[FailedResponse] = Field(default_factory=list)
    success_count: int = 0


class Participation(BaseModel):
    participation_id: str
    survey_id: str
    current_section_id: Optional[str] = None
    current_question_id: Optional[str] = None
    status_id: int = 1


# participation.status_id value for a finished survey
STATUS_COMPLETED = 3


__all__ = [
    "SurveyResponse",
    "ChoiceOption",
    "QuestionMetadata",
    "SurveyQuestion",
    "ValidationResult",
    "ScreeningResult",
    "ResponseValidationResult",
    "FailedResponse",
    "BatchResponseResult",
    "Participation",
    "STATUS_COMPLETED",
]
