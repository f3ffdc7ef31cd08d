"""Branching evaluation and flow-state models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.models.logic import LogicType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BranchingAction(BaseModel):
    action_type: LogicType = LogicType.NONE
    target_question_id: Optional[str] = None
    target_question_ids: List[str] = Field(default_factory=list)
    target_section_id: Optional[str] = None
    message: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def no_action(cls) -> "BranchingAction":
        return cls(action_type=LogicType.NONE)


class BranchingEvaluationResult(BaseModel):
    """Outcome of evaluating one question's rules.

    `is_error` distinguishes a failed evaluation from one where no rule fired;
    an error result always has `has_actions == False`.
    """

    has_actions: bool = False
    is_error: bool = False
    error_message: str = ""
    actions: List[BranchingAction] = Field(default_factory=list)

    @classmethod
    def success(cls, actions: List[BranchingAction]) -> "BranchingEvaluationResult":
        return cls(has_actions=bool(actions), actions=list(actions))

    @classmethod
    def no_actions(cls) -> "BranchingEvaluationResult":
        return cls()

    @classmethod
    def error(cls, message: str) -> "BranchingEvaluationResult":
        return cls(is_error=True, error_message=message)


class ConditionalPathStep(BaseModel):
    question_id: str
    response: str = ""
    action_taken: LogicType
    timestamp: datetime


class SurveyFlowState(BaseModel):
    participation_id: str
    survey_id: str
    current_section_id: Optional[str] = None
    current_question_id: Optional[str] = None
    completed_questions: List[str] = Field(default_factory=list)
    available_questions: List[str] = Field(default_factory=list)
    conditional_path: List[ConditionalPathStep] = Field(default_factory=list)
    is_complete: bool = False
    last_updated: datetime = Field(default_factory=_utcnow)
    warnings: List[str] = Field(default_factory=list)


@dataclass
class ParticipationContext:
    """Per-call snapshot of a participation; never persisted."""

    participation_id: str
    survey_id: Optional[str] = None
    responses: Dict[str, Optional[str]] = field(default_factory=dict)
    current_section_id: Optional[str] = None
    current_question_id: Optional[str] = None

    def answer_for(self, question_id: str) -> Optional[str]:
        return self.responses.get(question_id)


__all__ = [
    "BranchingAction",
    "BranchingEvaluationResult",
    "ConditionalPathStep",
    "SurveyFlowState",
    "ParticipationContext",
]
