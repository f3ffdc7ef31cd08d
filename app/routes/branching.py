"""Survey branching endpoints.

Thin adapter over the flow engine:
- POST /survey-branching/evaluate
- GET  /survey-branching/flow-state/{participation_id}
- GET  /survey-branching/available-questions/{participation_id}/{section_id}
- POST /survey-branching/process-response
- GET  /survey-branching/validate-flow/{survey_id}
- GET  /survey-branching/flow-map/{survey_id}
- POST /survey-branching/validate-logic
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request

from app.logic.errors import BranchingEvaluationError
from app.logic.rule_structure import validate_logic_rule
from app.logic.services import FlowServices
from app.models.api import BranchingEvaluationRequest, LogicValidationRequest, ResponseBranchingRequest
from app.models.response import SurveyResponse

router = APIRouter(prefix="/survey-branching")
logger = logging.getLogger(__name__)


def _services(request: Request) -> FlowServices:
    return request.app.state.services


@router.post("/evaluate", summary="Evaluate a question's branching rules for an answer")
def evaluate_question_logic(payload: BranchingEvaluationRequest, request: Request) -> dict:
    result = _services(request).rule_evaluator.evaluate_question(
        payload.question_id, payload.submitted_value, payload.participation_id
    )
    if result.is_error:
        raise BranchingEvaluationError(payload.question_id, result.error_message)
    return result.model_dump(mode="json")


@router.get("/flow-state/{participation_id}", summary="Current flow state of a participation")
def get_flow_state(participation_id: str, request: Request) -> dict:
    state = _services(request).flow_state.get_current_flow_state(participation_id)
    return state.model_dump(mode="json")


@router.get(
    "/available-questions/{participation_id}/{section_id}",
    summary="Questions of a section currently available to a participation",
)
def get_available_questions(participation_id: str, section_id: str, request: Request) -> dict:
    available = _services(request).flow_state.get_available_questions(participation_id, section_id)
    return {"available_questions": available}


@router.post("/process-response", summary="Evaluate and execute branching for a response")
def process_response_branching(payload: ResponseBranchingRequest, request: Request) -> dict:
    response = SurveyResponse(
        participation_id=payload.participation_id,
        question_id=payload.question_id,
        answer=payload.answer,
    )
    action = _services(request).rule_evaluator.process_response_branching(response, payload.participation_id)
    return action.model_dump(mode="json")


@router.get("/validate-flow/{survey_id}", summary="Structural integrity report for a survey's rules")
def validate_flow_integrity(survey_id: str, request: Request) -> dict:
    report = _services(request).graph_analyzer.validate_survey_flow_integrity(survey_id)
    return {
        "survey_id": survey_id,
        "is_valid": report.is_valid,
        "message": "Survey flow is valid" if report.is_valid else "Survey flow has integrity issues",
        "issues": report.issues(),
        "warnings": report.warnings,
    }


@router.get("/flow-map/{survey_id}", summary="Flow map of a survey's rules")
def generate_flow_map(survey_id: str, request: Request) -> dict:
    return _services(request).graph_analyzer.generate_flow_map(survey_id).model_dump(mode="json")


@router.post("/validate-logic", summary="Structural validation of a rule before it is saved")
def validate_logic(payload: LogicValidationRequest) -> dict:
    issues = validate_logic_rule(payload.to_rule())
    return {"is_valid": not issues, "issues": issues}


__all__ = ["router"]
