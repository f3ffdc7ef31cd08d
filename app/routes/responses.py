"""Survey response submission endpoints.

- POST /responses: validate, save and branch a single answer
- POST /responses/batch: validate all, save the valid subset
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app.logic.services import FlowServices
from app.models.api import BatchResponseSubmission, SurveyResponseSubmission

router = APIRouter(prefix="/responses")
logger = logging.getLogger(__name__)


def _services(request: Request) -> FlowServices:
    return request.app.state.services


@router.post("", summary="Validate and save a survey response")
async def submit_response(payload: SurveyResponseSubmission, request: Request) -> JSONResponse:
    result = await _services(request).response_service.validate_and_save(payload.to_response())
    status = 201 if result.is_valid else 422
    if not result.is_valid:
        logger.info(
            "response_rejected participation_id=%s question_id=%s errors=%s",
            payload.participation_id,
            payload.question_id,
            result.errors,
        )
    return JSONResponse(result.model_dump(mode="json"), status_code=status)


@router.post("/batch", summary="Validate and save several responses")
async def submit_batch(payload: BatchResponseSubmission, request: Request) -> dict:
    result = await _services(request).response_service.save_batch(
        [item.to_response() for item in payload.responses]
    )
    return result.model_dump(mode="json")


__all__ = ["router"]
