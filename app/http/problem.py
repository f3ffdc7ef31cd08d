"""Problem+JSON utilities and global exception handlers.

Defines the RFC7807 media type and handler callables that turn HTTP,
request-validation and flow-engine exceptions into
application/problem+json responses.
"""

from __future__ import annotations

import logging
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi import HTTPException
from fastapi.responses import JSONResponse

from app.logic.errors import (
    BranchingEvaluationError,
    FlowEngineError,
    ParticipationNotFoundError,
)

PROBLEM_MEDIA_TYPE = "application/problem+json"

logger = logging.getLogger(__name__)


def problem(status: int, title: str, detail: str | None = None, **extra: object) -> JSONResponse:
    body: dict = {"title": title, "status": status}
    if detail:
        body["detail"] = detail
    body.update(extra)
    return JSONResponse(body, status_code=status, media_type=PROBLEM_MEDIA_TYPE)


async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:  # noqa: D401
    status_code = int(getattr(exc, "status_code", 500) or 500)
    if isinstance(exc.detail, dict):
        body = dict(exc.detail)
        body.setdefault("status", status_code)
    else:
        body = {"title": "Error", "status": status_code, "detail": str(exc.detail or "")}
    headers = {str(k): str(v) for k, v in (exc.headers or {}).items()}
    return JSONResponse(body, status_code=status_code, media_type=PROBLEM_MEDIA_TYPE, headers=headers or None)


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:  # noqa: D401
    return problem(
        422,
        "Invalid Request",
        "Request validation failed",
        errors=[{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()],
    )


async def handle_flow_engine_error(request: Request, exc: FlowEngineError) -> JSONResponse:  # noqa: D401
    if isinstance(exc, ParticipationNotFoundError):
        return problem(404, "Not Found", str(exc))
    if isinstance(exc, BranchingEvaluationError):
        logger.error("branching_evaluation_error path=%s", request.url.path, exc_info=exc)
        return problem(502, "Branching Evaluation Failed", str(exc), question_id=exc.question_id)
    logger.error("flow_engine_error path=%s", request.url.path, exc_info=exc)
    return problem(500, "Internal Server Error")


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:  # noqa: D401
    logger.error("unexpected_error path=%s", request.url.path, exc_info=exc)
    return problem(500, "Internal Server Error")


__all__ = [
    "PROBLEM_MEDIA_TYPE",
    "problem",
    "handle_http_exception",
    "handle_request_validation_error",
    "handle_flow_engine_error",
    "handle_unexpected_error",
]
