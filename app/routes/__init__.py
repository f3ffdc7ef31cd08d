"""APIRouter registration for the survey flow service."""

from __future__ import annotations

from fastapi import APIRouter

from app.routes.branching import router as branching_router
from app.routes.responses import router as responses_router

api_router = APIRouter()
api_router.include_router(branching_router, tags=["SurveyBranching"])
api_router.include_router(responses_router, tags=["Responses"])

__all__ = ["api_router"]
