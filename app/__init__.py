"""FastAPI application package init for the survey flow service.

This package exposes the application factory. The flow engine (condition
and rule evaluation, flow state, rule graph analysis, answer validation)
lives in `app/logic/`; route handlers in `app/routes/` stay thin.
"""

from __future__ import annotations

from app.main import create_app

__all__ = ["create_app"]
