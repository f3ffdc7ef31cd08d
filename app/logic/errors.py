"""Exceptions raised by the flow engine to its callers.

Validation problems and single-rule failures are never raised; these types
cover caller-side contract violations and failed whole evaluations.
"""

from __future__ import annotations


class FlowEngineError(Exception):
    pass


class ParticipationNotFoundError(FlowEngineError, LookupError):
    def __init__(self, participation_id: str) -> None:
        super().__init__(f"Participation {participation_id} not found")
        self.participation_id = participation_id


class BranchingEvaluationError(FlowEngineError):
    """Rule evaluation for a question failed as a whole (e.g. store unavailable)."""

    def __init__(self, question_id: str, message: str) -> None:
        super().__init__(f"Branching evaluation failed for question {question_id}: {message}")
        self.question_id = question_id


__all__ = [
    "FlowEngineError",
    "ParticipationNotFoundError",
    "BranchingEvaluationError",
]
