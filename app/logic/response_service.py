"""Validate-then-save pipeline for survey responses.

A response is looked up, validated, persisted with bounded retries and
then run through the question's branching rules. Blocking data access runs
in worker threads; the retry delay is an `anyio.sleep`, so a surrounding
cancel scope aborts retries mid-wait. Saves for the same (participation,
question) pair are serialized so branching always follows the write that
was persisted last.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Sequence, Tuple

import anyio
import anyio.to_thread

from app.config import DEFAULT_RETRY_DELAY_SECONDS, DEFAULT_SAVE_MAX_ATTEMPTS
from app.logic import events
from app.logic.errors import FlowEngineError
from app.logic.flow_data import FlowDataSource, QuestionReferenceData
from app.logic.response_validator import ResponseValidator
from app.logic.rule_evaluator import RuleEvaluator
from app.models.branching import BranchingAction
from app.models.logic import LogicType
from app.models.response import (
    BatchResponseResult,
    FailedResponse,
    ResponseValidationResult,
    ScreeningResult,
    SurveyResponse,
)

logger = logging.getLogger(__name__)


class ResponseService:
    def __init__(
        self,
        data: FlowDataSource,
        reference: QuestionReferenceData,
        *,
        validator: Optional[ResponseValidator] = None,
        rule_evaluator: Optional[RuleEvaluator] = None,
        max_attempts: int = DEFAULT_SAVE_MAX_ATTEMPTS,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._data = data
        self._reference = reference
        self._validator = validator or ResponseValidator(reference)
        self._rules = rule_evaluator or RuleEvaluator(data)
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay_seconds
        self._locks: Dict[Tuple[str, str], anyio.Lock] = {}

    @asynccontextmanager
    async def _serialized(self, response: SurveyResponse) -> AsyncIterator[None]:
        key = (response.participation_id, response.question_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = anyio.Lock()
        try:
            async with lock:
                yield
        finally:
            if not lock.locked() and lock.statistics().tasks_waiting == 0:
                self._locks.pop(key, None)

    async def save_with_retry(self, response: SurveyResponse, max_attempts: Optional[int] = None) -> bool:
        """Persist `response`, retrying failed attempts; False once all fail.

        The delay before retry n (1-based) is `retry_delay_seconds * n`.
        """
        attempts = max_attempts if max_attempts is not None else self._max_attempts
        for attempt in range(attempts):
            try:
                saved = await anyio.to_thread.run_sync(self._data.save_survey_response, response)
            except Exception:
                logger.warning(
                    "response_save_failed attempt=%s participation_id=%s question_id=%s",
                    attempt + 1,
                    response.participation_id,
                    response.question_id,
                    exc_info=True,
                )
                saved = False
            if saved:
                return True
            if attempt < attempts - 1:
                await anyio.sleep(self._retry_delay * (attempt + 1))
        logger.error(
            "response_save_exhausted attempts=%s participation_id=%s question_id=%s",
            attempts,
            response.participation_id,
            response.question_id,
        )
        return False

    async def validate_and_save(self, response: SurveyResponse) -> ResponseValidationResult:
        result = ResponseValidationResult()
        try:
            question = await anyio.to_thread.run_sync(self._reference.get_question_metadata, response.question_id)
            if question is None:
                result.add_error("Question not found")
                return result
            participation = await anyio.to_thread.run_sync(self._data.get_participation, response.participation_id)
            if participation is None:
                result.add_error("Invalid participation")
                return result

            validation = await anyio.to_thread.run_sync(self._validator.validate, response, question)
            if not validation.is_valid:
                result.errors.extend(validation.errors)
                return result

            async with self._serialized(response):
                if not await self.save_with_retry(response):
                    result.add_error("Failed to save response")
                    return result
                action = await self._branch(response)

            if question.is_screening_question:
                disqualified = action is not None and action.action_type is LogicType.DISQUALIFY
                result.is_screening_response = True
                result.screening_result = ScreeningResult(
                    is_qualified=not disqualified,
                    disqualification_reason=action.message if disqualified and action else None,
                )
            result.next_action = action
            result.is_valid = True
            result.response_id = response.response_id
            logger.info(
                "response_accepted participation_id=%s question_id=%s response_id=%s",
                response.participation_id,
                response.question_id,
                response.response_id,
            )
        except Exception:
            logger.error(
                "response_save_error participation_id=%s question_id=%s",
                response.participation_id,
                response.question_id,
                exc_info=True,
            )
            result.add_error("An error occurred while saving the response")
            return result

        events.enqueue(
            events.RESPONSE_SAVED,
            {
                "participation_id": response.participation_id,
                "question_id": response.question_id,
                "response_id": response.response_id,
            },
        )
        if result.next_action is not None and result.next_action.action_type is LogicType.END_SURVEY:
            events.enqueue(
                events.SURVEY_COMPLETED,
                {"participation_id": response.participation_id, "survey_id": participation.survey_id},
            )
        return result

    async def _branch(self, response: SurveyResponse) -> Optional[BranchingAction]:
        try:
            action = await anyio.to_thread.run_sync(
                self._rules.process_response_branching, response, response.participation_id
            )
        except FlowEngineError:
            # answer is already persisted
            logger.error(
                "response_branching_failed participation_id=%s question_id=%s",
                response.participation_id,
                response.question_id,
                exc_info=True,
            )
            return None
        return None if action.action_type is LogicType.NONE else action

    async def save_batch(self, responses: Sequence[SurveyResponse]) -> BatchResponseResult:
        """Validate every response, then persist only the valid ones."""
        result = BatchResponseResult()
        for response in responses:
            question = await anyio.to_thread.run_sync(self._reference.get_question_metadata, response.question_id)
            if question is None:
                result.failed_responses.append(
                    FailedResponse(question_id=response.question_id, errors=["Question not found"])
                )
                continue
            validation = await anyio.to_thread.run_sync(self._validator.validate, response, question)
            if validation.is_valid:
                result.valid_responses.append(response)
            else:
                result.failed_responses.append(
                    FailedResponse(question_id=response.question_id, errors=list(validation.errors))
                )

        saved: List[SurveyResponse] = []
        for response in result.valid_responses:
            async with self._serialized(response):
                if await self.save_with_retry(response):
                    saved.append(response)
                    continue
            result.failed_responses.append(
                FailedResponse(question_id=response.question_id, errors=["Failed to save response"])
            )
        result.valid_responses = saved
        result.success_count = len(saved)
        for response in saved:
            events.enqueue(
                events.RESPONSE_SAVED,
                {
                    "participation_id": response.participation_id,
                    "question_id": response.question_id,
                    "response_id": response.response_id,
                },
            )
        logger.info(
            "response_batch_saved saved=%s failed=%s",
            result.success_count,
            len(result.failed_responses),
        )
        return result


__all__ = ["ResponseService"]
