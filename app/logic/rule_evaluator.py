"""Per-question branching evaluation.

`RuleEvaluator.evaluate_question` runs a question's active rules, in the
order the rule store returns them, against a submitted answer and maps each
rule that holds to a BranchingAction. An `end_survey` or `jump_to_section`
action ends processing for that question. `process_response_branching`
additionally executes the first action against the participation.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional

from app.logic.condition_evaluator import evaluate_condition
from app.logic.errors import BranchingEvaluationError, ParticipationNotFoundError
from app.logic.flow_data import FlowDataSource
from app.models.branching import BranchingAction, BranchingEvaluationResult, ParticipationContext
from app.models.logic import LogicRule, LogicType
from app.models.response import Participation, SurveyResponse

logger = logging.getLogger(__name__)

DEFAULT_JUMP_MESSAGE = "Redirecting based on your response..."
DEFAULT_END_MESSAGE = "Survey completed based on your responses."
DEFAULT_DISQUALIFY_MESSAGE = "You do not qualify to continue this survey."


def build_context(
    participation: Participation,
    responses: Iterable[SurveyResponse],
) -> ParticipationContext:
    """Snapshot a participation with the most recent answer per question."""
    latest: Dict[str, Optional[str]] = {}
    for resp in sorted(responses, key=lambda r: r.response_datetime):
        latest[resp.question_id] = resp.answer
    return ParticipationContext(
        participation_id=participation.participation_id,
        survey_id=participation.survey_id,
        responses=latest,
        current_section_id=participation.current_section_id,
        current_question_id=participation.current_question_id,
    )


def _meta(rule: LogicRule) -> dict:
    return {"rule_id": rule.rule_id, "source_question_id": rule.question_id}


def _show_question(rule: LogicRule) -> BranchingAction:
    return BranchingAction(
        action_type=LogicType.SHOW_QUESTION,
        target_question_id=rule.target_question_id,
        message=rule.message or "",
        metadata=_meta(rule),
    )


def _hide_question(rule: LogicRule) -> BranchingAction:
    return BranchingAction(
        action_type=LogicType.HIDE_QUESTION,
        target_question_id=rule.target_question_id,
        message=rule.message or "",
        metadata=_meta(rule),
    )


def _show_questions(rule: LogicRule) -> BranchingAction:
    return BranchingAction(
        action_type=LogicType.SHOW_QUESTIONS,
        target_question_ids=rule.targeted_questions(),
        message=rule.message or "",
        metadata=_meta(rule),
    )


def _jump_to_section(rule: LogicRule) -> BranchingAction:
    return BranchingAction(
        action_type=LogicType.JUMP_TO_SECTION,
        target_section_id=rule.target_section_id,
        message=rule.message or DEFAULT_JUMP_MESSAGE,
        metadata=_meta(rule),
    )


def _skip_to_question(rule: LogicRule) -> BranchingAction:
    return BranchingAction(
        action_type=LogicType.SKIP_TO_QUESTION,
        target_question_id=rule.target_question_id,
        message=rule.message or "",
        metadata=_meta(rule),
    )


def _end_survey(rule: LogicRule) -> BranchingAction:
    return BranchingAction(
        action_type=LogicType.END_SURVEY,
        message=rule.message or DEFAULT_END_MESSAGE,
        metadata=_meta(rule),
    )


def _disqualify(rule: LogicRule) -> BranchingAction:
    return BranchingAction(
        action_type=LogicType.DISQUALIFY,
        message=rule.message or DEFAULT_DISQUALIFY_MESSAGE,
        metadata=_meta(rule),
    )


def _no_action(rule: LogicRule) -> BranchingAction:
    return BranchingAction.no_action()


_ACTION_BUILDERS: Dict[LogicType, Callable[[LogicRule], BranchingAction]] = {
    LogicType.SHOW_QUESTION: _show_question,
    LogicType.HIDE_QUESTION: _hide_question,
    LogicType.SHOW_QUESTIONS: _show_questions,
    LogicType.JUMP_TO_SECTION: _jump_to_section,
    LogicType.SKIP_TO_QUESTION: _skip_to_question,
    LogicType.END_SURVEY: _end_survey,
    LogicType.DISQUALIFY: _disqualify,
    LogicType.NONE: _no_action,
}


def action_for_rule(rule: LogicRule) -> BranchingAction:
    return _ACTION_BUILDERS[rule.action](rule)


class RuleEvaluator:
    def __init__(self, data: FlowDataSource) -> None:
        self._data = data

    def evaluate_question(
        self,
        question_id: str,
        submitted_value: Optional[str],
        participation_id: str,
    ) -> BranchingEvaluationResult:
        """Evaluate the active rules of `question_id` for one submitted answer.

        Returns an error result (never raises) when the evaluation as a whole
        fails, e.g. the rule store is unavailable or the participation is
        unknown.
        """
        try:
            rules = [r for r in self._data.get_question_logic(question_id) if r.is_active]
            if not rules:
                return BranchingEvaluationResult.no_actions()

            participation = self._data.get_participation(participation_id)
            if participation is None:
                raise ParticipationNotFoundError(participation_id)
            context = build_context(participation, self._data.get_saved_responses(participation_id))
            context.responses[str(question_id)] = submitted_value

            actions: List[BranchingAction] = []
            for rule in rules:
                if not evaluate_condition(submitted_value, rule, context):
                    continue
                action = action_for_rule(rule)
                if action.action_type is LogicType.NONE:
                    logger.debug("rule_action_unknown rule=%s logic_type=%r", rule.label, rule.logic_type)
                    continue
                actions.append(action)
                if action.action_type.is_terminal:
                    break
            logger.debug(
                "branching_evaluated question_id=%s participation_id=%s actions=%s",
                question_id,
                participation_id,
                [a.action_type.value for a in actions],
            )
            return BranchingEvaluationResult.success(actions)
        except Exception as exc:
            logger.error(
                "branching_evaluation_failed question_id=%s participation_id=%s",
                question_id,
                participation_id,
                exc_info=True,
            )
            return BranchingEvaluationResult.error(str(exc) or exc.__class__.__name__)

    def process_response_branching(self, response: SurveyResponse, participation_id: str) -> BranchingAction:
        """Evaluate a saved response and execute the first resulting action.

        The first action is the primary one, in rule-store order. A terminal
        action that fired behind a non-terminal one is logged but not
        promoted.
        """
        if self._data.get_participation(participation_id) is None:
            raise ParticipationNotFoundError(participation_id)

        result = self.evaluate_question(response.question_id, response.answer, participation_id)
        if result.is_error:
            raise BranchingEvaluationError(response.question_id, result.error_message)
        if not result.has_actions:
            return BranchingAction.no_action()

        primary = result.actions[0]
        terminal = next((a for a in result.actions if a.action_type.is_terminal), None)
        if terminal is not None and terminal is not primary:
            logger.warning(
                "branching_primary_not_terminal question_id=%s primary=%s terminal=%s",
                response.question_id,
                primary.action_type.value,
                terminal.action_type.value,
            )
        self._execute(primary, participation_id)
        return primary

    def _execute(self, action: BranchingAction, participation_id: str) -> None:
        kind = action.action_type
        if kind is LogicType.JUMP_TO_SECTION:
            if not action.target_section_id:
                logger.warning("branching_jump_without_target participation_id=%s", participation_id)
                return
            ok = self._data.update_current_section(participation_id, action.target_section_id)
        elif kind is LogicType.SKIP_TO_QUESTION:
            if not action.target_question_id:
                logger.warning("branching_skip_without_target participation_id=%s", participation_id)
                return
            ok = self._data.update_current_question(participation_id, action.target_question_id)
        elif kind is LogicType.END_SURVEY:
            ok = self._data.complete_survey(participation_id)
        else:
            # show/hide are applied client-side; disqualify is reported to the caller
            logger.info(
                "branching_action participation_id=%s action=%s",
                participation_id,
                kind.value,
            )
            return
        if not ok:
            logger.warning(
                "branching_execute_noop participation_id=%s action=%s",
                participation_id,
                kind.value,
            )
        else:
            logger.info("branching_executed participation_id=%s action=%s", participation_id, kind.value)


__all__ = [
    "RuleEvaluator",
    "build_context",
    "action_for_rule",
    "DEFAULT_JUMP_MESSAGE",
    "DEFAULT_END_MESSAGE",
    "DEFAULT_DISQUALIFY_MESSAGE",
]
