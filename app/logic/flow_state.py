"""Participation flow state: available questions and the conditional path.

Availability is a bounded fixed point. The survey's base questions (those
no active show-type rule targets) start out available; each pass replays the
participation's answers, oldest first, through the rules of every answered
question, hidden or not, adding show targets and removing hide targets. The
loop ends when a pass changes nothing or the pass cap is reached; hitting the
cap is reported as a warning on the flow state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Tuple

from app.config import DEFAULT_AVAILABILITY_MAX_PASSES
from app.logic.condition_evaluator import evaluate_condition
from app.logic.errors import ParticipationNotFoundError
from app.logic.flow_data import FlowDataSource
from app.logic.rule_evaluator import build_context
from app.models.branching import ConditionalPathStep, ParticipationContext, SurveyFlowState
from app.models.logic import LogicRule
from app.models.response import STATUS_COMPLETED, Participation, SurveyQuestion, SurveyResponse

logger = logging.getLogger(__name__)


@dataclass
class _Snapshot:
    participation: Participation
    responses: List[SurveyResponse]
    rules_by_source: Dict[str, List[LogicRule]]
    catalog: List[SurveyQuestion]
    context: ParticipationContext
    universe: List[str] = field(default_factory=list)


class FlowStateTracker:
    def __init__(self, data: FlowDataSource, max_passes: int = DEFAULT_AVAILABILITY_MAX_PASSES) -> None:
        if max_passes < 1:
            raise ValueError("max_passes must be >= 1")
        self._data = data
        self._max_passes = max_passes

    def _load(self, participation_id: str) -> _Snapshot:
        participation = self._data.get_participation(participation_id)
        if participation is None:
            raise ParticipationNotFoundError(participation_id)
        responses = sorted(
            self._data.get_saved_responses(participation_id),
            key=lambda r: r.response_datetime,
        )
        rules_by_source: Dict[str, List[LogicRule]] = {}
        for rule in self._data.get_survey_logic(participation.survey_id):
            if rule.is_active:
                rules_by_source.setdefault(rule.question_id, []).append(rule)
        catalog = self._data.list_survey_questions(participation.survey_id)

        universe: List[str] = [q.question_id for q in catalog]
        seen = set(universe)
        for source, rules in rules_by_source.items():
            for qid in [source] + [t for r in rules for t in r.targeted_questions()]:
                if qid not in seen:
                    seen.add(qid)
                    universe.append(qid)

        return _Snapshot(
            participation=participation,
            responses=responses,
            rules_by_source=rules_by_source,
            catalog=catalog,
            context=build_context(participation, responses),
            universe=universe,
        )

    def _availability(self, snap: _Snapshot) -> Tuple[Set[str], bool]:
        gated = {
            target
            for rules in snap.rules_by_source.values()
            for rule in rules
            if rule.action.is_show
            for target in rule.targeted_questions()
        }
        available = {qid for qid in snap.universe if qid not in gated}

        answered: List[str] = []
        for resp in snap.responses:
            if resp.question_id not in answered:
                answered.append(resp.question_id)

        for pass_no in range(1, self._max_passes + 1):
            changed = False
            processed: Set[str] = set()
            for qid in answered:
                if qid in processed:
                    continue
                processed.add(qid)
                value = snap.context.answer_for(qid)
                for rule in snap.rules_by_source.get(qid, []):
                    if not evaluate_condition(value, rule, snap.context):
                        continue
                    kind = rule.action
                    for target in rule.targeted_questions():
                        if kind.is_show and target not in available:
                            available.add(target)
                            changed = True
                        elif kind.is_hide and target in available:
                            available.discard(target)
                            changed = True
            if not changed:
                logger.debug(
                    "availability_converged participation_id=%s passes=%s",
                    snap.participation.participation_id,
                    pass_no,
                )
                return available, True

        logger.warning(
            "availability_not_converged participation_id=%s max_passes=%s",
            snap.participation.participation_id,
            self._max_passes,
        )
        return available, False

    def _ordered(self, snap: _Snapshot, ids: Set[str]) -> List[str]:
        return [qid for qid in snap.universe if qid in ids]

    def compute_available_questions(self, participation_id: str) -> Set[str]:
        available, _ = self._availability(self._load(participation_id))
        return available

    def _path(self, snap: _Snapshot) -> List[ConditionalPathStep]:
        steps: List[ConditionalPathStep] = []
        for resp in snap.responses:
            for rule in snap.rules_by_source.get(resp.question_id, []):
                if evaluate_condition(resp.answer, rule, snap.context):
                    steps.append(
                        ConditionalPathStep(
                            question_id=resp.question_id,
                            response=resp.answer or "",
                            action_taken=rule.action,
                            timestamp=resp.response_datetime,
                        )
                    )
        return steps

    def compute_conditional_path(self, participation_id: str) -> List[ConditionalPathStep]:
        return self._path(self._load(participation_id))

    def get_current_flow_state(self, participation_id: str) -> SurveyFlowState:
        snap = self._load(participation_id)
        available, converged = self._availability(snap)
        warnings: List[str] = []
        if not converged:
            warnings.append(
                f"Question availability did not converge within {self._max_passes} passes; result may be incomplete"
            )

        completed: List[str] = []
        for resp in snap.responses:
            if resp.question_id not in completed:
                completed.append(resp.question_id)

        last_updated: Optional[datetime] = snap.responses[-1].response_datetime if snap.responses else None
        participation = snap.participation
        return SurveyFlowState(
            participation_id=participation.participation_id,
            survey_id=participation.survey_id,
            current_section_id=participation.current_section_id,
            current_question_id=participation.current_question_id,
            completed_questions=completed,
            available_questions=self._ordered(snap, available),
            conditional_path=self._path(snap),
            is_complete=participation.status_id == STATUS_COMPLETED,
            last_updated=last_updated or datetime.now(timezone.utc),
            warnings=warnings,
        )

    def get_available_questions(self, participation_id: str, section_id: str) -> List[str]:
        """Available questions of one section, in catalog order."""
        snap = self._load(participation_id)
        available, _ = self._availability(snap)
        in_section = [q.question_id for q in snap.catalog if q.section_id == str(section_id)]
        return [qid for qid in in_section if qid in available]


__all__ = ["FlowStateTracker"]
