"""Construction of the flow engine components over one data source."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from app.config import AppConfig
from app.logic.flow_data import FlowDataSource, QuestionReferenceData, SqlFlowDataSource
from app.logic.flow_state import FlowStateTracker
from app.logic.graph_analyzer import GraphAnalyzer
from app.logic.response_service import ResponseService
from app.logic.response_validator import ResponseValidator
from app.logic.rule_evaluator import RuleEvaluator


@dataclass
class FlowServices:
    rule_evaluator: RuleEvaluator
    flow_state: FlowStateTracker
    graph_analyzer: GraphAnalyzer
    response_validator: ResponseValidator
    response_service: ResponseService


def build_services(
    config: AppConfig,
    data: Optional[FlowDataSource] = None,
    reference: Optional[QuestionReferenceData] = None,
) -> FlowServices:
    """Wire every component to `data` (SQL-backed unless given).

    `reference` defaults to `data` when that object also implements the
    question lookups, as both the SQL source and the test fakes do.
    """
    if data is None:
        data = SqlFlowDataSource()
    if reference is None:
        reference = data  # type: ignore[assignment]
    rule_evaluator = RuleEvaluator(data)
    validator = ResponseValidator(reference)
    return FlowServices(
        rule_evaluator=rule_evaluator,
        flow_state=FlowStateTracker(data, max_passes=config.flow.availability_max_passes),
        graph_analyzer=GraphAnalyzer(data, max_passes=config.flow.reachability_max_passes),
        response_validator=validator,
        response_service=ResponseService(
            data,
            reference,
            validator=validator,
            rule_evaluator=rule_evaluator,
            max_attempts=config.persistence.save_max_attempts,
            retry_delay_seconds=config.persistence.retry_delay_seconds,
        ),
    )


__all__ = ["FlowServices", "build_services"]
