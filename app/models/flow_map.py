"""Rule-graph analysis and visualization models (authoring side)."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field

from app.models.branching import BranchingAction


class FlowNode(BaseModel):
    id: str
    type: str  # 'Question', 'Section', 'End'
    label: str
    properties: Dict[str, Any] = Field(default_factory=dict)


class FlowEdge(BaseModel):
    from_node_id: str
    to_node_id: str
    label: str
    condition: str
    is_back_edge: bool = False


class DecisionPoint(BaseModel):
    question_id: str
    conditions: List[str] = Field(default_factory=list)
    actions: List[BranchingAction] = Field(default_factory=list)


class SurveyFlowVisualization(BaseModel):
    survey_id: str
    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)
    decision_points: List[DecisionPoint] = Field(default_factory=list)
    end_points: List[str] = Field(default_factory=list)
    orphaned_questions: List[str] = Field(default_factory=list)
    cycles: List[List[str]] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class GraphAnalysisReport(BaseModel):
    survey_id: Optional[str] = None
    cycles: List[str] = Field(default_factory=list)
    unreachable_questions: List[str] = Field(default_factory=list)
    invalid_targets: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @computed_field  # type: ignore[misc]
    @property
    def is_valid(self) -> bool:
        return not (self.cycles or self.unreachable_questions or self.invalid_targets)

    def issues(self) -> List[str]:
        out = list(self.cycles)
        out.extend(f"Question {qid} is unreachable" for qid in self.unreachable_questions)
        out.extend(self.invalid_targets)
        return out


__all__ = [
    "FlowNode",
    "FlowEdge",
    "DecisionPoint",
    "SurveyFlowVisualization",
    "GraphAnalysisReport",
]
