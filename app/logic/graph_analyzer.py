"""Structural analysis of a survey's branching rules.

Builds a directed question graph from active show/hide rules and reports
cycles, questions unreachable from the survey's base questions, and rules
whose targets are invalid. Also renders the rule set as a flow map for
authoring tools. Analysis is advisory; nothing here raises on a defect.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from app.config import DEFAULT_REACHABILITY_MAX_PASSES
from app.logic.flow_data import FlowDataSource
from app.logic.rule_evaluator import action_for_rule
from app.models.flow_map import (
    DecisionPoint,
    FlowEdge,
    FlowNode,
    GraphAnalysisReport,
    SurveyFlowVisualization,
)
from app.models.logic import UNTARGETED_ACTIONS, LogicRule, LogicType

logger = logging.getLogger(__name__)

END_NODE_ID = "END"


def _referenced_ids(rules: Iterable[LogicRule]) -> List[str]:
    """Every question id a rule names as source or target, first-seen order."""
    out: List[str] = []
    seen: Set[str] = set()
    for rule in rules:
        for qid in [rule.question_id, *rule.targeted_questions()]:
            if qid not in seen:
                seen.add(qid)
                out.append(qid)
    return out


def _is_edge_rule(rule: LogicRule) -> bool:
    kind = rule.action
    return rule.is_active and (kind.is_show or kind.is_hide)


class RuleGraph:
    """Question graph stored as an index arena with adjacency lists."""

    def __init__(self, question_ids: Sequence[str]) -> None:
        self.ids: List[str] = []
        self.index: Dict[str, int] = {}
        self.adj: List[List[int]] = []
        for qid in question_ids:
            self.add_node(qid)

    def add_node(self, question_id: str) -> int:
        idx = self.index.get(question_id)
        if idx is None:
            idx = len(self.ids)
            self.index[question_id] = idx
            self.ids.append(question_id)
            self.adj.append([])
        return idx

    def add_edge(self, source: str, target: str) -> None:
        s = self.add_node(source)
        t = self.add_node(target)
        if t not in self.adj[s]:
            self.adj[s].append(t)

    @classmethod
    def from_rules(cls, rules: Sequence[LogicRule]) -> "RuleGraph":
        graph = cls(_referenced_ids(rules))
        for rule in rules:
            if _is_edge_rule(rule):
                for target in rule.targeted_questions():
                    graph.add_edge(rule.question_id, target)
        return graph

    def cycles(self) -> Tuple[List[List[str]], Set[Tuple[str, str]]]:
        """Return (cycle paths, back edges) found by an iterative DFS.

        Every node is used as a DFS root once, so cycles in components with
        no entry point are found too. A cycle path repeats its first node at
        the end.
        """
        white, grey, black = 0, 1, 2
        color = [white] * len(self.ids)
        found: List[List[str]] = []
        seen_keys: Set[Tuple[int, ...]] = set()
        back_edges: Set[Tuple[str, str]] = set()

        for root in range(len(self.ids)):
            if color[root] != white:
                continue
            color[root] = grey
            stack: List[Tuple[int, int]] = [(root, 0)]
            path: List[int] = [root]
            while stack:
                node, i = stack[-1]
                if i < len(self.adj[node]):
                    stack[-1] = (node, i + 1)
                    nxt = self.adj[node][i]
                    if color[nxt] == white:
                        color[nxt] = grey
                        stack.append((nxt, 0))
                        path.append(nxt)
                    elif color[nxt] == grey:
                        back_edges.add((self.ids[node], self.ids[nxt]))
                        loop = path[path.index(nxt):]
                        pivot = loop.index(min(loop))
                        key = tuple(loop[pivot:] + loop[:pivot])
                        if key not in seen_keys:
                            seen_keys.add(key)
                            found.append([self.ids[k] for k in loop] + [self.ids[nxt]])
                else:
                    color[node] = black
                    stack.pop()
                    path.pop()
        return found, back_edges


def _condition_text(rule: LogicRule) -> str:
    parts = [rule.condition_type]
    if rule.condition_value is not None:
        parts.append(str(rule.condition_value))
    if rule.condition_value2 is not None:
        parts.append(f"and {rule.condition_value2}")
    return " ".join(parts)


class GraphAnalyzer:
    def __init__(
        self,
        data: Optional[FlowDataSource] = None,
        max_passes: int = DEFAULT_REACHABILITY_MAX_PASSES,
    ) -> None:
        if max_passes < 1:
            raise ValueError("max_passes must be >= 1")
        self._data = data
        self._max_passes = max_passes

    # -- cycles ---------------------------------------------------------------

    def find_cycles(self, rules: Sequence[LogicRule]) -> List[List[str]]:
        cycles, _ = RuleGraph.from_rules(rules).cycles()
        return cycles

    def detect_cycles(self, rules: Sequence[LogicRule]) -> List[str]:
        return [
            "Circular reference detected: " + " -> ".join(path)
            for path in self.find_cycles(rules)
        ]

    # -- reachability ---------------------------------------------------------

    def _reachability(self, rules: Sequence[LogicRule]) -> Tuple[List[str], bool]:
        referenced = _referenced_ids(rules)
        edge_rules = [r for r in rules if _is_edge_rule(r)]
        gated = {t for r in edge_rules if r.action.is_show for t in r.targeted_questions()}
        reachable: Set[str] = {qid for qid in referenced if qid not in gated}
        hidden: Set[str] = set()

        converged = False
        for _ in range(self._max_passes):
            changed = False
            for rule in edge_rules:
                if rule.question_id not in reachable:
                    continue
                for target in rule.targeted_questions():
                    if rule.action.is_show and target not in reachable:
                        reachable.add(target)
                        hidden.discard(target)
                        changed = True
                    elif rule.action.is_hide and target not in hidden:
                        hidden.add(target)
                        reachable.discard(target)
                        changed = True
            if not changed:
                converged = True
                break
        if not converged:
            logger.warning("reachability_not_converged max_passes=%s", self._max_passes)
        return [qid for qid in referenced if qid not in reachable], converged

    def find_unreachable(self, survey_id: Optional[str], rules: Sequence[LogicRule]) -> List[str]:
        unreachable, _ = self._reachability(rules)
        if unreachable:
            logger.debug("unreachable_questions survey_id=%s count=%s", survey_id, len(unreachable))
        return unreachable

    # -- targets --------------------------------------------------------------

    def find_invalid_targets(
        self,
        rules: Sequence[LogicRule],
        known_question_ids: Optional[Iterable[str]] = None,
    ) -> List[str]:
        """Describe rules with orphaned, self-referencing or missing targets.

        With `known_question_ids` targets are checked against the survey's
        question catalog. Without it a target counts as known only when some
        other rule names it, as a source or as a target.
        """
        known = set(known_question_ids) if known_question_ids is not None else None
        sources = {rule.question_id for rule in rules}
        target_refs = Counter(t for rule in rules for t in set(rule.targeted_questions()))
        issues: List[str] = []
        for rule in rules:
            kind = rule.action
            for target in rule.targeted_questions():
                if known is not None:
                    missing = target not in known
                else:
                    missing = target not in sources and target_refs[target] < 2
                if missing:
                    issues.append(f"Rule {rule.label} references non-existent question {target}")
            if rule.question_id in rule.targeted_questions():
                issues.append(f"Rule {rule.label} has invalid self-reference")
            if rule.target_question_id and rule.target_section_id:
                issues.append(f"Rule {rule.label} sets both a target question and a target section")
            if kind is LogicType.JUMP_TO_SECTION:
                if not rule.target_section_id:
                    issues.append(f"Rule {rule.label} ({kind.value}) has no target section")
            elif kind not in UNTARGETED_ACTIONS and not rule.targeted_questions():
                issues.append(f"Rule {rule.label} ({kind.value}) has no target question")
        return issues

    # -- reports --------------------------------------------------------------

    def analyze(
        self,
        survey_id: Optional[str],
        rules: Sequence[LogicRule],
        known_question_ids: Optional[Iterable[str]] = None,
    ) -> GraphAnalysisReport:
        unreachable, converged = self._reachability(rules)
        report = GraphAnalysisReport(
            survey_id=survey_id,
            cycles=self.detect_cycles(rules),
            unreachable_questions=unreachable,
            invalid_targets=self.find_invalid_targets(rules, known_question_ids),
        )
        if not converged:
            report.warnings.append(
                f"Reachability did not converge within {self._max_passes} passes; result may be incomplete"
            )
        return report

    def build_visualization(
        self,
        survey_id: str,
        rules: Sequence[LogicRule],
        catalog: Optional[Sequence[Tuple[str, Optional[str]]]] = None,
    ) -> SurveyFlowVisualization:
        """Render the rule set as nodes, edges and decision points.

        `catalog` is an optional ordered list of (question_id, section_id)
        so questions without rules still appear as nodes.
        """
        active = [r for r in rules if r.is_active]
        graph = RuleGraph.from_rules(rules)
        cycles, back_edges = graph.cycles()
        unreachable, converged = self._reachability(rules)

        section_of: Dict[str, Optional[str]] = dict(catalog or [])
        question_ids = list(section_of.keys())
        for qid in _referenced_ids(rules):
            if qid not in section_of:
                question_ids.append(qid)
        sources = {r.question_id for r in active}

        nodes = [
            FlowNode(
                id=f"Q{qid}",
                type="Question",
                label=f"Question {qid}",
                properties={
                    "question_id": qid,
                    "section_id": section_of.get(qid),
                    "is_decision_point": qid in sources,
                },
            )
            for qid in question_ids
        ]
        section_nodes: List[str] = []
        needs_end = False
        edges: List[FlowEdge] = []
        decisions: Dict[str, DecisionPoint] = {}

        for rule in active:
            kind = rule.action
            condition = _condition_text(rule)
            label = f"{rule.logic_type}: {condition}"
            src = f"Q{rule.question_id}"
            if kind is LogicType.JUMP_TO_SECTION and rule.target_section_id:
                if rule.target_section_id not in section_nodes:
                    section_nodes.append(rule.target_section_id)
                edges.append(FlowEdge(from_node_id=src, to_node_id=f"S{rule.target_section_id}", label=label, condition=condition))
            elif kind in (LogicType.END_SURVEY, LogicType.DISQUALIFY):
                needs_end = True
                edges.append(FlowEdge(from_node_id=src, to_node_id=END_NODE_ID, label=label, condition=condition))
            else:
                for target in rule.targeted_questions():
                    edges.append(
                        FlowEdge(
                            from_node_id=src,
                            to_node_id=f"Q{target}",
                            label=label,
                            condition=condition,
                            is_back_edge=(rule.question_id, target) in back_edges and _is_edge_rule(rule),
                        )
                    )
            point = decisions.setdefault(rule.question_id, DecisionPoint(question_id=rule.question_id))
            point.conditions.append(condition)
            point.actions.append(action_for_rule(rule))

        nodes.extend(
            FlowNode(id=f"S{sid}", type="Section", label=f"Section {sid}", properties={"section_id": sid})
            for sid in section_nodes
        )
        if needs_end:
            nodes.append(FlowNode(id=END_NODE_ID, type="End", label="End of survey"))

        targets: List[str] = []
        for rule in active:
            for target in rule.targeted_questions():
                if target not in targets:
                    targets.append(target)

        viz = SurveyFlowVisualization(
            survey_id=str(survey_id),
            nodes=nodes,
            edges=edges,
            decision_points=list(decisions.values()),
            end_points=[t for t in targets if t not in sources],
            orphaned_questions=unreachable,
            cycles=cycles,
        )
        if not converged:
            viz.warnings.append(
                f"Reachability did not converge within {self._max_passes} passes; result may be incomplete"
            )
        return viz

    # -- survey-scoped entry points ------------------------------------------

    def _require_data(self) -> FlowDataSource:
        if self._data is None:
            raise RuntimeError("GraphAnalyzer was created without a data source")
        return self._data

    def validate_survey_flow_integrity(self, survey_id: str) -> GraphAnalysisReport:
        data = self._require_data()
        rules = data.get_survey_logic(survey_id)
        catalog = data.list_survey_questions(survey_id)
        report = self.analyze(survey_id, rules, [q.question_id for q in catalog])
        if not report.is_valid:
            logger.warning(
                "survey_flow_integrity_issues survey_id=%s issues=%s",
                survey_id,
                "; ".join(report.issues()),
            )
        return report

    def generate_flow_map(self, survey_id: str) -> SurveyFlowVisualization:
        data = self._require_data()
        rules = data.get_survey_logic(survey_id)
        catalog = [(q.question_id, q.section_id) for q in data.list_survey_questions(survey_id)]
        return self.build_visualization(survey_id, rules, catalog)


__all__ = ["GraphAnalyzer", "RuleGraph", "END_NODE_ID"]
