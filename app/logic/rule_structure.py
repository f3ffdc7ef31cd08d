"""Authoring-time structural checks for a single branching rule."""

from __future__ import annotations

import re
from typing import List

from app.logic.condition_evaluator import parse_decimal
from app.models.logic import ConditionType, LogicRule, LogicType

_QUESTION_TARGET_ACTIONS = frozenset(
    {LogicType.SHOW_QUESTION, LogicType.HIDE_QUESTION, LogicType.SKIP_TO_QUESTION}
)


def validate_logic_rule(rule: LogicRule) -> List[str]:
    """Return human-readable problems with `rule`; empty when it is well formed."""
    errors: List[str] = []

    condition = rule.condition
    if condition is None:
        errors.append(f"Unknown condition type '{rule.condition_type}'")
    elif condition is ConditionType.BETWEEN:
        low = parse_decimal(rule.condition_value)
        high = parse_decimal(rule.condition_value2)
        if rule.condition_value2 is None or str(rule.condition_value2).strip() == "":
            errors.append("Between condition requires a second value")
        elif low is None or high is None:
            errors.append("Between condition values must be numeric")
        elif low > high:
            errors.append("Between condition minimum must not exceed maximum")
    elif condition in (ConditionType.GREATER_THAN, ConditionType.LESS_THAN):
        if parse_decimal(rule.condition_value) is None:
            errors.append(f"Condition '{condition.value}' requires a numeric value")
    elif condition is ConditionType.REGEX_MATCH:
        try:
            re.compile(rule.condition_value or "")
        except re.error as exc:
            errors.append(f"Invalid regular expression: {exc}")
    elif condition is not ConditionType.CROSS_QUESTION and rule.condition_value is None:
        errors.append(f"Condition '{condition.value}' requires a value")

    action = rule.action
    if action is LogicType.NONE:
        errors.append(f"Unknown logic type '{rule.logic_type}'")
    elif action in _QUESTION_TARGET_ACTIONS and not rule.target_question_id:
        errors.append(f"Logic type '{action.value}' requires a target question")
    elif action is LogicType.SHOW_QUESTIONS and not rule.targeted_questions():
        errors.append("Logic type 'show_questions' requires at least one target question")
    elif action is LogicType.JUMP_TO_SECTION and not rule.target_section_id:
        errors.append("Logic type 'jump_to_section' requires a target section")

    if rule.target_question_id and rule.target_section_id:
        errors.append("A rule cannot target both a question and a section")
    if rule.question_id in rule.targeted_questions():
        errors.append("A rule cannot target its own question")
    return errors


__all__ = ["validate_logic_rule"]
