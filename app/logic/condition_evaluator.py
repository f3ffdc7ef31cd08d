"""Condition evaluation for branching rules.

Pure functions: (submitted value, rule, participation context) -> bool.
String comparisons are case-insensitive and whitespace-trimmed; numeric
comparisons parse both sides as decimals and are False when either side
does not parse. Every failure inside a single condition yields False so a
malformed rule can never break the evaluation of its question.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, Optional

from app.models.branching import ParticipationContext
from app.models.logic import ConditionType, LogicRule

logger = logging.getLogger(__name__)


def parse_decimal(value: object) -> Optional[Decimal]:
    """Parse a finite decimal from text; None when it does not parse."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        number = Decimal(text)
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def _norm(value: Optional[str]) -> Optional[str]:
    return value.strip().casefold() if value is not None else None


def _equals(value: Optional[str], rule: LogicRule, context: ParticipationContext) -> bool:
    return _norm(value) == _norm(rule.condition_value)


def _not_equals(value: Optional[str], rule: LogicRule, context: ParticipationContext) -> bool:
    return not _equals(value, rule, context)


def _contains(value: Optional[str], rule: LogicRule, context: ParticipationContext) -> bool:
    if value is None or rule.condition_value is None:
        return False
    return rule.condition_value.casefold() in value.casefold()


def _compare(value: Optional[str], other: Optional[str], op: Callable[[Decimal, Decimal], bool]) -> bool:
    left = parse_decimal(value)
    right = parse_decimal(other)
    if left is None or right is None:
        return False
    return op(left, right)


def _greater_than(value: Optional[str], rule: LogicRule, context: ParticipationContext) -> bool:
    return _compare(value, rule.condition_value, lambda a, b: a > b)


def _less_than(value: Optional[str], rule: LogicRule, context: ParticipationContext) -> bool:
    return _compare(value, rule.condition_value, lambda a, b: a < b)


def _between(value: Optional[str], rule: LogicRule, context: ParticipationContext) -> bool:
    number = parse_decimal(value)
    low = parse_decimal(rule.condition_value)
    high = parse_decimal(rule.condition_value2)
    if number is None or low is None or high is None:
        return False
    return low <= number <= high


def _in_list(value: Optional[str], rule: LogicRule, context: ParticipationContext) -> bool:
    if value is None or not rule.condition_value:
        return False
    needle = _norm(value)
    items = [item for item in rule.condition_value.split(",") if item]
    return any(_norm(item) == needle for item in items)


def _regex_match(value: Optional[str], rule: LogicRule, context: ParticipationContext) -> bool:
    if rule.condition_value is None:
        return False
    try:
        return re.search(rule.condition_value, value or "") is not None
    except re.error:
        logger.warning("rule_regex_invalid rule=%s pattern=%r", rule.label, rule.condition_value)
        return False


def _cross_question(value: Optional[str], rule: LogicRule, context: ParticipationContext) -> bool:
    # Combinators over other questions' answers have no stored format yet;
    # until one exists these rules never fire.
    logger.debug("rule_cross_question_not_supported rule=%s", rule.label)
    return False


_EVALUATORS: Dict[ConditionType, Callable[[Optional[str], LogicRule, ParticipationContext], bool]] = {
    ConditionType.EQUALS: _equals,
    ConditionType.NOT_EQUALS: _not_equals,
    ConditionType.CONTAINS: _contains,
    ConditionType.GREATER_THAN: _greater_than,
    ConditionType.LESS_THAN: _less_than,
    ConditionType.BETWEEN: _between,
    ConditionType.IN_LIST: _in_list,
    ConditionType.REGEX_MATCH: _regex_match,
    ConditionType.CROSS_QUESTION: _cross_question,
}


def evaluate_condition(
    submitted_value: Optional[str],
    rule: LogicRule,
    context: ParticipationContext,
) -> bool:
    """Return True when `rule`'s condition holds for `submitted_value`.

    Unknown condition types evaluate to False. Exceptions are logged and
    treated as False.
    """
    condition = rule.condition
    if condition is None:
        logger.warning("rule_condition_unknown rule=%s condition_type=%r", rule.label, rule.condition_type)
        return False
    try:
        return bool(_EVALUATORS[condition](submitted_value, rule, context))
    except Exception:
        logger.warning(
            "rule_condition_failed rule=%s condition_type=%s participation_id=%s",
            rule.label,
            condition.value,
            context.participation_id,
            exc_info=True,
        )
        return False


__all__ = ["evaluate_condition", "parse_decimal"]
