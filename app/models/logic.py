"""Branching rule vocabulary and the LogicRule model.

Condition and logic types arrive from the rule store as free strings. They
are kept verbatim on `LogicRule` and resolved through `ConditionType.parse`
and `LogicType.parse`, which return a closed enum member (or None / NONE
for unknown spellings) so dispatch tables stay exhaustive.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def _normalize_token(raw: object) -> str:
    """`NotEquals` / `not-equals` / ` NOT_EQUALS ` -> `not_equals`."""
    if raw is None:
        return ""
    text = _CAMEL_BOUNDARY.sub("_", str(raw).strip())
    return text.replace("-", "_").replace(" ", "_").lower()


class ConditionType(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    BETWEEN = "between"
    IN_LIST = "in_list"
    REGEX_MATCH = "regex_match"
    CROSS_QUESTION = "cross_question"

    @classmethod
    def parse(cls, raw: object) -> Optional["ConditionType"]:
        token = _normalize_token(raw)
        try:
            return cls(token)
        except ValueError:
            return None


class LogicType(str, Enum):
    """Flow effect of a rule; also the action type of a BranchingAction."""

    NONE = "none"
    SHOW_QUESTION = "show_question"
    HIDE_QUESTION = "hide_question"
    SHOW_QUESTIONS = "show_questions"
    JUMP_TO_SECTION = "jump_to_section"
    SKIP_TO_QUESTION = "skip_to_question"
    END_SURVEY = "end_survey"
    DISQUALIFY = "disqualify"

    @classmethod
    def parse(cls, raw: object) -> "LogicType":
        token = _normalize_token(raw)
        token = _LEGACY_LOGIC_ALIASES.get(token, token)
        try:
            return cls(token)
        except ValueError:
            return cls.NONE

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_ACTIONS

    @property
    def is_show(self) -> bool:
        return self in (LogicType.SHOW_QUESTION, LogicType.SHOW_QUESTIONS)

    @property
    def is_hide(self) -> bool:
        return self is LogicType.HIDE_QUESTION


# Spellings used by the authoring service before the snake_case vocabulary
_LEGACY_LOGIC_ALIASES = {
    "show": "show_question",
    "hide": "hide_question",
    "skip": "skip_to_question",
    "end": "end_survey",
}

ActionType = LogicType

TERMINAL_ACTIONS = frozenset({LogicType.END_SURVEY, LogicType.JUMP_TO_SECTION})

# Actions that need no question/section target
UNTARGETED_ACTIONS = frozenset({LogicType.END_SURVEY, LogicType.DISQUALIFY, LogicType.NONE})


class LogicRule(BaseModel):
    """An author-defined condition + action attached to one source question."""

    rule_id: Optional[str] = None
    question_id: str
    logic_type: str
    condition_type: str
    condition_value: Optional[str] = None
    condition_value2: Optional[str] = None
    target_question_id: Optional[str] = None
    target_question_ids: list[str] = Field(default_factory=list)
    target_section_id: Optional[str] = None
    is_active: bool = True
    message: Optional[str] = None

    @property
    def condition(self) -> Optional[ConditionType]:
        return ConditionType.parse(self.condition_type)

    @property
    def action(self) -> LogicType:
        return LogicType.parse(self.logic_type)

    def targeted_questions(self) -> list[str]:
        """Question ids this rule points at (single target plus list targets)."""
        out: list[str] = []
        if self.target_question_id:
            out.append(self.target_question_id)
        for qid in self.target_question_ids:
            if qid and qid not in out:
                out.append(qid)
        return out

    @property
    def label(self) -> str:
        return self.rule_id or f"{self.question_id}:{self.logic_type}"


__all__ = [
    "ConditionType",
    "LogicType",
    "ActionType",
    "TERMINAL_ACTIONS",
    "UNTARGETED_ACTIONS",
    "LogicRule",
]
