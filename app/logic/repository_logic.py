"""Branching rule data access helpers.

Reads question_logic rows for the flow engine. The ORDER BY clauses define
the authoritative rule order; the engine never re-sorts what it receives.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List

from sqlalchemy import text as sql_text

from app.db.base import get_engine
from app.models.logic import LogicRule

logger = logging.getLogger(__name__)

_RULE_COLUMNS = """
    ql.logic_id, ql.question_id, ql.logic_type, ql.condition_type,
    ql.condition_value, ql.condition_value2, ql.target_question_id,
    ql.target_section_id, ql.target_question_ids, ql.message, ql.is_active
"""


def _decode_target_list(raw: Any) -> list[str]:
    """Decode the JSON-array target list column; tolerate legacy CSV values."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, (list, tuple)):
        return [str(x) for x in raw]
    try:
        parsed = json.loads(str(raw))
    except (TypeError, ValueError):
        return [tok.strip() for tok in str(raw).split(",") if tok.strip()]
    if isinstance(parsed, list):
        return [str(x) for x in parsed]
    return [str(parsed)]


def _row_to_rule(row: Any) -> LogicRule:
    m = row._mapping
    return LogicRule(
        rule_id=str(m["logic_id"]),
        question_id=str(m["question_id"]),
        logic_type=str(m["logic_type"]),
        condition_type=str(m["condition_type"]),
        condition_value=m["condition_value"],
        condition_value2=m["condition_value2"],
        target_question_id=str(m["target_question_id"]) if m["target_question_id"] is not None else None,
        target_section_id=str(m["target_section_id"]) if m["target_section_id"] is not None else None,
        target_question_ids=_decode_target_list(m["target_question_ids"]),
        message=m["message"],
        is_active=bool(m["is_active"]),
    )


def get_question_logic(question_id: str) -> List[LogicRule]:
    """Return all non-deleted rules whose source is `question_id`, active or not."""
    eng = get_engine()
    with eng.connect() as conn:
        rows = conn.execute(
            sql_text(
                f"""
                SELECT {_RULE_COLUMNS}
                FROM question_logic ql
                WHERE ql.question_id = :qid AND ql.is_deleted = FALSE
                ORDER BY ql.created_at, ql.logic_id
                """
            ),
            {"qid": str(question_id)},
        ).fetchall()
    return [_row_to_rule(r) for r in rows]


def get_survey_logic(survey_id: str) -> List[LogicRule]:
    """Return every non-deleted rule of a survey in section/question order."""
    eng = get_engine()
    with eng.connect() as conn:
        rows = conn.execute(
            sql_text(
                f"""
                SELECT {_RULE_COLUMNS}
                FROM question_logic ql
                JOIN question q ON ql.question_id = q.question_id
                JOIN survey_section ss ON q.section_id = ss.section_id
                WHERE ss.survey_id = :sid AND ql.is_deleted = FALSE
                ORDER BY ss.section_order, q.question_order, ql.created_at, ql.logic_id
                """
            ),
            {"sid": str(survey_id)},
        ).fetchall()
    logger.debug("survey_logic_loaded survey_id=%s rules=%s", survey_id, len(rows))
    return [_row_to_rule(r) for r in rows]


__all__ = ["get_question_logic", "get_survey_logic"]
