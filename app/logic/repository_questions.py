"""Question-related repository helpers.

Read-only queries over question / question_type / question_choice and the
matrix tables, used by response validation and flow-state computation.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from sqlalchemy import text as sql_text

from app.db.base import get_engine
from app.models.response import ChoiceOption, QuestionMetadata, SurveyQuestion

logger = logging.getLogger(__name__)


def _opt_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        logger.error("question_numeric_bound_invalid value=%r", value)
        return None


def get_question_metadata(question_id: str) -> QuestionMetadata | None:
    """Return validation metadata for a non-deleted question, or None."""
    eng = get_engine()
    with eng.connect() as conn:
        row = conn.execute(
            sql_text(
                """
                SELECT q.question_id, qt.name, q.question_text, q.section_id,
                       q.is_mandatory, q.is_screening_question, q.min_value,
                       q.max_value, qt.default_min_value, qt.default_max_value,
                       qt.validation_regex, q.validation_message
                FROM question q
                JOIN question_type qt ON q.type_id = qt.type_id
                WHERE q.question_id = :qid AND q.is_deleted = FALSE
                """
            ),
            {"qid": str(question_id)},
        ).fetchone()
    if row is None:
        return None
    return QuestionMetadata(
        question_id=str(row[0]),
        question_type=str(row[1]),
        text=str(row[2] or ""),
        section_id=str(row[3]) if row[3] is not None else None,
        is_mandatory=bool(row[4]),
        is_screening_question=bool(row[5]),
        min_value=_opt_decimal(row[6]),
        max_value=_opt_decimal(row[7]),
        default_min_value=_opt_decimal(row[8]),
        default_max_value=_opt_decimal(row[9]),
        validation_regex=row[10],
        validation_message=row[11],
    )


def list_choices(question_id: str) -> List[ChoiceOption]:
    eng = get_engine()
    with eng.connect() as conn:
        rows = conn.execute(
            sql_text(
                """
                SELECT choice_id, value, is_exclusive_option
                FROM question_choice
                WHERE question_id = :qid AND is_deleted = FALSE
                ORDER BY choice_id
                """
            ),
            {"qid": str(question_id)},
        ).fetchall()
    return [ChoiceOption(choice_id=str(r[0]), value=str(r[1]), is_exclusive=bool(r[2])) for r in rows]


def matrix_row_exists(question_id: str, row_id: str) -> bool:
    eng = get_engine()
    with eng.connect() as conn:
        row = conn.execute(
            sql_text(
                "SELECT 1 FROM matrix_row WHERE question_id = :qid AND row_id = :rid AND is_deleted = FALSE"
            ),
            {"qid": str(question_id), "rid": str(row_id)},
        ).fetchone()
    return row is not None


def matrix_column_exists(question_id: str, value: str) -> bool:
    """True when `value` matches a non-deleted column value (case-insensitive)."""
    eng = get_engine()
    with eng.connect() as conn:
        row = conn.execute(
            sql_text(
                """
                SELECT 1 FROM matrix_column
                WHERE question_id = :qid AND LOWER(value) = LOWER(:val) AND is_deleted = FALSE
                """
            ),
            {"qid": str(question_id), "val": str(value).strip()},
        ).fetchone()
    return row is not None


def list_survey_questions(survey_id: str) -> List[SurveyQuestion]:
    """Return the survey's non-deleted questions in section/question order."""
    eng = get_engine()
    with eng.connect() as conn:
        rows = conn.execute(
            sql_text(
                """
                SELECT q.question_id, q.section_id, q.question_order
                FROM question q
                JOIN survey_section ss ON q.section_id = ss.section_id
                WHERE ss.survey_id = :sid AND q.is_deleted = FALSE
                ORDER BY ss.section_order, q.question_order, q.question_id
                """
            ),
            {"sid": str(survey_id)},
        ).fetchall()
    return [
        SurveyQuestion(question_id=str(r[0]), section_id=str(r[1]), question_order=int(r[2] or 0))
        for r in rows
    ]


__all__ = [
    "get_question_metadata",
    "list_choices",
    "matrix_row_exists",
    "matrix_column_exists",
    "list_survey_questions",
]
