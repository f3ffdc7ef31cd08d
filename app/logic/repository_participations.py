"""Participation and response data access helpers.

Encapsulates reads and writes of survey_participation / survey_response
rows used by the branching engine and the response service.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import text as sql_text

from app.db.base import get_engine
from app.models.response import STATUS_COMPLETED, Participation, SurveyResponse

logger = logging.getLogger(__name__)


def _iso(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def _opt_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def get_participation(participation_id: str) -> Participation | None:
    eng = get_engine()
    with eng.connect() as conn:
        row = conn.execute(
            sql_text(
                """
                SELECT participation_id, survey_id, current_section_id,
                       current_question_id, status_id
                FROM survey_participation
                WHERE participation_id = :pid
                """
            ),
            {"pid": str(participation_id)},
        ).fetchone()
    if row is None:
        return None
    return Participation(
        participation_id=str(row[0]),
        survey_id=str(row[1]),
        current_section_id=_opt_str(row[2]),
        current_question_id=_opt_str(row[3]),
        status_id=int(row[4]),
    )


def get_saved_responses(participation_id: str) -> List[SurveyResponse]:
    """Return saved responses for a participation, oldest first."""
    eng = get_engine()
    with eng.connect() as conn:
        rows = conn.execute(
            sql_text(
                """
                SELECT response_id, participation_id, question_id, answer,
                       matrix_row_id, response_datetime
                FROM survey_response
                WHERE participation_id = :pid
                ORDER BY response_datetime, response_id
                """
            ),
            {"pid": str(participation_id)},
        ).fetchall()
    return [
        SurveyResponse(
            response_id=str(r[0]),
            participation_id=str(r[1]),
            question_id=str(r[2]),
            answer=r[3],
            matrix_row_id=_opt_str(r[4]),
            response_datetime=r[5],
        )
        for r in rows
    ]


def save_survey_response(response: SurveyResponse) -> bool:
    """Insert or overwrite the answer for (participation, question, matrix row).

    A later save for the same key replaces the earlier answer and timestamp.
    Assigns `response.response_id` when the row is new. Returns True when a
    row was written.
    """
    eng = get_engine()
    params = {
        "pid": response.participation_id,
        "qid": response.question_id,
        "row": response.matrix_row_id,
        "answer": response.answer,
        "ts": _iso(response.response_datetime),
    }
    with eng.begin() as conn:
        existing = conn.execute(
            sql_text(
                """
                SELECT response_id FROM survey_response
                WHERE participation_id = :pid AND question_id = :qid
                  AND ((matrix_row_id IS NULL AND :row IS NULL) OR matrix_row_id = :row)
                """
            ),
            params,
        ).fetchone()
        if existing is not None:
            result = conn.execute(
                sql_text(
                    "UPDATE survey_response SET answer = :answer, response_datetime = :ts WHERE response_id = :rid"
                ),
                {**params, "rid": existing[0]},
            )
            response.response_id = str(existing[0])
        else:
            rid = response.response_id or str(uuid.uuid4())
            result = conn.execute(
                sql_text(
                    """
                    INSERT INTO survey_response
                        (response_id, participation_id, question_id, matrix_row_id, answer, response_datetime)
                    VALUES (:rid, :pid, :qid, :row, :answer, :ts)
                    """
                ),
                {**params, "rid": rid},
            )
            response.response_id = rid
    logger.info(
        "response_saved participation_id=%s question_id=%s response_id=%s",
        response.participation_id,
        response.question_id,
        response.response_id,
    )
    return (result.rowcount or 0) > 0


def complete_survey(participation_id: str) -> bool:
    eng = get_engine()
    with eng.begin() as conn:
        result = conn.execute(
            sql_text(
                "UPDATE survey_participation SET status_id = :st, completed_at = :at WHERE participation_id = :pid"
            ),
            {"st": STATUS_COMPLETED, "at": _iso(datetime.now(timezone.utc)), "pid": str(participation_id)},
        )
    return (result.rowcount or 0) > 0


def update_current_section(participation_id: str, section_id: str) -> bool:
    eng = get_engine()
    with eng.begin() as conn:
        result = conn.execute(
            sql_text(
                "UPDATE survey_participation SET current_section_id = :sec, current_question_id = NULL"
                " WHERE participation_id = :pid"
            ),
            {"sec": str(section_id), "pid": str(participation_id)},
        )
    return (result.rowcount or 0) > 0


def update_current_question(participation_id: str, question_id: str) -> bool:
    eng = get_engine()
    with eng.begin() as conn:
        result = conn.execute(
            sql_text(
                "UPDATE survey_participation SET current_question_id = :qid WHERE participation_id = :pid"
            ),
            {"qid": str(question_id), "pid": str(participation_id)},
        )
    return (result.rowcount or 0) > 0


__all__ = [
    "get_participation",
    "get_saved_responses",
    "save_survey_response",
    "complete_survey",
    "update_current_section",
    "update_current_question",
]
