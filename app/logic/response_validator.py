"""Content validation of a submitted answer against its question.

Dispatches on the question type name. Problems are collected as
human-readable messages on a ValidationResult; nothing here raises for a bad
answer. Types without a validator are accepted as-is.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, Optional

from app.logic.condition_evaluator import parse_decimal
from app.logic.flow_data import QuestionReferenceData
from app.models.response import QuestionMetadata, SurveyResponse, ValidationResult

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")
PHONE_PATTERN = re.compile(r"\+?[\d\s\-\(\)]{10,}")
YES_NO_VALUES = frozenset({"yes", "no", "true", "false", "1", "0"})

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%d-%m-%Y",
    "%d %B %Y",
    "%d %b %Y",
    "%B %d, %Y",
    "%b %d, %Y",
)


def _fmt(value: Decimal) -> str:
    """Render a bound the way authors typed it: 5 not 5.0, 2.5 stays 2.5."""
    return format(value.normalize(), "f")


def _parses_as_date(answer: str) -> bool:
    text = answer.strip()
    try:
        date.fromisoformat(text)
        return True
    except ValueError:
        pass
    try:
        datetime.fromisoformat(text.replace("Z", "+00:00"))
        return True
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            datetime.strptime(text, fmt)
            return True
        except ValueError:
            continue
    return False


class ResponseValidator:
    def __init__(self, reference: QuestionReferenceData) -> None:
        self._reference = reference
        self._validators: Dict[str, Callable[[SurveyResponse, QuestionMetadata], ValidationResult]] = {
            "shorttext": self._validate_text,
            "longtext": self._validate_text,
            "singlechoice": self._validate_single_choice,
            "multiplechoice": self._validate_multiple_choice,
            "rating": self._validate_numeric,
            "slider": self._validate_numeric,
            "numberinput": self._validate_numeric,
            "matrix": self._validate_matrix,
            "date": self._validate_date,
            "email": self._validate_email,
            "phone": self._validate_phone,
            "yesno": self._validate_yes_no,
        }

    def validate(self, response: SurveyResponse, question: QuestionMetadata) -> ValidationResult:
        answer = response.answer
        if question.is_mandatory and (answer is None or not answer.strip()):
            result = ValidationResult()
            result.add_error("This question is required")
            return result

        key = re.sub(r"[\s_\-]", "", question.question_type or "").casefold()
        validator = self._validators.get(key)
        if validator is None:
            logger.debug(
                "response_type_unvalidated question_id=%s type=%s",
                question.question_id,
                question.question_type,
            )
            return ValidationResult()
        return validator(response, question)

    # -- per type -------------------------------------------------------------

    def _validate_text(self, response: SurveyResponse, question: QuestionMetadata) -> ValidationResult:
        result = ValidationResult()
        answer = response.answer
        if not answer:
            return result

        if question.min_value is not None and len(answer) < question.min_value:
            result.add_error(f"Answer must be at least {_fmt(question.min_value)} characters long")
        if question.max_value is not None and len(answer) > question.max_value:
            result.add_error(f"Answer must be no more than {_fmt(question.max_value)} characters long")

        if question.validation_regex:
            try:
                matched = re.search(question.validation_regex, answer) is not None
            except re.error:
                logger.error(
                    "question_regex_invalid question_id=%s pattern=%r",
                    question.question_id,
                    question.validation_regex,
                )
            else:
                if not matched:
                    result.add_error(question.validation_message or "Answer format is invalid")
        return result

    def _validate_single_choice(self, response: SurveyResponse, question: QuestionMetadata) -> ValidationResult:
        result = ValidationResult()
        answer = response.answer
        if not answer:
            return result
        token = answer.strip()
        choices = self._reference.list_choices(question.question_id)
        if not any(c.choice_id == token or c.value == token for c in choices):
            result.add_error("Invalid choice selected")
        return result

    def _validate_multiple_choice(self, response: SurveyResponse, question: QuestionMetadata) -> ValidationResult:
        result = ValidationResult()
        answer = response.answer
        if not answer:
            return result
        try:
            selected = json.loads(answer)
        except (TypeError, ValueError):
            selected = None
        if not isinstance(selected, list) or not all(isinstance(item, str) for item in selected):
            result.add_error("Invalid response format")
            return result

        choices = self._reference.list_choices(question.question_id)
        valid_values = {c.value for c in choices}
        exclusive_values = {c.value for c in choices if c.is_exclusive}
        for choice in selected:
            if choice not in valid_values:
                result.add_error(f"Invalid choice: {choice}")
        if len(selected) > 1 and any(choice in exclusive_values for choice in selected):
            result.add_error("Cannot select other options when an exclusive option is selected")
        return result

    def _validate_numeric(self, response: SurveyResponse, question: QuestionMetadata) -> ValidationResult:
        result = ValidationResult()
        answer = response.answer
        if not answer:
            return result
        number = parse_decimal(answer)
        if number is None:
            result.add_error("Answer must be a valid number")
            return result

        minimum: Optional[Decimal] = question.min_value if question.min_value is not None else question.default_min_value
        maximum: Optional[Decimal] = question.max_value if question.max_value is not None else question.default_max_value
        if minimum is not None and number < minimum:
            result.add_error(f"Value must be at least {_fmt(minimum)}")
        if maximum is not None and number > maximum:
            result.add_error(f"Value must be no more than {_fmt(maximum)}")
        return result

    def _validate_matrix(self, response: SurveyResponse, question: QuestionMetadata) -> ValidationResult:
        result = ValidationResult()
        if not response.matrix_row_id:
            result.add_error("Matrix row must be specified")
            return result
        if not self._reference.matrix_row_exists(question.question_id, response.matrix_row_id):
            result.add_error("Invalid matrix row")
        if not self._reference.matrix_column_exists(question.question_id, response.answer or ""):
            result.add_error("Invalid matrix column value")
        return result

    def _validate_date(self, response: SurveyResponse, question: QuestionMetadata) -> ValidationResult:
        result = ValidationResult()
        if response.answer and not _parses_as_date(response.answer):
            result.add_error("Invalid date format")
        return result

    def _validate_email(self, response: SurveyResponse, question: QuestionMetadata) -> ValidationResult:
        result = ValidationResult()
        if response.answer and EMAIL_PATTERN.fullmatch(response.answer) is None:
            result.add_error("Invalid email format")
        return result

    def _validate_phone(self, response: SurveyResponse, question: QuestionMetadata) -> ValidationResult:
        result = ValidationResult()
        if response.answer and PHONE_PATTERN.fullmatch(response.answer) is None:
            result.add_error("Invalid phone number format")
        return result

    def _validate_yes_no(self, response: SurveyResponse, question: QuestionMetadata) -> ValidationResult:
        result = ValidationResult()
        if response.answer and response.answer.strip().lower() not in YES_NO_VALUES:
            result.add_error("Answer must be Yes or No")
        return result


__all__ = ["ResponseValidator", "EMAIL_PATTERN", "PHONE_PATTERN", "YES_NO_VALUES"]
