"""
Answer grading.

Scoring contract:

- Both the given answer and the correct answer are normalized to a canonical
  string before an exact comparison (``normalize_answer``).
- Every presented question counts toward ``possible``; a question without a
  submitted answer earns nothing.
- ``score_percent = round(100 * earned / possible)``, or 0 when nothing is
  worth any points. Halves round up (50.5 -> 51), independent of float
  banker's rounding.
"""

import math
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional, Sequence

from exam_engine.assessments.models import AttemptAnswer
from exam_engine.domain.questions import Question

_BOOLEAN_WORDS = ("true", "false")


def normalize_answer(value: Any) -> Optional[str]:
    """
    Canonical string form of an answer value.

    - ``None`` stays ``None`` and never matches anything
    - booleans become ``"true"`` / ``"false"``
    - integral numbers become their integer form (``3.0`` -> ``"3"``)
    - other floats use ``repr`` (shortest round-tripping form)
    - strings are stripped; ``"True"``/``"FALSE"`` etc. are lower-cased so
      they match boolean answer keys
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    text = str(value).strip()
    if text.lower() in _BOOLEAN_WORDS:
        return text.lower()
    return text


def answers_match(given: Any, expected: Any) -> bool:
    normalized = normalize_answer(given)
    return normalized is not None and normalized == normalize_answer(expected)


def score_percent(earned: float, possible: float) -> int:
    if possible <= 0:
        return 0
    ratio = Decimal(str(earned)) * 100 / Decimal(str(possible))
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class GradingResult:
    answers: List[AttemptAnswer] = field(default_factory=list)
    earned: float = 0
    possible: float = 0
    score_percent: int = 0
    passed: bool = False

    @property
    def correct_count(self) -> int:
        return sum(1 for a in self.answers if a.is_correct)


def grade(
    question_order: Sequence[str],
    questions: Mapping[str, Question],
    submitted: Mapping[str, Any],
    passing_score: int
) -> GradingResult:
    """
    Score a submission.

    Args:
        question_order: IDs of the questions presented in the attempt
        questions: Question Store lookup for those IDs
        submitted: question ID -> given answer; unknown IDs are ignored
        passing_score: minimum ``score_percent`` to pass

    Returns:
        The annotated answers (one per presented question) and totals
    """
    result = GradingResult()

    for question_id in question_order:
        question = questions.get(question_id)
        if question is None:
            continue

        given = submitted.get(question_id)
        correct = answers_match(given, question.correct_answer)
        awarded = question.points if correct else 0

        result.possible += question.points
        result.earned += awarded
        result.answers.append(AttemptAnswer(
            question_id=question_id,
            given_answer=given,
            is_correct=correct,
            points_awarded=awarded
        ))

    result.score_percent = score_percent(result.earned, result.possible)
    result.passed = result.score_percent >= passing_score
    return result


def build_detail(answers: Sequence[AttemptAnswer], questions: Mapping[str, Question]) -> List[Dict[str, Any]]:
    """Per-question detail; only built when the reveal policy allows it."""
    detail = []
    for answer in answers:
        question = questions.get(answer.question_id)
        detail.append({
            "question_id": answer.question_id,
            "prompt": question.prompt if question else None,
            "given_answer": answer.given_answer,
            "correct_answer": question.correct_answer if question else None,
            "is_correct": answer.is_correct,
            "points_awarded": answer.points_awarded,
            "explanation": question.explanation if question else None
        })
    return detail
