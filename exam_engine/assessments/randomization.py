"""
Question randomization and presentation.

The order is generated once, when an attempt is created, and stored on the
attempt as question IDs plus, per choice-bearing question, a permutation of
choice indexes. Every later materialization replays the stored order.
"""

from typing import Any, Dict, List, Mapping, Sequence, Tuple

from exam_engine.assessments.models import AssessmentDefinition, Attempt
from exam_engine.common.shuffler import Shuffler
from exam_engine.domain.questions import Question


def generate_order(
    definition: AssessmentDefinition,
    questions: Mapping[str, Question],
    shuffler: Shuffler
) -> Tuple[List[str], Dict[str, List[int]]]:
    """
    Build the presentation order for a new attempt.

    Returns:
        (question IDs in presentation order, question ID -> choice permutation)
    """
    question_order = [qid for qid in definition.question_refs if qid in questions]
    if definition.shuffle_questions:
        question_order = shuffler.shuffle(question_order)

    choice_orders: Dict[str, List[int]] = {}
    for question_id in question_order:
        question = questions[question_id]
        if not question.has_choices:
            continue
        indexes = list(range(len(question.choices)))
        choice_orders[question_id] = shuffler.shuffle(indexes) if definition.shuffle_choices else indexes

    return question_order, choice_orders


def present_question(question: Question, choice_order: Sequence[int] = ()) -> Dict[str, Any]:
    """
    Participant-facing view of a question.

    Built from an explicit allow-list so answer-key fields can never slip in.
    """
    choices = None
    if question.has_choices:
        order = choice_order if len(choice_order) == len(question.choices) else range(len(question.choices))
        choices = [question.choices[i] for i in order]
    return {
        "question_id": question.question_id,
        "prompt": question.prompt,
        "question_type": question.question_type.value,
        "choices": choices,
        "points": question.points
    }


def materialize(attempt: Attempt, questions: Mapping[str, Question]) -> List[Dict[str, Any]]:
    """Replay an attempt's stored order against the Question Store."""
    return [
        present_question(questions[question_id], attempt.choice_orders.get(question_id, ()))
        for question_id in attempt.question_order
        if question_id in questions
    ]
