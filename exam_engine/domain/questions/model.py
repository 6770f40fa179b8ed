"""
Question Domain Model Module

This module defines the reusable question entity referenced by assessment
definitions. Questions are immutable from the engine's point of view; they
are created and edited by authoring tooling only.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from exam_engine.common.clock import to_utc_naive, utc_now

AnswerValue = Union[str, int, float, bool]

# Fields that reveal the answer key; stripped from every non-administrator payload.
ANSWER_KEY_FIELDS = ("correct_answer", "explanation")


class QuestionType(str, enum.Enum):
    """Supported question types."""
    SINGLE_CHOICE = "single-choice"
    TRUE_FALSE = "true-false"
    FREE_TEXT = "free-text"


class Difficulty(str, enum.Enum):
    """Difficulty label attached by authors."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, str):
        return to_utc_naive(datetime.fromisoformat(value))
    if isinstance(value, datetime):
        return to_utc_naive(value)
    return utc_now()


@dataclass
class Question:
    """
    A reusable question definition.

    Attributes:
        question_id: Unique identifier for the question
        prompt: The question text
        question_type: single-choice, true-false or free-text
        correct_answer: Expected answer; compared after string normalization
        points: Points awarded for a correct answer (>= 0)
        choices: Ordered answer options for choice-bearing questions
        explanation: Optional explanation shown when answers are revealed
        tags: Free-form tags
        difficulty: Author-assigned difficulty
        active: Whether the question is still in circulation
        creator_id: Author identifier
        created_at: When the question was created
        updated_at: When the question was last updated
    """
    question_id: str
    prompt: str
    question_type: QuestionType
    correct_answer: AnswerValue
    points: float = 1
    choices: Optional[List[str]] = None
    explanation: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    difficulty: Difficulty = Difficulty.MEDIUM
    active: bool = True
    creator_id: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if isinstance(self.question_type, str) and not isinstance(self.question_type, QuestionType):
            self.question_type = QuestionType(self.question_type)
        if isinstance(self.difficulty, str) and not isinstance(self.difficulty, Difficulty):
            self.difficulty = Difficulty(self.difficulty)
        if not self.prompt:
            raise ValueError("Question prompt is required")
        if self.points is None or self.points < 0:
            raise ValueError("Question points cannot be negative")
        if self.question_type == QuestionType.TRUE_FALSE and not self.choices:
            self.choices = ["true", "false"]

    @classmethod
    def create(
        cls,
        prompt: str,
        question_type: Union[QuestionType, str],
        correct_answer: AnswerValue,
        points: float = 1,
        choices: Optional[List[str]] = None,
        explanation: Optional[str] = None,
        tags: Optional[List[str]] = None,
        difficulty: Union[Difficulty, str] = Difficulty.MEDIUM,
        creator_id: Optional[str] = None
    ) -> 'Question':
        """
        Create a new question with a generated ID.

        Returns:
            A new Question instance
        """
        return cls(
            question_id=str(uuid.uuid4()),
            prompt=prompt,
            question_type=question_type,
            correct_answer=correct_answer,
            points=points,
            choices=choices,
            explanation=explanation,
            tags=tags or [],
            difficulty=difficulty,
            creator_id=creator_id
        )

    @property
    def has_choices(self) -> bool:
        return bool(self.choices)

    def to_dict(self, include_answer_key: bool = True) -> Dict[str, Any]:
        """
        Convert the question to a dictionary.

        Args:
            include_answer_key: When False, ``correct_answer`` and
                ``explanation`` are left out entirely (not set to None)

        Returns:
            Dictionary representation of the question
        """
        result = {
            'question_id': self.question_id,
            'prompt': self.prompt,
            'question_type': self.question_type.value,
            'choices': list(self.choices) if self.choices is not None else None,
            'correct_answer': self.correct_answer,
            'points': self.points,
            'explanation': self.explanation,
            'tags': list(self.tags),
            'difficulty': self.difficulty.value,
            'active': self.active,
            'creator_id': self.creator_id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat()
        }
        if not include_answer_key:
            for key in ANSWER_KEY_FIELDS:
                result.pop(key, None)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Question':
        """
        Create a Question from a dictionary.

        Args:
            data: Dictionary containing question data

        Returns:
            A new Question instance
        """
        return cls(
            question_id=data.get('question_id') or str(uuid.uuid4()),
            prompt=data['prompt'],
            question_type=data['question_type'],
            correct_answer=data['correct_answer'],
            points=data.get('points', 1),
            choices=data.get('choices'),
            explanation=data.get('explanation'),
            tags=list(data.get('tags') or []),
            difficulty=data.get('difficulty', Difficulty.MEDIUM.value),
            active=data.get('active', True),
            creator_id=data.get('creator_id'),
            created_at=_parse_datetime(data.get('created_at')),
            updated_at=_parse_datetime(data.get('updated_at'))
        )
