"""
Question domain module.

This module contains the domain model and repositories for the reusable
questions referenced by assessment definitions.
"""

from .model import Question, QuestionType, Difficulty, ANSWER_KEY_FIELDS
from .repository import QuestionRepository
from .memory_repository import MemoryQuestionRepository

__all__ = [
    'Question',
    'QuestionType',
    'Difficulty',
    'ANSWER_KEY_FIELDS',
    'QuestionRepository',
    'MemoryQuestionRepository',
]
