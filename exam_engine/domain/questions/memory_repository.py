"""
Memory Question Repository Module

This module provides an in-memory implementation of the QuestionRepository
interface for development and testing purposes.
"""

import copy
import logging
from typing import Dict, Iterable, List, Optional

from .model import Question
from .repository import QuestionRepository

# Setup logging
logger = logging.getLogger(__name__)


class MemoryQuestionRepository(QuestionRepository):
    """
    In-memory implementation of the QuestionRepository.

    Questions are copied on the way in and out so callers cannot mutate the
    stored definitions behind the repository's back.
    """

    def __init__(self, initial_data: Optional[List[Question]] = None):
        """
        Initialize the repository with optional initial data.

        Args:
            initial_data: Optional list of Question entities to initialize with
        """
        self._questions: Dict[str, Question] = {}

        if initial_data:
            for question in initial_data:
                self._questions[question.question_id] = copy.deepcopy(question)

    async def get_by_id(self, question_id: str) -> Optional[Question]:
        question = self._questions.get(question_id)
        return copy.deepcopy(question) if question else None

    async def get_many(self, question_ids: Iterable[str]) -> Dict[str, Question]:
        return {
            question_id: copy.deepcopy(self._questions[question_id])
            for question_id in question_ids
            if question_id in self._questions
        }

    async def save(self, question: Question) -> Question:
        self._questions[question.question_id] = copy.deepcopy(question)
        logger.debug(f"Stored question {question.question_id}")
        return question
