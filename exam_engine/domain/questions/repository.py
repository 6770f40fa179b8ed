"""
Question Repository Module

This module defines the repository interface the engine uses to look up
questions. From the engine's side the store is read-only; ``save`` exists
for authoring tooling and fixtures.
"""

import abc
import logging
from typing import Dict, Iterable, Optional

from .model import Question

# Setup logging
logger = logging.getLogger(__name__)


class QuestionRepository(abc.ABC):
    """
    Abstract base class for question repositories.

    This interface defines the contract for accessing and storing Question entities.
    """

    @abc.abstractmethod
    async def get_by_id(self, question_id: str) -> Optional[Question]:
        """
        Get a question by its ID.

        Args:
            question_id: The ID of the question to retrieve

        Returns:
            The Question entity if found, None otherwise
        """
        pass

    @abc.abstractmethod
    async def get_many(self, question_ids: Iterable[str]) -> Dict[str, Question]:
        """
        Look up a set of questions in one call.

        Args:
            question_ids: IDs to look up

        Returns:
            Mapping of ID to Question for every ID that exists; missing IDs
            are simply absent from the mapping
        """
        pass

    @abc.abstractmethod
    async def save(self, question: Question) -> Question:
        """
        Save a question, creating or replacing it.

        Args:
            question: The Question entity to save

        Returns:
            The saved Question entity
        """
        pass
