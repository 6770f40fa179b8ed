"""
Assessment Repositories

Storage interfaces for assessment definitions and the attempt ledger.

Implementations must uphold two guarantees the engine depends on:

- ``AttemptRepository.create`` refuses a second in-progress attempt for the
  same (definition, participant) pair and a duplicate attempt number, raising
  ``ConflictError``.
- ``AttemptRepository.finalize`` is a compare-and-swap on "still in
  progress"; a second finalization raises ``AlreadySubmittedError``.
"""

import datetime
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple

from exam_engine.assessments.models import AssessmentDefinition, Attempt


@dataclass
class DefinitionFilter:
    """Criteria for listing definitions; None means "don't filter"."""
    course_ref: Optional[str] = None
    published: Optional[bool] = None
    active: Optional[bool] = True
    role: Optional[str] = None


class AssessmentRepository(ABC):
    """Repository interface for assessment definitions."""

    @abstractmethod
    async def get_by_id(self, definition_id: str) -> Optional[AssessmentDefinition]:
        """
        Retrieve a definition by its ID.

        Returns:
            The definition if found, None otherwise
        """
        pass

    @abstractmethod
    async def save(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        """Create or replace a definition."""
        pass

    @abstractmethod
    async def find(
        self,
        criteria: DefinitionFilter,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[AssessmentDefinition], int]:
        """
        Find definitions matching ``criteria``, newest first.

        Returns:
            (page of definitions, total number of matches)
        """
        pass

    @abstractmethod
    async def find_past_closing(self, now: datetime.datetime) -> List[AssessmentDefinition]:
        """Active definitions not yet marked closed whose ``closes_at`` is before ``now``."""
        pass

    @abstractmethod
    async def find_timed_active(self) -> List[AssessmentDefinition]:
        """Active definitions that carry a time limit."""
        pass


class AttemptRepository(ABC):
    """Repository interface for the attempt ledger."""

    @abstractmethod
    async def get_by_id(self, attempt_id: str) -> Optional[Attempt]:
        pass

    @abstractmethod
    async def get_in_progress(self, definition_id: str, participant_id: str) -> Optional[Attempt]:
        """The sole in-progress attempt for the pair, if any."""
        pass

    @abstractmethod
    async def count_for_participant(self, definition_id: str, participant_id: str) -> int:
        """Number of attempts (any state) the participant has made."""
        pass

    @abstractmethod
    async def count_for_definition(self, definition_id: str) -> int:
        pass

    @abstractmethod
    async def create(self, attempt: Attempt) -> Attempt:
        """
        Persist a new in-progress attempt.

        Raises:
            ConflictError: an in-progress attempt already exists for the pair,
                or the attempt number is already taken
        """
        pass

    @abstractmethod
    async def finalize(self, attempt: Attempt) -> Attempt:
        """
        Write the final state of an attempt, only if it is still in progress.

        Raises:
            AlreadySubmittedError: the attempt was finalized concurrently
        """
        pass

    @abstractmethod
    async def list_for_participant(self, definition_id: str, participant_id: str) -> List[Attempt]:
        """All of a participant's attempts, highest attempt number first."""
        pass

    @abstractmethod
    async def list_for_definition(
        self,
        definition_id: str,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Attempt], int]:
        """
        A page of every attempt against a definition, most recent first.

        Returns:
            (page of attempts, total count)
        """
        pass

    @abstractmethod
    async def list_in_progress(self, definition_id: str) -> List[Attempt]:
        pass
