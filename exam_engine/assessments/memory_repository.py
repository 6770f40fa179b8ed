"""
Memory Assessment Repositories

In-memory implementations of the assessment and attempt repositories for
development and testing. Each mutating method finishes without awaiting, so
under a single event loop its check-then-write is atomic.
"""

import copy
import datetime
import logging
from typing import Dict, List, Optional, Tuple

from exam_engine.assessments.models import AssessmentDefinition, Attempt
from exam_engine.assessments.repositories import (
    AssessmentRepository,
    AttemptRepository,
    DefinitionFilter
)
from exam_engine.common.exceptions import AlreadySubmittedError, ConflictError

logger = logging.getLogger(__name__)


class MemoryAssessmentRepository(AssessmentRepository):
    """Dict-backed definition store."""

    def __init__(self, initial_data: Optional[List[AssessmentDefinition]] = None):
        self._definitions: Dict[str, AssessmentDefinition] = {}
        for definition in initial_data or []:
            self._definitions[definition.definition_id] = copy.deepcopy(definition)

    async def get_by_id(self, definition_id: str) -> Optional[AssessmentDefinition]:
        definition = self._definitions.get(definition_id)
        return copy.deepcopy(definition) if definition else None

    async def save(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        self._definitions[definition.definition_id] = copy.deepcopy(definition)
        return definition

    async def find(
        self,
        criteria: DefinitionFilter,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[AssessmentDefinition], int]:
        matches = [
            d for d in self._definitions.values()
            if (criteria.course_ref is None or d.course_ref == criteria.course_ref)
            and (criteria.published is None or d.published == criteria.published)
            and (criteria.active is None or d.active == criteria.active)
            and (criteria.role is None or criteria.role in d.allowed_roles)
        ]
        matches.sort(key=lambda d: d.created_at, reverse=True)
        page = matches[offset:offset + limit]
        return [copy.deepcopy(d) for d in page], len(matches)

    async def find_past_closing(self, now: datetime.datetime) -> List[AssessmentDefinition]:
        return [
            copy.deepcopy(d) for d in self._definitions.values()
            if d.active and not d.closed and d.closes_at is not None and d.closes_at < now
        ]

    async def find_timed_active(self) -> List[AssessmentDefinition]:
        return [
            copy.deepcopy(d) for d in self._definitions.values()
            if d.active and d.time_limit_minutes
        ]


class MemoryAttemptRepository(AttemptRepository):
    """Dict-backed attempt ledger."""

    def __init__(self):
        self._attempts: Dict[str, Attempt] = {}

    def _for_pair(self, definition_id: str, participant_id: str) -> List[Attempt]:
        return [
            a for a in self._attempts.values()
            if a.definition_id == definition_id and a.participant_id == participant_id
        ]

    async def get_by_id(self, attempt_id: str) -> Optional[Attempt]:
        attempt = self._attempts.get(attempt_id)
        return copy.deepcopy(attempt) if attempt else None

    async def get_in_progress(self, definition_id: str, participant_id: str) -> Optional[Attempt]:
        for attempt in self._for_pair(definition_id, participant_id):
            if attempt.in_progress:
                return copy.deepcopy(attempt)
        return None

    async def count_for_participant(self, definition_id: str, participant_id: str) -> int:
        return len(self._for_pair(definition_id, participant_id))

    async def count_for_definition(self, definition_id: str) -> int:
        return sum(1 for a in self._attempts.values() if a.definition_id == definition_id)

    async def create(self, attempt: Attempt) -> Attempt:
        existing = self._for_pair(attempt.definition_id, attempt.participant_id)
        if any(a.in_progress for a in existing):
            raise ConflictError(
                "An attempt is already in progress for this assessment",
                {"definition_id": attempt.definition_id}
            )
        if any(a.attempt_number == attempt.attempt_number for a in existing):
            raise ConflictError(
                f"Attempt number {attempt.attempt_number} already exists",
                {"attempt_number": attempt.attempt_number}
            )
        self._attempts[attempt.attempt_id] = copy.deepcopy(attempt)
        return attempt

    async def finalize(self, attempt: Attempt) -> Attempt:
        stored = self._attempts.get(attempt.attempt_id)
        if stored is None or not stored.in_progress:
            raise AlreadySubmittedError(attempt.attempt_id)
        self._attempts[attempt.attempt_id] = copy.deepcopy(attempt)
        return attempt

    async def list_for_participant(self, definition_id: str, participant_id: str) -> List[Attempt]:
        attempts = sorted(
            self._for_pair(definition_id, participant_id),
            key=lambda a: a.attempt_number,
            reverse=True
        )
        return [copy.deepcopy(a) for a in attempts]

    async def list_for_definition(
        self,
        definition_id: str,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Attempt], int]:
        attempts = sorted(
            (a for a in self._attempts.values() if a.definition_id == definition_id),
            key=lambda a: a.started_at,
            reverse=True
        )
        return [copy.deepcopy(a) for a in attempts[offset:offset + limit]], len(attempts)

    async def list_in_progress(self, definition_id: str) -> List[Attempt]:
        return [
            copy.deepcopy(a) for a in self._attempts.values()
            if a.definition_id == definition_id and a.in_progress
        ]
