"""
SQL Assessment Repositories

SQLAlchemy (asyncio) implementations of the definition and attempt
repositories.

Concurrency guarantees come from the schema and the statements, not from the
process: a partial unique index allows one ``finished_at IS NULL`` row per
(definition, participant), and finalization is a conditional UPDATE whose
row count tells whether this caller won.
"""

import contextlib
import datetime
import logging
from typing import AsyncIterator, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from exam_engine.assessments.models import AssessmentDefinition, Attempt, AttemptAnswer
from exam_engine.assessments.repositories import (
    AssessmentRepository,
    AttemptRepository,
    DefinitionFilter
)
from exam_engine.common.exceptions import AlreadySubmittedError, ConflictError, DatabaseError
from exam_engine.database.models import AssessmentDefinitionRecord, AttemptRecord

logger = logging.getLogger(__name__)


def _encode_roles(roles: List[str]) -> str:
    return "," + ",".join(roles) + ","


def _decode_roles(value: str) -> List[str]:
    return [role for role in (value or "").split(",") if role]


def _definition_to_domain(record: AssessmentDefinitionRecord) -> AssessmentDefinition:
    return AssessmentDefinition(
        definition_id=record.definition_id,
        title=record.title,
        description=record.description,
        instructions=record.instructions,
        question_refs=list(record.question_refs or []),
        course_ref=record.course_ref,
        allowed_roles=_decode_roles(record.allowed_roles),
        attempts_allowed=record.attempts_allowed,
        time_limit_minutes=record.time_limit_minutes,
        opens_at=record.opens_at,
        closes_at=record.closes_at,
        shuffle_questions=record.shuffle_questions,
        shuffle_choices=record.shuffle_choices,
        reveal_policy=record.reveal_policy,
        passing_score=record.passing_score,
        grade_weight=record.grade_weight,
        published=record.published,
        active=record.active,
        closed=record.closed,
        creator_id=record.creator_id,
        created_at=record.created_at,
        updated_at=record.updated_at
    )


def _definition_to_record(definition: AssessmentDefinition) -> AssessmentDefinitionRecord:
    return AssessmentDefinitionRecord(
        definition_id=definition.definition_id,
        title=definition.title,
        description=definition.description,
        instructions=definition.instructions,
        question_refs=list(definition.question_refs),
        course_ref=definition.course_ref,
        allowed_roles=_encode_roles(definition.allowed_roles),
        attempts_allowed=definition.attempts_allowed,
        time_limit_minutes=definition.time_limit_minutes,
        opens_at=definition.opens_at,
        closes_at=definition.closes_at,
        shuffle_questions=definition.shuffle_questions,
        shuffle_choices=definition.shuffle_choices,
        reveal_policy=definition.reveal_policy.value,
        passing_score=definition.passing_score,
        grade_weight=definition.grade_weight,
        published=definition.published,
        active=definition.active,
        closed=definition.closed,
        creator_id=definition.creator_id,
        created_at=definition.created_at,
        updated_at=definition.updated_at
    )


def _attempt_to_domain(record: AttemptRecord) -> Attempt:
    return Attempt(
        attempt_id=record.attempt_id,
        definition_id=record.definition_id,
        participant_id=record.participant_id,
        attempt_number=record.attempt_number,
        started_at=record.started_at,
        question_order=list(record.question_order or []),
        choice_orders={k: list(v) for k, v in (record.choice_orders or {}).items()},
        answers=[AttemptAnswer.from_dict(a) for a in (record.answers or [])],
        score_percent=record.score_percent,
        passed=record.passed,
        finished_at=record.finished_at,
        elapsed_seconds=record.elapsed_seconds,
        timed_out=record.timed_out,
        origin_ip=record.origin_ip
    )


class _SqlRepository:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @contextlib.asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Open a session; unexpected SQLAlchemy failures surface as DatabaseError."""
        async with self._session_factory() as session:
            try:
                yield session
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Database failure during {operation}: {e}")
                raise DatabaseError(f"{operation} failed", e) from e


class SqlAssessmentRepository(_SqlRepository, AssessmentRepository):
    """Definition store backed by ``assessment_definitions``."""

    async def get_by_id(self, definition_id: str) -> Optional[AssessmentDefinition]:
        async with self._session("load assessment") as session:
            record = await session.get(AssessmentDefinitionRecord, definition_id)
            return _definition_to_domain(record) if record else None

    async def save(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        async with self._session("save assessment") as session:
            await session.merge(_definition_to_record(definition))
            await session.commit()
        return definition

    async def find(
        self,
        criteria: DefinitionFilter,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[AssessmentDefinition], int]:
        conditions = []
        if criteria.course_ref is not None:
            conditions.append(AssessmentDefinitionRecord.course_ref == criteria.course_ref)
        if criteria.published is not None:
            conditions.append(AssessmentDefinitionRecord.published == criteria.published)
        if criteria.active is not None:
            conditions.append(AssessmentDefinitionRecord.active == criteria.active)
        if criteria.role is not None:
            conditions.append(AssessmentDefinitionRecord.allowed_roles.like(f"%,{criteria.role},%"))

        async with self._session("list assessments") as session:
            total = await session.scalar(
                select(func.count()).select_from(AssessmentDefinitionRecord).where(*conditions)
            )
            result = await session.execute(
                select(AssessmentDefinitionRecord)
                .where(*conditions)
                .order_by(AssessmentDefinitionRecord.created_at.desc())
                .offset(offset)
                .limit(limit)
            )
            return [_definition_to_domain(r) for r in result.scalars()], int(total or 0)

    async def find_past_closing(self, now: datetime.datetime) -> List[AssessmentDefinition]:
        async with self._session("find closable assessments") as session:
            result = await session.execute(
                select(AssessmentDefinitionRecord).where(
                    AssessmentDefinitionRecord.active.is_(True),
                    AssessmentDefinitionRecord.closed.is_(False),
                    AssessmentDefinitionRecord.closes_at.is_not(None),
                    AssessmentDefinitionRecord.closes_at < now
                )
            )
            return [_definition_to_domain(r) for r in result.scalars()]

    async def find_timed_active(self) -> List[AssessmentDefinition]:
        async with self._session("find timed assessments") as session:
            result = await session.execute(
                select(AssessmentDefinitionRecord).where(
                    AssessmentDefinitionRecord.active.is_(True),
                    AssessmentDefinitionRecord.time_limit_minutes.is_not(None)
                )
            )
            return [_definition_to_domain(r) for r in result.scalars()]


class SqlAttemptRepository(_SqlRepository, AttemptRepository):
    """Attempt ledger backed by ``attempts``."""

    async def get_by_id(self, attempt_id: str) -> Optional[Attempt]:
        async with self._session("load attempt") as session:
            record = await session.get(AttemptRecord, attempt_id)
            return _attempt_to_domain(record) if record else None

    async def get_in_progress(self, definition_id: str, participant_id: str) -> Optional[Attempt]:
        async with self._session("load in-progress attempt") as session:
            result = await session.execute(
                select(AttemptRecord).where(
                    AttemptRecord.definition_id == definition_id,
                    AttemptRecord.participant_id == participant_id,
                    AttemptRecord.finished_at.is_(None)
                )
            )
            record = result.scalars().first()
            return _attempt_to_domain(record) if record else None

    async def count_for_participant(self, definition_id: str, participant_id: str) -> int:
        async with self._session("count attempts") as session:
            total = await session.scalar(
                select(func.count()).select_from(AttemptRecord).where(
                    AttemptRecord.definition_id == definition_id,
                    AttemptRecord.participant_id == participant_id
                )
            )
            return int(total or 0)

    async def count_for_definition(self, definition_id: str) -> int:
        async with self._session("count attempts") as session:
            total = await session.scalar(
                select(func.count()).select_from(AttemptRecord).where(
                    AttemptRecord.definition_id == definition_id
                )
            )
            return int(total or 0)

    async def create(self, attempt: Attempt) -> Attempt:
        async with self._session("create attempt") as session:
            session.add(AttemptRecord(
                attempt_id=attempt.attempt_id,
                definition_id=attempt.definition_id,
                participant_id=attempt.participant_id,
                attempt_number=attempt.attempt_number,
                answers=[],
                question_order=list(attempt.question_order),
                choice_orders=dict(attempt.choice_orders),
                started_at=attempt.started_at,
                timed_out=False,
                origin_ip=attempt.origin_ip
            ))
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.warning(
                    f"Attempt insert rejected for definition {attempt.definition_id}, "
                    f"participant {attempt.participant_id}: {e.orig}"
                )
                raise ConflictError(
                    "A concurrent attempt was started for this assessment",
                    {"definition_id": attempt.definition_id}
                ) from e
        return attempt

    async def finalize(self, attempt: Attempt) -> Attempt:
        async with self._session("finalize attempt") as session:
            result = await session.execute(
                update(AttemptRecord)
                .where(
                    AttemptRecord.attempt_id == attempt.attempt_id,
                    AttemptRecord.finished_at.is_(None)
                )
                .values(
                    answers=[a.to_dict() for a in attempt.answers],
                    score_percent=attempt.score_percent,
                    passed=attempt.passed,
                    finished_at=attempt.finished_at,
                    elapsed_seconds=attempt.elapsed_seconds,
                    timed_out=attempt.timed_out
                )
            )
            await session.commit()
            if result.rowcount != 1:
                raise AlreadySubmittedError(attempt.attempt_id)
        return attempt

    async def list_for_participant(self, definition_id: str, participant_id: str) -> List[Attempt]:
        async with self._session("list participant attempts") as session:
            result = await session.execute(
                select(AttemptRecord)
                .where(
                    AttemptRecord.definition_id == definition_id,
                    AttemptRecord.participant_id == participant_id
                )
                .order_by(AttemptRecord.attempt_number.desc())
            )
            return [_attempt_to_domain(r) for r in result.scalars()]

    async def list_for_definition(
        self,
        definition_id: str,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Attempt], int]:
        async with self._session("list definition attempts") as session:
            total = await session.scalar(
                select(func.count()).select_from(AttemptRecord).where(
                    AttemptRecord.definition_id == definition_id
                )
            )
            result = await session.execute(
                select(AttemptRecord)
                .where(AttemptRecord.definition_id == definition_id)
                .order_by(AttemptRecord.started_at.desc())
                .offset(offset)
                .limit(limit)
            )
            return [_attempt_to_domain(r) for r in result.scalars()], int(total or 0)

    async def list_in_progress(self, definition_id: str) -> List[Attempt]:
        async with self._session("list in-progress attempts") as session:
            result = await session.execute(
                select(AttemptRecord).where(
                    AttemptRecord.definition_id == definition_id,
                    AttemptRecord.finished_at.is_(None)
                )
            )
            return [_attempt_to_domain(r) for r in result.scalars()]
