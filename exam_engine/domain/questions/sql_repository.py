"""
SQL Question Repository Module

SQLAlchemy-backed implementation of the QuestionRepository interface.
"""

import logging
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from exam_engine.common.exceptions import DatabaseError
from exam_engine.database.models import QuestionRecord
from .model import Question
from .repository import QuestionRepository

logger = logging.getLogger(__name__)


def _to_domain(record: QuestionRecord) -> Question:
    return Question(
        question_id=record.question_id,
        prompt=record.prompt,
        question_type=record.question_type,
        correct_answer=(record.correct_answer or {}).get("value"),
        points=record.points,
        choices=record.choices,
        explanation=record.explanation,
        tags=list(record.tags or []),
        difficulty=record.difficulty,
        active=record.active,
        creator_id=record.creator_id,
        created_at=record.created_at,
        updated_at=record.updated_at
    )


class SqlQuestionRepository(QuestionRepository):
    """Question Store backed by the ``questions`` table."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get_by_id(self, question_id: str) -> Optional[Question]:
        try:
            async with self._session_factory() as session:
                record = await session.get(QuestionRecord, question_id)
                return _to_domain(record) if record else None
        except SQLAlchemyError as e:
            raise DatabaseError(f"failed to load question {question_id}", e) from e

    async def get_many(self, question_ids: Iterable[str]) -> Dict[str, Question]:
        ids = list(question_ids)
        if not ids:
            return {}
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(QuestionRecord).where(QuestionRecord.question_id.in_(ids))
                )
                return {record.question_id: _to_domain(record) for record in result.scalars()}
        except SQLAlchemyError as e:
            raise DatabaseError("failed to load questions", e) from e

    async def save(self, question: Question) -> Question:
        try:
            async with self._session_factory() as session:
                await session.merge(QuestionRecord(
                    question_id=question.question_id,
                    prompt=question.prompt,
                    question_type=question.question_type.value,
                    choices=question.choices,
                    correct_answer={"value": question.correct_answer},
                    points=question.points,
                    explanation=question.explanation,
                    tags=list(question.tags),
                    difficulty=question.difficulty.value,
                    active=question.active,
                    creator_id=question.creator_id,
                    created_at=question.created_at,
                    updated_at=question.updated_at
                ))
                await session.commit()
        except SQLAlchemyError as e:
            raise DatabaseError(f"failed to save question {question.question_id}", e) from e
        return question
