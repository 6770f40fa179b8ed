"""
SQLAlchemy ORM models for the exam engine.

- QuestionRecord: reusable questions (the Question Store)
- AssessmentDefinitionRecord: administrator-authored assessment definitions
- AttemptRecord: the attempt ledger

The attempts table carries the two storage-level guarantees the engine relies
on: attempt numbers are unique per (definition, participant), and at most one
row per (definition, participant) may have ``finished_at`` unset.
"""

from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text,
    UniqueConstraint, text
)

from exam_engine.database.base import ModelBase


class QuestionRecord(ModelBase):
    __tablename__ = "questions"

    question_id = Column(String(64), primary_key=True)
    prompt = Column(Text, nullable=False)
    question_type = Column(String(32), nullable=False, index=True)
    choices = Column(JSON, nullable=True)
    # Wrapped as {"value": ...} so str/number/bool survive the round trip.
    correct_answer = Column(JSON, nullable=False)
    points = Column(Float, nullable=False, default=1)
    explanation = Column(Text, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    difficulty = Column(String(16), nullable=False, default="medium", index=True)
    active = Column(Boolean, nullable=False, default=True)
    creator_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class AssessmentDefinitionRecord(ModelBase):
    __tablename__ = "assessment_definitions"

    definition_id = Column(String(64), primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    instructions = Column(Text, nullable=True)
    question_refs = Column(JSON, nullable=False)
    course_ref = Column(String(64), nullable=True, index=True)
    # Stored as ",student,admin," so role membership is a portable LIKE.
    allowed_roles = Column(String(255), nullable=False)
    attempts_allowed = Column(Integer, nullable=False, default=1)
    time_limit_minutes = Column(Integer, nullable=True)
    opens_at = Column(DateTime, nullable=True)
    closes_at = Column(DateTime, nullable=True)
    shuffle_questions = Column(Boolean, nullable=False, default=True)
    shuffle_choices = Column(Boolean, nullable=False, default=True)
    reveal_policy = Column(String(16), nullable=False, default="after-close")
    passing_score = Column(Integer, nullable=False, default=70)
    grade_weight = Column(Float, nullable=True)
    published = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    closed = Column(Boolean, nullable=False, default=False)
    creator_id = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_assessment_definitions_published_active", "published", "active"),
    )


class AttemptRecord(ModelBase):
    __tablename__ = "attempts"

    attempt_id = Column(String(64), primary_key=True)
    definition_id = Column(
        String(64), ForeignKey("assessment_definitions.definition_id"), nullable=False
    )
    participant_id = Column(String(64), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False)
    answers = Column(JSON, nullable=False, default=list)
    question_order = Column(JSON, nullable=False, default=list)
    choice_orders = Column(JSON, nullable=False, default=dict)
    score_percent = Column(Integer, nullable=True)
    passed = Column(Boolean, nullable=True)
    started_at = Column(DateTime, nullable=False)
    finished_at = Column(DateTime, nullable=True)
    elapsed_seconds = Column(Integer, nullable=True)
    timed_out = Column(Boolean, nullable=False, default=False)
    origin_ip = Column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "definition_id", "participant_id", "attempt_number",
            name="uq_attempts_definition_participant_number"
        ),
        Index(
            "uq_attempts_one_in_progress",
            "definition_id", "participant_id",
            unique=True,
            sqlite_where=text("finished_at IS NULL"),
            postgresql_where=text("finished_at IS NULL")
        ),
        Index("ix_attempts_definition_started", "definition_id", "started_at"),
    )
