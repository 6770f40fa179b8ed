"""
Shared fixtures for the exam engine test suite.
"""

import datetime

import pytest

from exam_engine.assessments.memory_repository import MemoryAssessmentRepository, MemoryAttemptRepository
from exam_engine.assessments.models import AssessmentDefinition, RevealPolicy
from exam_engine.assessments.service import AssessmentEngine
from exam_engine.common.auth.user import Participant
from exam_engine.common.clock import FixedClock
from exam_engine.common.shuffler import SeededShuffler
from exam_engine.domain.questions import MemoryQuestionRepository, Question

NOW = datetime.datetime(2026, 3, 2, 9, 0, 0)


def build_questions():
    return [
        Question(
            question_id="q-capital",
            prompt="What is the capital of France?",
            question_type="single-choice",
            choices=["Paris", "Lyon", "Marseille", "Nice"],
            correct_answer="Paris",
            points=5,
            explanation="Paris has been the capital since 987."
        ),
        Question(
            question_id="q-orbit",
            prompt="The Earth orbits the Sun.",
            question_type="true-false",
            correct_answer=True,
            points=5,
            explanation="Heliocentrism."
        ),
        Question(
            question_id="q-hexagon",
            prompt="How many sides does a hexagon have?",
            question_type="free-text",
            correct_answer=6,
            points=2,
            explanation="Hex means six."
        ),
        Question(
            question_id="q-survey",
            prompt="Did you enjoy the course?",
            question_type="free-text",
            correct_answer="yes",
            points=0
        ),
    ]


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def question_repository():
    return MemoryQuestionRepository(build_questions())


@pytest.fixture
def assessment_repository():
    return MemoryAssessmentRepository()


@pytest.fixture
def attempt_repository():
    return MemoryAttemptRepository()


@pytest.fixture
def engine(question_repository, assessment_repository, attempt_repository, clock):
    return AssessmentEngine(
        question_repository=question_repository,
        assessment_repository=assessment_repository,
        attempt_repository=attempt_repository,
        clock=clock,
        shuffler=SeededShuffler(7),
        grace_minutes=1
    )


@pytest.fixture
def make_definition():
    """Factory for published definitions over the capital/orbit questions."""
    def factory(**overrides) -> AssessmentDefinition:
        values = dict(
            definition_id="exam-1",
            title="General knowledge",
            question_refs=["q-capital", "q-orbit"],
            attempts_allowed=1,
            time_limit_minutes=None,
            reveal_policy=RevealPolicy.IMMEDIATE,
            passing_score=70,
            published=True,
            created_at=NOW - datetime.timedelta(days=7),
            updated_at=NOW - datetime.timedelta(days=7)
        )
        values.update(overrides)
        return AssessmentDefinition(**values)
    return factory


@pytest.fixture
def student():
    return Participant(id="student-1", role="student")


@pytest.fixture
def other_student():
    return Participant(id="student-2", role="student")


@pytest.fixture
def guest():
    return Participant(id="guest-1", role="guest")


@pytest.fixture
def admin():
    return Participant(id="admin-1", role="admin", can_override=True)
