"""
Tests for the SQLAlchemy repositories against a throwaway SQLite database.
"""

import contextlib
import datetime

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from exam_engine.assessments.models import AssessmentDefinition, Attempt, AttemptAnswer, RevealPolicy
from exam_engine.assessments.repositories import DefinitionFilter
from exam_engine.assessments.service import AssessmentEngine
from exam_engine.assessments.sql_repository import SqlAssessmentRepository, SqlAttemptRepository
from exam_engine.common.auth.user import Participant
from exam_engine.common.clock import FixedClock
from exam_engine.common.exceptions import AlreadySubmittedError, ConflictError, NoActiveAttemptError
from exam_engine.common.shuffler import IdentityShuffler
from exam_engine.database.init_db import create_engine_for_url, create_schema
from exam_engine.database.models import AttemptRecord
from exam_engine.domain.questions import Question
from exam_engine.domain.questions.sql_repository import SqlQuestionRepository

NOW = datetime.datetime(2026, 3, 2, 9, 0, 0)


@contextlib.asynccontextmanager
async def sql_storage(tmp_path):
    db = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'exam.db'}")
    try:
        await create_schema(db)
        yield async_sessionmaker(db, expire_on_commit=False)
    finally:
        await db.dispose()


def _definition(**overrides):
    values = dict(
        definition_id="exam-1",
        title="Exam",
        question_refs=["q1", "q2"],
        published=True,
        attempts_allowed=3,
        created_at=NOW,
        updated_at=NOW
    )
    values.update(overrides)
    return AssessmentDefinition(**values)


def _attempt(number=1, attempt_id=None, participant_id="p-1", started_at=NOW):
    return Attempt(
        attempt_id=attempt_id or f"attempt-{participant_id}-{number}",
        definition_id="exam-1",
        participant_id=participant_id,
        attempt_number=number,
        started_at=started_at,
        question_order=["q2", "q1"],
        choice_orders={"q1": [1, 0]},
        origin_ip="127.0.0.1"
    )


def _finish(attempt, at):
    attempt.answers = [AttemptAnswer("q2", "x", False, 0), AttemptAnswer("q1", "B", True, 1)]
    attempt.score_percent = 50
    attempt.passed = False
    attempt.finished_at = at
    attempt.elapsed_seconds = int((at - attempt.started_at).total_seconds())
    return attempt


@pytest.mark.asyncio
async def test_definition_round_trip(tmp_path):
    async with sql_storage(tmp_path) as session_factory:
        repo = SqlAssessmentRepository(session_factory)
        definition = _definition(
            allowed_roles=["student", "instructor"],
            opens_at=NOW,
            closes_at=NOW + datetime.timedelta(days=1),
            reveal_policy=RevealPolicy.NEVER,
            grade_weight=12.5,
            course_ref="course-9"
        )
        await repo.save(definition)

        loaded = await repo.get_by_id("exam-1")
        assert loaded == definition
        assert await repo.get_by_id("missing") is None

        loaded.title = "Renamed"
        await repo.save(loaded)
        assert (await repo.get_by_id("exam-1")).title == "Renamed"


@pytest.mark.asyncio
async def test_find_filters(tmp_path):
    async with sql_storage(tmp_path) as session_factory:
        repo = SqlAssessmentRepository(session_factory)
        await repo.save(_definition(definition_id="a", allowed_roles=["student"], created_at=NOW))
        await repo.save(_definition(definition_id="b", allowed_roles=["instructor"],
                                    created_at=NOW + datetime.timedelta(hours=1)))
        await repo.save(_definition(definition_id="c", published=False,
                                    created_at=NOW + datetime.timedelta(hours=2)))
        await repo.save(_definition(definition_id="d", active=False,
                                    created_at=NOW + datetime.timedelta(hours=3)))

        found, total = await repo.find(DefinitionFilter())
        assert [d.definition_id for d in found] == ["c", "b", "a"]
        assert total == 3

        found, total = await repo.find(DefinitionFilter(published=True, role="student"))
        assert [d.definition_id for d in found] == ["a"]

        # role matching is on whole role names
        found, _ = await repo.find(DefinitionFilter(role="stud"))
        assert found == []

        found, total = await repo.find(DefinitionFilter(active=None), limit=2, offset=2)
        assert [d.definition_id for d in found] == ["b", "a"]
        assert total == 4


@pytest.mark.asyncio
async def test_bookkeeping_queries(tmp_path):
    async with sql_storage(tmp_path) as session_factory:
        repo = SqlAssessmentRepository(session_factory)
        await repo.save(_definition(definition_id="past", closes_at=NOW - datetime.timedelta(hours=1)))
        await repo.save(_definition(definition_id="done", closed=True, closes_at=NOW - datetime.timedelta(hours=1)))
        await repo.save(_definition(definition_id="future", closes_at=NOW + datetime.timedelta(hours=1)))
        await repo.save(_definition(definition_id="timed", time_limit_minutes=30))

        assert [d.definition_id for d in await repo.find_past_closing(NOW)] == ["past"]
        assert [d.definition_id for d in await repo.find_timed_active()] == ["timed"]


@pytest.mark.asyncio
async def test_one_in_progress_attempt_per_pair(tmp_path):
    async with sql_storage(tmp_path) as session_factory:
        await SqlAssessmentRepository(session_factory).save(_definition())
        repo = SqlAttemptRepository(session_factory)

        await repo.create(_attempt(1))
        with pytest.raises(ConflictError):
            await repo.create(_attempt(2))

        # another participant is unaffected
        await repo.create(_attempt(1, participant_id="p-2"))
        assert await repo.count_for_definition("exam-1") == 2

        in_progress = await repo.get_in_progress("exam-1", "p-1")
        assert in_progress.attempt_id == "attempt-p-1-1"
        assert in_progress.question_order == ["q2", "q1"]
        assert in_progress.choice_orders == {"q1": [1, 0]}


@pytest.mark.asyncio
async def test_attempt_numbers_are_unique(tmp_path):
    async with sql_storage(tmp_path) as session_factory:
        await SqlAssessmentRepository(session_factory).save(_definition())
        repo = SqlAttemptRepository(session_factory)

        first = await repo.create(_attempt(1))
        await repo.finalize(_finish(first, NOW + datetime.timedelta(minutes=5)))

        with pytest.raises(ConflictError):
            await repo.create(_attempt(1, attempt_id="again"))

        await repo.create(_attempt(2))
        assert await repo.count_for_participant("exam-1", "p-1") == 2


@pytest.mark.asyncio
async def test_finalize_is_compare_and_swap(tmp_path):
    async with sql_storage(tmp_path) as session_factory:
        await SqlAssessmentRepository(session_factory).save(_definition())
        repo = SqlAttemptRepository(session_factory)

        attempt = await repo.create(_attempt(1))
        await repo.finalize(_finish(attempt, NOW + datetime.timedelta(minutes=5)))

        late = _finish(await repo.get_by_id(attempt.attempt_id), NOW + datetime.timedelta(minutes=9))
        late.score_percent = 100
        with pytest.raises(AlreadySubmittedError):
            await repo.finalize(late)

        stored = await repo.get_by_id(attempt.attempt_id)
        assert stored.score_percent == 50
        assert stored.elapsed_seconds == 300
        assert stored.answers[1] == AttemptAnswer("q1", "B", True, 1)
        assert await repo.get_in_progress("exam-1", "p-1") is None


@pytest.mark.asyncio
async def test_attempt_listings(tmp_path):
    async with sql_storage(tmp_path) as session_factory:
        await SqlAssessmentRepository(session_factory).save(_definition())
        repo = SqlAttemptRepository(session_factory)

        first = await repo.create(_attempt(1))
        await repo.finalize(_finish(first, NOW + datetime.timedelta(minutes=1)))
        await repo.create(_attempt(2, started_at=NOW + datetime.timedelta(minutes=2)))
        await repo.create(_attempt(1, participant_id="p-2", started_at=NOW + datetime.timedelta(minutes=3)))

        mine = await repo.list_for_participant("exam-1", "p-1")
        assert [a.attempt_number for a in mine] == [2, 1]

        page, total = await repo.list_for_definition("exam-1", limit=2, offset=0)
        assert [a.participant_id for a in page] == ["p-2", "p-1"]
        assert total == 3

        in_progress = await repo.list_in_progress("exam-1")
        assert sorted(a.participant_id for a in in_progress) == ["p-1", "p-2"]

        async with session_factory() as session:
            record = await session.get(AttemptRecord, "attempt-p-1-1")
            assert record.to_dict()["score_percent"] == 50


@pytest.mark.asyncio
async def test_question_round_trip(tmp_path):
    async with sql_storage(tmp_path) as session_factory:
        repo = SqlQuestionRepository(session_factory)
        await repo.save(Question(question_id="q1", prompt="True?", question_type="true-false",
                                 correct_answer=True, points=2, tags=["basics"]))
        await repo.save(Question(question_id="q2", prompt="Seven?", question_type="free-text",
                                 correct_answer=7))

        found = await repo.get_many(["q1", "q2", "q3"])
        assert sorted(found) == ["q1", "q2"]
        assert found["q1"].correct_answer is True
        assert found["q1"].choices == ["true", "false"]
        assert found["q2"].correct_answer == 7
        assert (await repo.get_by_id("q1")).tags == ["basics"]
        assert await repo.get_many([]) == {}


@pytest.mark.asyncio
async def test_engine_on_sql_storage(tmp_path):
    async with sql_storage(tmp_path) as session_factory:
        questions = SqlQuestionRepository(session_factory)
        await questions.save(Question(question_id="q1", prompt="Pick B", question_type="single-choice",
                                      choices=["A", "B"], correct_answer="B", points=1))
        await questions.save(Question(question_id="q2", prompt="Seven?", question_type="free-text",
                                      correct_answer=7, points=1))
        clock = FixedClock(NOW)
        engine = AssessmentEngine(
            questions,
            SqlAssessmentRepository(session_factory),
            SqlAttemptRepository(session_factory),
            clock=clock,
            shuffler=IdentityShuffler()
        )
        student = Participant(id="p-1", role="student")
        await engine.assessments.save(_definition(reveal_policy=RevealPolicy.IMMEDIATE))

        first = await engine.start_attempt("exam-1", student, origin_ip="10.1.1.1")
        again = await engine.start_attempt("exam-1", student)
        assert again["attempt"]["attempt_id"] == first["attempt"]["attempt_id"]
        assert [q["question_id"] for q in again["questions"]] == ["q1", "q2"]

        clock.advance(minutes=3)
        result = await engine.submit_attempt("exam-1", student, {"q1": "B", "q2": "7.0"})
        assert result["score_percent"] == 100
        assert len(result["detail"]) == 2

        with pytest.raises(NoActiveAttemptError):
            await engine.submit_attempt("exam-1", student, {"q1": "B"})
