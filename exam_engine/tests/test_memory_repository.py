import datetime

import pytest

from exam_engine.assessments.memory_repository import MemoryAssessmentRepository, MemoryAttemptRepository
from exam_engine.assessments.models import AssessmentDefinition, Attempt
from exam_engine.assessments.repositories import DefinitionFilter
from exam_engine.common.exceptions import AlreadySubmittedError, ConflictError

NOW = datetime.datetime(2026, 3, 2, 9, 0, 0)


def _attempt(number, participant_id="p-1", started_at=NOW):
    return Attempt(
        attempt_id=f"{participant_id}-{number}",
        definition_id="exam-1",
        participant_id=participant_id,
        attempt_number=number,
        started_at=started_at,
        question_order=["q1"]
    )


@pytest.mark.asyncio
async def test_definitions_are_copied_in_and_out():
    definition = AssessmentDefinition(definition_id="a", title="A", question_refs=["q1"])
    repo = MemoryAssessmentRepository([definition])

    definition.title = "changed outside"
    loaded = await repo.get_by_id("a")
    assert loaded.title == "A"

    loaded.question_refs.append("q2")
    assert (await repo.get_by_id("a")).question_refs == ["q1"]


@pytest.mark.asyncio
async def test_find_orders_newest_first_and_filters():
    repo = MemoryAssessmentRepository([
        AssessmentDefinition(definition_id="old", title="Old", question_refs=["q1"],
                             course_ref="c-1", published=True, created_at=NOW),
        AssessmentDefinition(definition_id="new", title="New", question_refs=["q1"],
                             course_ref="c-1", allowed_roles=["instructor"],
                             created_at=NOW + datetime.timedelta(days=1)),
        AssessmentDefinition(definition_id="other", title="Other", question_refs=["q1"],
                             course_ref="c-2", created_at=NOW + datetime.timedelta(days=2)),
    ])

    found, total = await repo.find(DefinitionFilter(course_ref="c-1"))
    assert [d.definition_id for d in found] == ["new", "old"]
    assert total == 2

    found, total = await repo.find(DefinitionFilter(role="student", published=True))
    assert [d.definition_id for d in found] == ["old"]

    found, total = await repo.find(DefinitionFilter(), limit=1, offset=1)
    assert [d.definition_id for d in found] == ["new"]
    assert total == 3


@pytest.mark.asyncio
async def test_single_in_progress_attempt():
    repo = MemoryAttemptRepository()
    await repo.create(_attempt(1))

    with pytest.raises(ConflictError):
        await repo.create(_attempt(2))

    await repo.create(_attempt(1, participant_id="p-2"))
    assert await repo.count_for_definition("exam-1") == 2


@pytest.mark.asyncio
async def test_duplicate_attempt_number():
    repo = MemoryAttemptRepository()
    first = await repo.create(_attempt(1))
    first.finished_at = NOW + datetime.timedelta(minutes=1)
    await repo.finalize(first)

    duplicate = _attempt(1)
    duplicate.attempt_id = "another-id"
    with pytest.raises(ConflictError):
        await repo.create(duplicate)


@pytest.mark.asyncio
async def test_finalize_only_once():
    repo = MemoryAttemptRepository()
    attempt = await repo.create(_attempt(1))
    attempt.finished_at = NOW + datetime.timedelta(minutes=1)
    attempt.score_percent = 80
    await repo.finalize(attempt)

    attempt.score_percent = 100
    with pytest.raises(AlreadySubmittedError):
        await repo.finalize(attempt)

    assert (await repo.get_by_id("p-1-1")).score_percent == 80
    assert await repo.get_in_progress("exam-1", "p-1") is None

    with pytest.raises(AlreadySubmittedError):
        await repo.finalize(_attempt(9))


@pytest.mark.asyncio
async def test_listings():
    repo = MemoryAttemptRepository()
    first = await repo.create(_attempt(1))
    first.finished_at = NOW + datetime.timedelta(minutes=1)
    await repo.finalize(first)
    await repo.create(_attempt(2, started_at=NOW + datetime.timedelta(minutes=2)))
    await repo.create(_attempt(1, participant_id="p-2", started_at=NOW + datetime.timedelta(minutes=3)))

    assert [a.attempt_number for a in await repo.list_for_participant("exam-1", "p-1")] == [2, 1]

    page, total = await repo.list_for_definition("exam-1", limit=2)
    assert [a.attempt_id for a in page] == ["p-2-1", "p-1-2"]
    assert total == 3

    assert sorted(a.attempt_id for a in await repo.list_in_progress("exam-1")) == ["p-1-2", "p-2-1"]
