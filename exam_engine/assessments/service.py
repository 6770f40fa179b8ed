"""
Assessment Engine

Orchestrates the attempt state machine on top of the Question Store, the
definition repository and the attempt ledger:

    (none) --start--> in_progress --submit / time-out--> finalized

Start and submit run under a per-(definition, participant) lock; the
repositories additionally refuse a second in-progress attempt and finalize
with a compare-and-swap, so the ledger stays consistent even across
service instances sharing one database.
"""

import datetime
import json
import math
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from exam_engine.assessments.eligibility import check_eligibility, ensure_visible
from exam_engine.assessments.grading import build_detail, grade
from exam_engine.assessments.models import (
    UPDATABLE_FIELDS,
    AssessmentDefinition,
    Attempt
)
from exam_engine.assessments.randomization import generate_order, materialize
from exam_engine.assessments.repositories import (
    AssessmentRepository,
    AttemptRepository,
    DefinitionFilter
)
from exam_engine.common.auth.user import Participant, has_override_capability
from exam_engine.common.clock import Clock, SystemClock
from exam_engine.common.exceptions import (
    AlreadySubmittedError,
    AssessmentError,
    AuthorizationError,
    ConflictError,
    NoActiveAttemptError,
    NotFoundError,
    TimeExpiredError,
    ValidationError
)
from exam_engine.common.locks import KeyedLock
from exam_engine.common.logger import app_logger
from exam_engine.common.shuffler import RandomShuffler, Shuffler
from exam_engine.domain.questions import MemoryQuestionRepository, Question, QuestionRepository

logger = app_logger.getChild("assessments.service")

SubmittedAnswers = Union[Mapping[str, Any], Iterable[Mapping[str, Any]]]


def _isoformat(value: Optional[datetime.datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def collect_answers(answers: SubmittedAnswers) -> Dict[str, Any]:
    """
    Turn a submission into a question ID -> given answer map.

    Accepts either a ``{question_id: answer}`` mapping or a list of
    ``{"question_id": ..., "given_answer": ...}`` items.

    Raises:
        ValidationError: malformed items or a question answered twice
    """
    if answers is None:
        raise ValidationError("Answers are required", {"answers": "missing"})
    if isinstance(answers, Mapping):
        return {str(k): v for k, v in answers.items()}

    collected: Dict[str, Any] = {}
    duplicates = []
    for item in answers:
        if not isinstance(item, Mapping) or not item.get("question_id"):
            raise ValidationError("Every answer needs a question_id", {"answers": "malformed item"})
        question_id = str(item["question_id"])
        if question_id in collected:
            duplicates.append(question_id)
        collected[question_id] = item.get("given_answer")
    if duplicates:
        raise ValidationError(
            "A question was answered more than once",
            {"duplicate_question_ids": sorted(set(duplicates))}
        )
    return collected


class AssessmentEngine:
    """
    Entry point for every assessment operation.

    All collaborators are injected; ``clock`` and ``shuffler`` default to the
    wall clock and an unbiased system-entropy shuffle.
    """

    def __init__(
        self,
        question_repository: QuestionRepository,
        assessment_repository: AssessmentRepository,
        attempt_repository: AttemptRepository,
        clock: Optional[Clock] = None,
        shuffler: Optional[Shuffler] = None,
        grace_minutes: int = 1,
        locks: Optional[KeyedLock] = None,
        default_page_size: int = 20,
        max_page_size: int = 100,
        attempts_page_size: int = 50
    ):
        self.questions = question_repository
        self.assessments = assessment_repository
        self.attempts = attempt_repository
        self.clock = clock or SystemClock()
        self.shuffler = shuffler or RandomShuffler()
        self.grace_minutes = grace_minutes
        self.locks = locks or KeyedLock()
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.attempts_page_size = attempts_page_size

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _page_bounds(self, page: int, limit: Optional[int], default: int) -> Tuple[int, int]:
        page = max(1, page or 1)
        limit = default if not limit else max(1, min(limit, self.max_page_size))
        return page, limit

    @staticmethod
    def _paginated(items: List[Any], total: int, page: int, limit: int) -> Dict[str, Any]:
        return {
            "items": items,
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit) if total else 0
        }

    @staticmethod
    def _require_override(participant: Participant, action: str) -> None:
        if not has_override_capability(participant):
            logger.info(f"Participant {participant.id} ({participant.role}) refused: {action}")
            raise AuthorizationError(action)

    async def _visible_definition(self, definition_id: str, participant: Participant) -> AssessmentDefinition:
        definition = await self.assessments.get_by_id(definition_id)
        return ensure_visible(definition, definition_id, participant)

    @staticmethod
    def _check(definition: AssessmentDefinition, participant: Participant,
               now: datetime.datetime, attempts_used: Optional[int] = None) -> None:
        try:
            check_eligibility(definition, participant, now, attempts_used)
        except AssessmentError as e:
            logger.info(
                f"Eligibility check failed for participant {participant.id} "
                f"on assessment {definition.definition_id}: {e.kind.value}"
            )
            raise

    async def _validate_question_refs(self, question_refs: List[str]) -> Dict[str, Question]:
        found = await self.questions.get_many(question_refs)
        missing = [qid for qid in question_refs if qid not in found]
        if missing:
            raise ValidationError(
                "Assessment references unknown questions",
                {"question_refs": f"Unknown questions: {', '.join(missing)}"}
            )
        return found

    def _attempts_remaining(self, definition: AssessmentDefinition, attempt_number: int) -> int:
        return max(0, definition.attempts_allowed - attempt_number)

    async def _expire(self, attempt: Attempt, definition: AssessmentDefinition,
                      now: datetime.datetime) -> Attempt:
        """Consume an overdue attempt with a zero score."""
        attempt.answers = []
        attempt.score_percent = 0
        attempt.passed = False
        attempt.finished_at = now
        attempt.elapsed_seconds = int((now - attempt.started_at).total_seconds())
        attempt.timed_out = True
        await self.attempts.finalize(attempt)
        logger.warning(
            f"Attempt {attempt.attempt_id} (#{attempt.attempt_number}) of participant "
            f"{attempt.participant_id} on assessment {definition.definition_id} exceeded "
            f"its {definition.time_limit_minutes} minute limit and was finalized with score 0"
        )
        return attempt

    def _time_expired(self, definition: AssessmentDefinition, attempt: Attempt) -> TimeExpiredError:
        return TimeExpiredError(
            definition.time_limit_minutes,
            self.grace_minutes,
            self._attempts_remaining(definition, attempt.attempt_number)
        )

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    async def list_assessments(
        self,
        participant: Participant,
        course_ref: Optional[str] = None,
        published: Optional[bool] = None,
        include_inactive: bool = False,
        page: int = 1,
        limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        List definitions visible to the caller, newest first.

        Administrators may filter on ``published`` and see inactive
        definitions; everyone else only sees published, active definitions
        open to their role, without question references.
        """
        page, limit = self._page_bounds(page, limit, self.default_page_size)
        is_admin = has_override_capability(participant)

        if is_admin:
            criteria = DefinitionFilter(
                course_ref=course_ref,
                published=published,
                active=None if include_inactive else True
            )
        else:
            criteria = DefinitionFilter(
                course_ref=course_ref,
                published=True,
                active=True,
                role=participant.role
            )

        definitions, total = await self.assessments.find(criteria, limit=limit, offset=(page - 1) * limit)
        items = [d.to_dict(include_question_refs=is_admin) for d in definitions]
        return self._paginated(items, total, page, limit)

    async def get_assessment(self, definition_id: str, participant: Participant) -> Dict[str, Any]:
        """
        View a definition with its questions.

        Non-administrators go through the same published/role/window rules
        as a start (minus the attempt count) and never receive answer-key
        fields.
        """
        definition = await self._visible_definition(definition_id, participant)
        is_admin = has_override_capability(participant)
        if not is_admin:
            self._check(definition, participant, self.clock.now())

        questions = await self.questions.get_many(definition.question_refs)
        result = definition.to_dict(include_question_refs=is_admin)
        result["questions"] = [
            questions[qid].to_dict(include_answer_key=is_admin)
            for qid in definition.question_refs
            if qid in questions
        ]
        return result

    async def create_assessment(self, data: Mapping[str, Any], participant: Participant) -> Dict[str, Any]:
        self._require_override(participant, "create assessments")

        unknown = sorted(set(data) - set(UPDATABLE_FIELDS) - {"definition_id"})
        if unknown:
            raise ValidationError(
                f"Unknown fields: {', '.join(unknown)}",
                {name: "unknown field" for name in unknown}
            )

        now = self.clock.now()
        payload = dict(data)
        payload.update(creator_id=participant.id, created_at=now, updated_at=now)
        definition = AssessmentDefinition.from_dict(payload)
        definition.validate()
        await self._validate_question_refs(definition.question_refs)

        if await self.assessments.get_by_id(definition.definition_id) is not None:
            raise ConflictError(
                f"Assessment {definition.definition_id} already exists",
                {"definition_id": definition.definition_id}
            )

        await self.assessments.save(definition)
        logger.info(
            f"Assessment {definition.definition_id} created by {participant.id} "
            f"with {definition.question_count} questions"
        )
        return definition.to_dict()

    async def update_assessment(self, definition_id: str, patch: Mapping[str, Any],
                                participant: Participant) -> Dict[str, Any]:
        self._require_override(participant, "update assessments")

        definition = await self.assessments.get_by_id(definition_id)
        if definition is None:
            raise NotFoundError("Assessment", definition_id)

        if "question_refs" in patch and list(patch["question_refs"] or []) != definition.question_refs:
            if await self.attempts.count_for_definition(definition_id) > 0:
                raise ConflictError(
                    "Questions cannot be changed once attempts exist; create a new assessment instead",
                    {"definition_id": definition_id}
                )

        now = self.clock.now()
        changed = definition.apply_patch(dict(patch))
        definition.validate()
        if "question_refs" in changed:
            await self._validate_question_refs(definition.question_refs)
        if "closes_at" in changed:
            definition.closed = definition.closes_at is not None and now > definition.closes_at
        definition.updated_at = now

        await self.assessments.save(definition)
        logger.info(f"Assessment {definition_id} updated by {participant.id}: {', '.join(changed) or 'no fields'}")
        return definition.to_dict()

    async def delete_assessment(self, definition_id: str, participant: Participant) -> Dict[str, Any]:
        """Soft-deactivate a definition; attempts against it are kept."""
        self._require_override(participant, "delete assessments")

        definition = await self.assessments.get_by_id(definition_id)
        if definition is None:
            raise NotFoundError("Assessment", definition_id)

        if definition.active:
            definition.active = False
            definition.updated_at = self.clock.now()
            await self.assessments.save(definition)
            logger.info(f"Assessment {definition_id} deactivated by {participant.id}")
        return {"definition_id": definition_id, "active": False}

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------

    async def start_attempt(self, definition_id: str, participant: Participant,
                            origin_ip: Optional[str] = None) -> Dict[str, Any]:
        """
        Resume the participant's in-progress attempt or create a new one.

        A resumed attempt is presented in exactly the order generated when
        it was created. The attempt-count rule only applies when a new
        attempt would be created, since an in-progress attempt is already
        counted.
        """
        definition = await self._visible_definition(definition_id, participant)

        async with self.locks.acquire((definition_id, participant.id)):
            now = self.clock.now()
            attempt = await self.attempts.get_in_progress(definition_id, participant.id)
            resumed = attempt is not None

            if resumed:
                self._check(definition, participant, now)
            else:
                used = await self.attempts.count_for_participant(definition_id, participant.id)
                self._check(definition, participant, now, attempts_used=used)
                attempt, resumed = await self._create_attempt(definition, participant, used, now, origin_ip)

            questions = await self.questions.get_many(attempt.question_order)

        if resumed:
            logger.info(f"Participant {participant.id} resumed attempt {attempt.attempt_id} on {definition_id}")

        deadline = attempt.deadline(definition.time_limit_minutes, self.grace_minutes)
        return {
            "resumed": resumed,
            "attempt": attempt.to_dict(),
            "questions": materialize(attempt, questions),
            "time_limit_minutes": definition.time_limit_minutes,
            "deadline": _isoformat(deadline),
            "attempts_allowed": definition.attempts_allowed
        }

    async def _create_attempt(
        self,
        definition: AssessmentDefinition,
        participant: Participant,
        attempts_used: int,
        now: datetime.datetime,
        origin_ip: Optional[str]
    ) -> Tuple[Attempt, bool]:
        questions = await self.questions.get_many(definition.question_refs)
        question_order, choice_orders = generate_order(definition, questions, self.shuffler)

        attempt = Attempt(
            attempt_id=str(uuid.uuid4()),
            definition_id=definition.definition_id,
            participant_id=participant.id,
            attempt_number=attempts_used + 1,
            started_at=now,
            question_order=question_order,
            choice_orders=choice_orders,
            origin_ip=origin_ip
        )
        try:
            await self.attempts.create(attempt)
        except ConflictError:
            # Another instance won the race; hand out its attempt instead.
            winner = await self.attempts.get_in_progress(definition.definition_id, participant.id)
            if winner is None:
                raise
            logger.warning(
                f"Concurrent start for participant {participant.id} on {definition.definition_id}; "
                f"resuming attempt {winner.attempt_id}"
            )
            return winner, True

        logger.info(
            f"Participant {participant.id} started attempt {attempt.attempt_id} "
            f"(#{attempt.attempt_number}) on {definition.definition_id}"
        )
        return attempt, False

    async def submit_attempt(self, definition_id: str, participant: Participant,
                             answers: SubmittedAnswers) -> Dict[str, Any]:
        """
        Score and finalize the participant's in-progress attempt.

        Raises:
            NoActiveAttemptError: nothing to submit
            TimeExpiredError: past the deadline; the attempt was finalized
                with a zero score before raising
            AlreadySubmittedError: a concurrent submit finalized it first
        """
        submitted = collect_answers(answers)
        definition = await self._visible_definition(definition_id, participant)

        async with self.locks.acquire((definition_id, participant.id)):
            now = self.clock.now()
            attempt = await self.attempts.get_in_progress(definition_id, participant.id)

            # An overdue attempt is consumed even when the window has closed since.
            if attempt is not None:
                deadline = attempt.deadline(definition.time_limit_minutes, self.grace_minutes)
                if deadline is not None and now > deadline:
                    await self._expire(attempt, definition, now)
                    raise self._time_expired(definition, attempt)

            self._check(definition, participant, now)
            if attempt is None:
                raise NoActiveAttemptError(definition_id)

            questions = await self.questions.get_many(attempt.question_order)
            result = grade(attempt.question_order, questions, submitted, definition.passing_score)

            attempt.answers = result.answers
            attempt.score_percent = result.score_percent
            attempt.passed = result.passed
            attempt.finished_at = now
            attempt.elapsed_seconds = int((now - attempt.started_at).total_seconds())
            await self.attempts.finalize(attempt)

        logger.info(
            f"Attempt {attempt.attempt_id} (#{attempt.attempt_number}) of participant {participant.id} "
            f"on {definition_id} finalized: {result.score_percent}% "
            f"({'passed' if result.passed else 'failed'})"
        )

        response = {
            "attempt_id": attempt.attempt_id,
            "definition_id": definition_id,
            "score_percent": result.score_percent,
            "passed": result.passed,
            "passing_score": definition.passing_score,
            "attempt_number": attempt.attempt_number,
            "attempts_remaining": self._attempts_remaining(definition, attempt.attempt_number),
            "correct_count": result.correct_count,
            "question_count": len(result.answers),
            "elapsed_seconds": attempt.elapsed_seconds,
            "finished_at": _isoformat(attempt.finished_at)
        }
        if definition.detail_revealed(now):
            response["detail"] = build_detail(result.answers, questions)
        return response

    async def get_attempt_status(self, definition_id: str, participant: Participant) -> Dict[str, Any]:
        """
        Explicit timeout check for the in-progress attempt.

        Returns the deadline and the seconds left; an overdue attempt is
        finalized with a zero score and ``TimeExpiredError`` is raised.
        """
        definition = await self._visible_definition(definition_id, participant)

        async with self.locks.acquire((definition_id, participant.id)):
            now = self.clock.now()
            attempt = await self.attempts.get_in_progress(definition_id, participant.id)
            if attempt is None:
                raise NoActiveAttemptError(definition_id)

            deadline = attempt.deadline(definition.time_limit_minutes, self.grace_minutes)
            if deadline is not None and now > deadline:
                await self._expire(attempt, definition, now)
                raise self._time_expired(definition, attempt)

        remaining = None
        if deadline is not None:
            remaining = max(0, int((deadline - now).total_seconds()))
        return {
            "attempt_id": attempt.attempt_id,
            "attempt_number": attempt.attempt_number,
            "status": attempt.status.value,
            "started_at": _isoformat(attempt.started_at),
            "time_limit_minutes": definition.time_limit_minutes,
            "deadline": _isoformat(deadline),
            "remaining_seconds": remaining
        }

    async def list_my_attempts(self, definition_id: str, participant: Participant) -> Dict[str, Any]:
        """The caller's own attempts, latest first; still listed after deactivation."""
        definition = await self.assessments.get_by_id(definition_id)
        if definition is None:
            raise NotFoundError("Assessment", definition_id)
        revealed = definition.detail_revealed(self.clock.now())

        attempts = await self.attempts.list_for_participant(definition_id, participant.id)
        return {
            "items": [a.to_dict(include_correctness=revealed) for a in attempts],
            "attempts_allowed": definition.attempts_allowed,
            "attempts_used": len(attempts),
            "attempts_remaining": max(0, definition.attempts_allowed - len(attempts))
        }

    async def list_all_attempts(self, definition_id: str, participant: Participant,
                                page: int = 1, limit: Optional[int] = None) -> Dict[str, Any]:
        self._require_override(participant, "list every attempt")

        if await self.assessments.get_by_id(definition_id) is None:
            raise NotFoundError("Assessment", definition_id)

        page, limit = self._page_bounds(page, limit, self.attempts_page_size)
        attempts, total = await self.attempts.list_for_definition(
            definition_id, limit=limit, offset=(page - 1) * limit
        )
        items = []
        for attempt in attempts:
            item = attempt.to_dict()
            item["origin_ip"] = attempt.origin_ip
            items.append(item)
        return self._paginated(items, total, page, limit)

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    async def sweep(self, expire_attempts: bool = False) -> Dict[str, int]:
        """
        Mark definitions whose window has closed, and optionally consume
        in-progress attempts that are past their deadline.
        """
        now = self.clock.now()
        closed = 0
        for definition in await self.assessments.find_past_closing(now):
            definition.closed = True
            definition.updated_at = now
            await self.assessments.save(definition)
            closed += 1

        expired = 0
        if expire_attempts:
            for definition in await self.assessments.find_timed_active():
                for attempt in await self.attempts.list_in_progress(definition.definition_id):
                    deadline = attempt.deadline(definition.time_limit_minutes, self.grace_minutes)
                    if deadline is None or now <= deadline:
                        continue
                    async with self.locks.acquire((definition.definition_id, attempt.participant_id)):
                        try:
                            await self._expire(attempt, definition, now)
                        except AlreadySubmittedError:
                            continue
                    expired += 1

        if closed or expired:
            logger.info(f"Sweep closed {closed} assessments and expired {expired} attempts")
        return {"closed_assessments": closed, "expired_attempts": expired}


def load_seed_questions(path: str) -> List[Question]:
    """Read a JSON list of question dicts."""
    with open(path, "r", encoding="utf-8") as handle:
        return [Question.from_dict(item) for item in json.load(handle)]


async def seed_questions(engine: AssessmentEngine, path: str) -> int:
    """Load questions from a JSON file into the engine's Question Store."""
    questions = load_seed_questions(path)
    for question in questions:
        await engine.questions.save(question)
    logger.info(f"Seeded {len(questions)} questions from {path}")
    return len(questions)


def create_assessment_engine(config=None, clock: Optional[Clock] = None,
                             shuffler: Optional[Shuffler] = None) -> AssessmentEngine:
    """
    Build an engine wired to the configured storage backend.

    For the ``sql`` backend the database must already be initialized.
    """
    if config is None:
        from exam_engine.config import settings as config

    if config.STORAGE_BACKEND == "sql":
        from exam_engine.assessments.sql_repository import SqlAssessmentRepository, SqlAttemptRepository
        from exam_engine.database.init_db import get_session_factory
        from exam_engine.domain.questions.sql_repository import SqlQuestionRepository

        session_factory = get_session_factory()
        question_repository = SqlQuestionRepository(session_factory)
        assessment_repository = SqlAssessmentRepository(session_factory)
        attempt_repository = SqlAttemptRepository(session_factory)
    elif config.STORAGE_BACKEND == "memory":
        from exam_engine.assessments.memory_repository import MemoryAssessmentRepository, MemoryAttemptRepository

        question_repository = MemoryQuestionRepository()
        assessment_repository = MemoryAssessmentRepository()
        attempt_repository = MemoryAttemptRepository()
    else:
        raise ValueError(f"Unknown storage backend: {config.STORAGE_BACKEND}")

    logger.info(f"Assessment engine using {config.STORAGE_BACKEND} storage")
    return AssessmentEngine(
        question_repository=question_repository,
        assessment_repository=assessment_repository,
        attempt_repository=attempt_repository,
        clock=clock,
        shuffler=shuffler,
        grace_minutes=config.TIME_LIMIT_GRACE_MINUTES,
        default_page_size=config.DEFAULT_PAGE_SIZE,
        max_page_size=config.MAX_PAGE_SIZE,
        attempts_page_size=config.ATTEMPTS_PAGE_SIZE
    )
