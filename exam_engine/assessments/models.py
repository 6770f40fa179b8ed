"""
Assessment Models

Core data models for the assessment engine: the administrator-authored
``AssessmentDefinition`` and the per-participant ``Attempt`` ledger rows.
"""

import enum
import uuid
import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from exam_engine.common.auth.user import ParticipantRole
from exam_engine.common.clock import to_utc_naive, utc_now
from exam_engine.common.exceptions import ValidationError


class RevealPolicy(str, enum.Enum):
    """When per-question detail (correct answers, explanations) is revealed."""
    IMMEDIATE = "immediate"
    AFTER_CLOSE = "after-close"
    NEVER = "never"


class AttemptStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    FINALIZED = "finalized"


DEFAULT_ALLOWED_ROLES = [ParticipantRole.STUDENT.value, ParticipantRole.ADMIN.value]

# Fields an administrator may change through an update.
UPDATABLE_FIELDS = (
    "title", "description", "instructions", "question_refs", "course_ref",
    "allowed_roles", "attempts_allowed", "time_limit_minutes", "opens_at",
    "closes_at", "shuffle_questions", "shuffle_choices", "reveal_policy",
    "passing_score", "grade_weight", "published", "active"
)

# Updatable fields that may be cleared with an explicit None.
NULLABLE_FIELDS = (
    "description", "instructions", "course_ref", "time_limit_minutes",
    "opens_at", "closes_at", "grade_weight"
)


def _parse_datetime(value: Any) -> Optional[datetime.datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"Invalid timestamp: {value}", {"timestamp": value})
    if not isinstance(value, datetime.datetime):
        raise ValidationError(f"Invalid timestamp: {value!r}")
    return to_utc_naive(value)


def _isoformat(value: Optional[datetime.datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class AssessmentDefinition:
    """
    An administrator-authored assessment.

    Definitions are never hard-deleted; ``active`` is cleared instead so
    historical attempts keep a definition to be scored and listed against.
    """
    definition_id: str
    title: str
    question_refs: List[str]
    allowed_roles: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ROLES))
    attempts_allowed: int = 1
    time_limit_minutes: Optional[int] = None
    opens_at: Optional[datetime.datetime] = None
    closes_at: Optional[datetime.datetime] = None
    shuffle_questions: bool = True
    shuffle_choices: bool = True
    reveal_policy: RevealPolicy = RevealPolicy.AFTER_CLOSE
    passing_score: int = 70
    published: bool = False
    active: bool = True
    course_ref: Optional[str] = None
    description: Optional[str] = None
    instructions: Optional[str] = None
    grade_weight: Optional[float] = None
    creator_id: Optional[str] = None
    closed: bool = False
    created_at: datetime.datetime = field(default_factory=utc_now)
    updated_at: datetime.datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if isinstance(self.reveal_policy, str) and not isinstance(self.reveal_policy, RevealPolicy):
            try:
                self.reveal_policy = RevealPolicy(self.reveal_policy)
            except ValueError:
                raise ValidationError(
                    f"Invalid reveal policy: {self.reveal_policy}",
                    {"reveal_policy": [p.value for p in RevealPolicy]}
                )
        self.opens_at = _parse_datetime(self.opens_at)
        self.closes_at = _parse_datetime(self.closes_at)

    def validate(self) -> None:
        """
        Check the definition's shape.

        Raises:
            ValidationError: listing every offending field
        """
        errors: Dict[str, str] = {}

        if not self.title or not str(self.title).strip():
            errors["title"] = "Title is required"

        if not self.question_refs:
            errors["question_refs"] = "An assessment needs at least one question"
        elif len(set(self.question_refs)) != len(self.question_refs):
            errors["question_refs"] = "Questions may not appear more than once"

        unknown_roles = sorted(set(self.allowed_roles or []) - ParticipantRole.values())
        if not self.allowed_roles:
            errors["allowed_roles"] = "At least one role must be allowed"
        elif unknown_roles:
            errors["allowed_roles"] = f"Unknown roles: {', '.join(unknown_roles)}"

        if not isinstance(self.attempts_allowed, int) or self.attempts_allowed < 1:
            errors["attempts_allowed"] = "At least one attempt must be allowed"

        if self.time_limit_minutes is not None and (
            not isinstance(self.time_limit_minutes, int) or self.time_limit_minutes < 1
        ):
            errors["time_limit_minutes"] = "Time limit must be at least 1 minute"

        if (not isinstance(self.passing_score, int) or isinstance(self.passing_score, bool)
                or not 0 <= self.passing_score <= 100):
            errors["passing_score"] = "Passing score must be between 0 and 100"

        if self.grade_weight is not None and (
            not isinstance(self.grade_weight, (int, float)) or not 0 <= self.grade_weight <= 100
        ):
            errors["grade_weight"] = "Grade weight must be between 0 and 100"

        if self.opens_at and self.closes_at and self.closes_at <= self.opens_at:
            errors["closes_at"] = "Closing time must be after the opening time"

        if errors:
            raise ValidationError("Invalid assessment definition", errors)

    def detail_revealed(self, now: datetime.datetime) -> bool:
        """Whether per-question detail may be shown to a participant at ``now``."""
        if self.reveal_policy == RevealPolicy.IMMEDIATE:
            return True
        if self.reveal_policy == RevealPolicy.AFTER_CLOSE:
            return self.closes_at is not None and now > self.closes_at
        return False

    @property
    def question_count(self) -> int:
        return len(self.question_refs)

    def to_dict(self, include_question_refs: bool = True) -> Dict[str, Any]:
        result = {
            "definition_id": self.definition_id,
            "title": self.title,
            "description": self.description,
            "instructions": self.instructions,
            "course_ref": self.course_ref,
            "question_count": self.question_count,
            "allowed_roles": list(self.allowed_roles),
            "attempts_allowed": self.attempts_allowed,
            "time_limit_minutes": self.time_limit_minutes,
            "opens_at": _isoformat(self.opens_at),
            "closes_at": _isoformat(self.closes_at),
            "shuffle_questions": self.shuffle_questions,
            "shuffle_choices": self.shuffle_choices,
            "reveal_policy": self.reveal_policy.value,
            "passing_score": self.passing_score,
            "grade_weight": self.grade_weight,
            "published": self.published,
            "active": self.active,
            "closed": self.closed,
            "creator_id": self.creator_id,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at)
        }
        if include_question_refs:
            result["question_refs"] = list(self.question_refs)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AssessmentDefinition':
        """
        Build a definition from caller-supplied data, applying defaults for
        anything left out.
        """
        defaults = cls(definition_id="", title="", question_refs=[])
        values = {}
        for name in UPDATABLE_FIELDS + ("creator_id", "closed"):
            value = data.get(name)
            values[name] = getattr(defaults, name) if value is None else value
        # Nullable fields keep an explicit None.
        for name in ("time_limit_minutes", "opens_at", "closes_at", "course_ref",
                     "description", "instructions", "grade_weight", "creator_id"):
            values[name] = data.get(name)
        return cls(
            definition_id=data.get("definition_id") or str(uuid.uuid4()),
            created_at=_parse_datetime(data.get("created_at")) or utc_now(),
            updated_at=_parse_datetime(data.get("updated_at")) or utc_now(),
            **values
        )

    def apply_patch(self, patch: Dict[str, Any]) -> List[str]:
        """
        Apply an administrator patch in place.

        Returns:
            Names of the fields that were set
        """
        unknown = sorted(set(patch) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(unknown)}",
                {name: "not updatable" for name in unknown}
            )

        cleared = sorted(
            name for name, value in patch.items()
            if value is None and name not in NULLABLE_FIELDS
        )
        if cleared:
            raise ValidationError(
                f"Fields cannot be cleared: {', '.join(cleared)}",
                {name: "a value is required" for name in cleared}
            )

        changed = []
        for name, value in patch.items():
            if name in ("opens_at", "closes_at"):
                value = _parse_datetime(value)
            elif name == "reveal_policy":
                try:
                    value = RevealPolicy(value)
                except ValueError:
                    raise ValidationError(f"Invalid reveal policy: {value}")
            elif name in ("question_refs", "allowed_roles"):
                value = list(value or [])
            setattr(self, name, value)
            changed.append(name)
        return changed


@dataclass
class AttemptAnswer:
    """One answer inside an attempt, annotated once the attempt is scored."""
    question_id: str
    given_answer: Any = None
    is_correct: Optional[bool] = None
    points_awarded: Optional[float] = None

    def to_dict(self, include_correctness: bool = True) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "question_id": self.question_id,
            "given_answer": self.given_answer
        }
        if include_correctness:
            result["is_correct"] = self.is_correct
            result["points_awarded"] = self.points_awarded
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AttemptAnswer':
        return cls(
            question_id=data["question_id"],
            given_answer=data.get("given_answer"),
            is_correct=data.get("is_correct"),
            points_awarded=data.get("points_awarded")
        )


@dataclass
class Attempt:
    """
    One attempt by one participant at one definition.

    Created in progress at start; finalized exactly once at submit (or on
    time-out), after which no field changes again.

    ``question_order`` and ``choice_orders`` are the randomization generated
    at creation, stored so every resume presents the same order.
    """
    attempt_id: str
    definition_id: str
    participant_id: str
    attempt_number: int
    started_at: datetime.datetime
    question_order: List[str] = field(default_factory=list)
    choice_orders: Dict[str, List[int]] = field(default_factory=dict)
    answers: List[AttemptAnswer] = field(default_factory=list)
    score_percent: Optional[int] = None
    passed: Optional[bool] = None
    finished_at: Optional[datetime.datetime] = None
    elapsed_seconds: Optional[int] = None
    timed_out: bool = False
    origin_ip: Optional[str] = None

    @property
    def status(self) -> AttemptStatus:
        return AttemptStatus.IN_PROGRESS if self.finished_at is None else AttemptStatus.FINALIZED

    @property
    def in_progress(self) -> bool:
        return self.finished_at is None

    def deadline(self, time_limit_minutes: Optional[int], grace_minutes: int) -> Optional[datetime.datetime]:
        """Last instant a submit is accepted, or None without a time limit."""
        if not time_limit_minutes:
            return None
        return self.started_at + datetime.timedelta(minutes=time_limit_minutes + grace_minutes)

    def to_dict(self, include_correctness: bool = True) -> Dict[str, Any]:
        """
        Serialize the attempt.

        In-progress attempts never expose a score, a pass flag or answers.
        ``include_correctness`` controls whether per-answer correctness of a
        finalized attempt is included.
        """
        result: Dict[str, Any] = {
            "attempt_id": self.attempt_id,
            "definition_id": self.definition_id,
            "participant_id": self.participant_id,
            "attempt_number": self.attempt_number,
            "status": self.status.value,
            "started_at": _isoformat(self.started_at),
            "finished_at": _isoformat(self.finished_at),
            "elapsed_seconds": self.elapsed_seconds
        }
        if self.in_progress:
            return result

        result["score_percent"] = self.score_percent
        result["passed"] = self.passed
        result["timed_out"] = self.timed_out
        result["answers"] = [a.to_dict(include_correctness) for a in self.answers]
        return result
