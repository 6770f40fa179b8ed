"""
Eligibility rules evaluated before any attempt action.

Rules run in a fixed order and the first failure wins, so callers always get
the same error kind for the same situation:

1. the definition is published
2. the participant's role is allowed (or they hold the override capability,
   which skips every rule after this one)
3. the window has opened
4. the window has not closed
5. attempts remain (only when ``attempts_used`` is given)
"""

import datetime
from typing import Optional

from exam_engine.assessments.models import AssessmentDefinition
from exam_engine.common.auth.user import Participant, has_override_capability
from exam_engine.common.exceptions import (
    AttemptsExhaustedError,
    NotFoundError,
    NotPublishedError,
    NotYetOpenError,
    RoleNotAllowedError,
    WindowClosedError
)


def ensure_visible(definition: Optional[AssessmentDefinition], definition_id: str,
                   participant: Participant) -> AssessmentDefinition:
    """Existence check; deactivated definitions only exist for overriders."""
    if definition is None:
        raise NotFoundError("Assessment", definition_id)
    if not definition.active and not has_override_capability(participant):
        raise NotFoundError("Assessment", definition_id)
    return definition


def check_eligibility(
    definition: AssessmentDefinition,
    participant: Participant,
    now: datetime.datetime,
    attempts_used: Optional[int] = None
) -> None:
    """
    Raise the first violated rule, or return None when the call may proceed.

    Args:
        definition: The assessment being acted on
        participant: The caller
        now: Current time (naive UTC)
        attempts_used: Attempts of any state already made; None skips the
            attempt-count rule (viewing and submitting)
    """
    if not definition.published:
        raise NotPublishedError(definition.definition_id)

    if has_override_capability(participant):
        return

    if participant.role not in definition.allowed_roles:
        raise RoleNotAllowedError(participant.role)

    if definition.opens_at and now < definition.opens_at:
        raise NotYetOpenError(definition.opens_at)

    if definition.closes_at and now > definition.closes_at:
        raise WindowClosedError(definition.closes_at)

    if attempts_used is not None and attempts_used >= definition.attempts_allowed:
        raise AttemptsExhaustedError(definition.attempts_allowed)
