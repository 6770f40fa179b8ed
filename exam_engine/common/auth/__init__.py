"""
Identity boundary for the exam engine.
"""

from exam_engine.common.auth.user import (
    IdentityResolver,
    Participant,
    ParticipantRole,
    has_override_capability
)

__all__ = [
    'IdentityResolver',
    'Participant',
    'ParticipantRole',
    'has_override_capability'
]
