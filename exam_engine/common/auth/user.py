"""
Participant Models

The engine never authenticates anyone itself. By the time a call reaches it,
the caller has been resolved to a ``Participant``: an id, a role, and whether
the identity layer grants the administrator override capability.
"""

import enum
from dataclasses import dataclass
from typing import Iterable, FrozenSet


class ParticipantRole(str, enum.Enum):
    """Roles known to the identity layer."""

    ADMIN = "admin"
    INSTRUCTOR = "instructor"
    STUDENT = "student"
    GUEST = "guest"

    @classmethod
    def values(cls) -> FrozenSet[str]:
        return frozenset(role.value for role in cls)


@dataclass(frozen=True)
class Participant:
    """
    An already-authenticated caller.

    Attributes:
        id: External participant identifier
        role: Role name as provided by the identity layer
        can_override: Administrator-equivalent capability; bypasses role,
            window and attempt-count rules and unlocks answer-key fields
    """
    id: str
    role: str
    can_override: bool = False


class IdentityResolver:
    """Builds ``Participant`` values and answers capability questions."""

    def __init__(self, override_roles: Iterable[str] = (ParticipantRole.ADMIN.value,)):
        self.override_roles = frozenset(override_roles)

    def resolve(self, participant_id: str, role: str) -> Participant:
        return Participant(
            id=participant_id,
            role=role,
            can_override=role in self.override_roles
        )


def has_override_capability(participant: Participant) -> bool:
    """The only predicate the engine uses for the administrator bypass."""
    return participant.can_override
