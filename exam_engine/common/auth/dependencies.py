"""
Authentication dependencies for the exam engine API.

Transport authentication happens upstream (gateway or session middleware);
these dependencies only turn the forwarded identity headers into a
``Participant``.
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from exam_engine.common.auth.user import IdentityResolver, Participant
from exam_engine.config import settings

logger = logging.getLogger(__name__)

_resolver = IdentityResolver(settings.OVERRIDE_ROLES)


async def get_current_participant(
    x_participant_id: Optional[str] = Header(None),
    x_participant_role: Optional[str] = Header(None)
) -> Participant:
    """
    Resolve the calling participant from the forwarded identity headers.

    Raises:
        HTTPException: 401 if either header is missing or blank
    """
    if not x_participant_id or not x_participant_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing participant identity"
        )
    if not x_participant_role or not x_participant_role.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing participant role"
        )

    return _resolver.resolve(x_participant_id.strip(), x_participant_role.strip().lower())


def get_client_ip(request: Request) -> str:
    """Best-effort originating IP, honouring a proxy's X-Forwarded-For."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"
