"""
Assessment API Controller

HTTP endpoints for assessment definitions and attempts. Every endpoint
resolves the caller to a ``Participant`` and delegates to the
``AssessmentEngine`` held on the application state; engine errors are turned
into the standard error envelope by the handlers in ``exam_engine.api``.
"""

import datetime
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, Path, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field

from exam_engine.api import APIResponse
from exam_engine.assessments.models import RevealPolicy
from exam_engine.assessments.service import AssessmentEngine
from exam_engine.common.auth.dependencies import get_client_ip, get_current_participant
from exam_engine.common.auth.user import Participant
from exam_engine.common.logger import get_logger

# Set up logger
logger = get_logger(__name__)

# Create router
router = APIRouter()


def get_assessment_engine(request: Request) -> AssessmentEngine:
    """Engine built by the application lifespan."""
    engine = getattr(request.app.state, "assessment_engine", None)
    if engine is None:
        raise RuntimeError("Assessment engine not initialized")
    return engine


# Request Models
class AssessmentFields(BaseModel):
    """Fields shared by create and update; business rules are checked by the engine."""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    instructions: Optional[str] = None
    question_refs: Optional[List[str]] = Field(None, description="Ordered question IDs")
    course_ref: Optional[str] = None
    allowed_roles: Optional[List[str]] = None
    attempts_allowed: Optional[int] = None
    time_limit_minutes: Optional[int] = None
    opens_at: Optional[datetime.datetime] = None
    closes_at: Optional[datetime.datetime] = None
    shuffle_questions: Optional[bool] = None
    shuffle_choices: Optional[bool] = None
    reveal_policy: Optional[RevealPolicy] = None
    passing_score: Optional[int] = None
    grade_weight: Optional[float] = None
    published: Optional[bool] = None
    active: Optional[bool] = None


class CreateAssessmentRequest(AssessmentFields):
    definition_id: Optional[str] = Field(None, description="Generated when omitted")
    title: str
    question_refs: List[str]


class UpdateAssessmentRequest(AssessmentFields):
    pass


class AnswerItem(BaseModel):
    question_id: str
    given_answer: Any = None


class SubmitAttemptRequest(BaseModel):
    answers: Union[List[AnswerItem], Dict[str, Any]] = Field(
        ...,
        description="List of {question_id, given_answer} items, or a question ID -> answer map"
    )


@router.get("/")
async def list_assessments(
    course_ref: Optional[str] = Query(None, description="Only assessments of this course"),
    published: Optional[bool] = Query(None, description="Published filter (administrators only)"),
    include_inactive: bool = Query(False, description="Include deactivated assessments (administrators only)"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    participant: Participant = Depends(get_current_participant),
    engine: AssessmentEngine = Depends(get_assessment_engine)
):
    result = await engine.list_assessments(
        participant,
        course_ref=course_ref,
        published=published,
        include_inactive=include_inactive,
        page=page,
        limit=limit
    )
    return APIResponse.success(result, "Assessments retrieved")


@router.get("/{definition_id}")
async def get_assessment(
    definition_id: str = Path(..., description="Assessment ID"),
    participant: Participant = Depends(get_current_participant),
    engine: AssessmentEngine = Depends(get_assessment_engine)
):
    result = await engine.get_assessment(definition_id, participant)
    return APIResponse.success(result, "Assessment retrieved")


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_assessment(
    request: CreateAssessmentRequest,
    participant: Participant = Depends(get_current_participant),
    engine: AssessmentEngine = Depends(get_assessment_engine)
):
    result = await engine.create_assessment(request.model_dump(exclude_none=True), participant)
    return APIResponse.success(result, "Assessment created")


@router.put("/{definition_id}")
async def update_assessment(
    request: UpdateAssessmentRequest,
    definition_id: str = Path(..., description="Assessment ID"),
    participant: Participant = Depends(get_current_participant),
    engine: AssessmentEngine = Depends(get_assessment_engine)
):
    result = await engine.update_assessment(definition_id, request.model_dump(exclude_unset=True), participant)
    return APIResponse.success(result, "Assessment updated")


@router.delete("/{definition_id}")
async def delete_assessment(
    definition_id: str = Path(..., description="Assessment ID"),
    participant: Participant = Depends(get_current_participant),
    engine: AssessmentEngine = Depends(get_assessment_engine)
):
    result = await engine.delete_assessment(definition_id, participant)
    return APIResponse.success(result, "Assessment deactivated")


@router.post("/{definition_id}/start")
async def start_attempt(
    definition_id: str = Path(..., description="Assessment ID"),
    participant: Participant = Depends(get_current_participant),
    origin_ip: str = Depends(get_client_ip),
    engine: AssessmentEngine = Depends(get_assessment_engine)
):
    result = await engine.start_attempt(definition_id, participant, origin_ip=origin_ip)
    message = "Resuming attempt in progress" if result["resumed"] else "Attempt started"
    return APIResponse.success(result, message)


@router.post("/{definition_id}/submit")
async def submit_attempt(
    request: SubmitAttemptRequest,
    definition_id: str = Path(..., description="Assessment ID"),
    participant: Participant = Depends(get_current_participant),
    engine: AssessmentEngine = Depends(get_assessment_engine)
):
    answers = request.answers
    if isinstance(answers, list):
        answers = [item.model_dump() for item in answers]
    result = await engine.submit_attempt(definition_id, participant, answers)
    return APIResponse.success(result, "Attempt submitted")


@router.get("/{definition_id}/attempt-status")
async def get_attempt_status(
    definition_id: str = Path(..., description="Assessment ID"),
    participant: Participant = Depends(get_current_participant),
    engine: AssessmentEngine = Depends(get_assessment_engine)
):
    result = await engine.get_attempt_status(definition_id, participant)
    return APIResponse.success(result, "Attempt in progress")


@router.get("/{definition_id}/my-attempts")
async def list_my_attempts(
    definition_id: str = Path(..., description="Assessment ID"),
    participant: Participant = Depends(get_current_participant),
    engine: AssessmentEngine = Depends(get_assessment_engine)
):
    result = await engine.list_my_attempts(definition_id, participant)
    return APIResponse.success(result, "Attempts retrieved")


@router.get("/{definition_id}/attempts")
async def list_all_attempts(
    definition_id: str = Path(..., description="Assessment ID"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    participant: Participant = Depends(get_current_participant),
    engine: AssessmentEngine = Depends(get_assessment_engine)
):
    result = await engine.list_all_attempts(definition_id, participant, page=page, limit=limit)
    return APIResponse.success(result, "Attempts retrieved")


logger.info(f"Assessment router created with {len(router.routes)} routes")
