"""
Gradebook API routes.

Every route resolves the calling principal, hands the call to the
``GradebookService`` stored on the application state and wraps the result
in the standard success envelope. Engine failures propagate as
``GradebookError`` and are rendered by the application's exception handler.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status

from gradebook.api import APIResponse
from gradebook.common.auth import Principal, get_current_principal
from gradebook.assessments.models import AttemptStatus
from gradebook.assessments.schemas import (
    AddQuestionRequest,
    CreateAssessmentRequest,
    CreateRubricRequest,
    EvaluateRubricRequest,
    GradeAttemptRequest,
    SaveResponseRequest,
    SubmitAttemptRequest,
)
from gradebook.assessments.service import GradebookService

router = APIRouter()


def get_service(request: Request) -> GradebookService:
    """Dependency returning the service created at application startup."""
    return request.app.state.gradebook_service


# --- Assessments ---

@router.post("/assessments", status_code=status.HTTP_201_CREATED, tags=["assessments"])
async def create_assessment(
    payload: CreateAssessmentRequest,
    principal: Principal = Depends(get_current_principal),
    service: GradebookService = Depends(get_service)
):
    fields = payload.model_dump(exclude={"course_id", "title"})
    assessment = await service.create_assessment(principal, payload.course_id, payload.title, **fields)
    return APIResponse.success(assessment.to_dict(), "Assessment created")


@router.get("/assessments/{assessment_id}", tags=["assessments"])
async def get_assessment(
    assessment_id: str,
    principal: Principal = Depends(get_current_principal),
    service: GradebookService = Depends(get_service)
):
    assessment, questions = await service.get_assessment(principal, assessment_id)
    data = assessment.to_dict()
    data["questions"] = [q.to_dict(include_answers=principal.can_author) for q in questions]
    return APIResponse.success(data)


@router.post(
    "/assessments/{assessment_id}/questions", status_code=status.HTTP_201_CREATED, tags=["assessments"]
)
async def add_question(
    assessment_id: str,
    payload: AddQuestionRequest,
    principal: Principal = Depends(get_current_principal),
    service: GradebookService = Depends(get_service)
):
    question = await service.add_question(principal, assessment_id, **payload.model_dump())
    return APIResponse.success(question.to_dict(), "Question added")


@router.post("/assessments/{assessment_id}/publish", tags=["assessments"])
async def publish_assessment(
    assessment_id: str,
    principal: Principal = Depends(get_current_principal),
    service: GradebookService = Depends(get_service)
):
    assessment = await service.publish_assessment(principal, assessment_id)
    return APIResponse.success(assessment.to_dict(), "Assessment published")


@router.get("/assessments/{assessment_id}/analytics", tags=["analytics"])
async def get_analytics(
    assessment_id: str,
    principal: Principal = Depends(get_current_principal),
    service: GradebookService = Depends(get_service)
):
    analytics = await service.get_analytics(principal, assessment_id)
    return APIResponse.success(analytics.to_dict())


# --- Attempts ---

@router.post(
    "/assessments/{assessment_id}/attempts", status_code=status.HTTP_201_CREATED, tags=["attempts"]
)
async def start_attempt(
    assessment_id: str,
    principal: Principal = Depends(get_current_principal),
    service: GradebookService = Depends(get_service)
):
    attempt = await service.start_attempt(principal, assessment_id)
    return APIResponse.success(attempt.to_dict(), "Attempt started")


@router.get("/attempts", tags=["attempts"])
async def list_attempts(
    assessment_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    attempt_status: Optional[AttemptStatus] = Query(None, alias="status"),
    principal: Principal = Depends(get_current_principal),
    service: GradebookService = Depends(get_service)
):
    attempts = await service.list_attempts(principal, assessment_id, user_id, attempt_status)
    return APIResponse.success([a.to_dict(include_responses=False) for a in attempts])


@router.get("/attempts/{attempt_id}", tags=["attempts"])
async def get_attempt(
    attempt_id: str,
    principal: Principal = Depends(get_current_principal),
    service: GradebookService = Depends(get_service)
):
    attempt = await service.get_attempt(principal, attempt_id)
    return APIResponse.success(attempt.to_dict())


@router.put("/attempts/{attempt_id}/responses/{question_id}", tags=["attempts"])
async def save_response(
    attempt_id: str,
    question_id: str,
    payload: SaveResponseRequest,
    principal: Principal = Depends(get_current_principal),
    service: GradebookService = Depends(get_service)
):
    response = await service.save_response(principal, attempt_id, question_id, payload.answer_data)
    return APIResponse.success(response.to_dict(), "Response saved")


@router.post("/attempts/{attempt_id}/submit", tags=["attempts"])
async def submit_attempt(
    attempt_id: str,
    payload: Optional[SubmitAttemptRequest] = None,
    principal: Principal = Depends(get_current_principal),
    service: GradebookService = Depends(get_service)
):
    answers = payload.answers_by_question() if payload else None
    attempt = await service.submit_attempt(principal, attempt_id, answers)
    return APIResponse.success(attempt.to_dict(), f"Attempt {attempt.status.value}")


@router.post("/attempts/{attempt_id}/grade", tags=["grading"])
async def grade_attempt(
    attempt_id: str,
    payload: GradeAttemptRequest,
    principal: Principal = Depends(get_current_principal),
    service: GradebookService = Depends(get_service)
):
    grades = [grade.to_domain() for grade in payload.grades]
    attempt = await service.grade_attempt(principal, attempt_id, grades, feedback=payload.feedback)
    return APIResponse.success(attempt.to_dict(), "Attempt graded")


@router.post("/attempts/{attempt_id}/expire", tags=["attempts"])
async def expire_attempt(
    attempt_id: str,
    principal: Principal = Depends(get_current_principal),
    service: GradebookService = Depends(get_service)
):
    attempt = await service.expire_attempt(principal, attempt_id)
    return APIResponse.success(attempt.to_dict(include_responses=False), "Attempt expired")


@router.get("/grading/pending", tags=["grading"])
async def get_pending_grading(
    assessment_id: Optional[str] = Query(None),
    principal: Principal = Depends(get_current_principal),
    service: GradebookService = Depends(get_service)
):
    pending = await service.get_pending_grading(principal, assessment_id)
    return APIResponse.success([item.to_dict() for item in pending])


# --- Rubrics ---

@router.post("/rubrics", status_code=status.HTTP_201_CREATED, tags=["rubrics"])
async def create_rubric(
    payload: CreateRubricRequest,
    principal: Principal = Depends(get_current_principal),
    service: GradebookService = Depends(get_service)
):
    rubric = await service.create_rubric(
        principal,
        payload.title,
        [criterion.model_dump() for criterion in payload.criteria],
        assessment_id=payload.assessment_id,
        description=payload.description
    )
    return APIResponse.success(rubric.to_dict(), "Rubric created")


@router.get("/rubrics/{rubric_id}", tags=["rubrics"])
async def get_rubric(
    rubric_id: str,
    principal: Principal = Depends(get_current_principal),
    service: GradebookService = Depends(get_service)
):
    rubric = await service.get_rubric(principal, rubric_id)
    return APIResponse.success(rubric.to_dict())


@router.post("/rubrics/{rubric_id}/evaluate", tags=["rubrics"])
async def evaluate_rubric(
    rubric_id: str,
    payload: EvaluateRubricRequest,
    principal: Principal = Depends(get_current_principal),
    service: GradebookService = Depends(get_service)
):
    score = await service.evaluate_rubric(principal, rubric_id, payload.selections)
    return APIResponse.success(score.to_dict())
