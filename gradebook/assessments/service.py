"""
Gradebook Service

The facade the API layer talks to. It wires the engine components to one
set of repositories and performs the caller identity checks:

- learners start, answer, submit and read their own attempts
- graders (and instructors/admins) grade, read any attempt and see the queue
- instructors and admins author assessments and rubrics
"""

import datetime
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.orm import sessionmaker

from gradebook.common.auth import Principal
from gradebook.common.errors import NotAuthorized
from gradebook.common.logger import app_logger
from gradebook.assessments.analytics import AnalyticsAggregator, AssessmentAnalytics
from gradebook.assessments.attempt_manager import AttemptManager, is_overdue
from gradebook.assessments.grading import GradingEngine, PendingGrading
from gradebook.assessments.memory_repository import (
    MemoryAttemptRepository,
    MemoryQuestionBankRepository,
    MemoryRubricRepository,
)
from gradebook.assessments.models import (
    Assessment,
    AssessmentAttempt,
    AssessmentResponse,
    AttemptStatus,
    ManualGrade,
    Question,
    Rubric,
    RubricEvaluation,
)
from gradebook.assessments.question_bank import QuestionBank
from gradebook.assessments.repositories import (
    AttemptRepository,
    QuestionBankRepository,
    RubricRepository,
)
from gradebook.assessments.response_recorder import ResponseRecorder
from gradebook.assessments.rubrics import RubricEvaluator, RubricScore
from gradebook.assessments.sql_repository import (
    SqlAttemptRepository,
    SqlQuestionBankRepository,
    SqlRubricRepository,
)

logger = app_logger.getChild("assessments.service")


class GradebookService:
    """
    Entry point for every gradebook operation.
    """

    def __init__(
        self,
        question_bank_repository: QuestionBankRepository,
        attempt_repository: AttemptRepository,
        rubric_repository: RubricRepository,
        start_retries: int = 3
    ):
        self.question_bank = QuestionBank(question_bank_repository)
        self.attempt_manager = AttemptManager(question_bank_repository, attempt_repository, start_retries)
        self.recorder = ResponseRecorder(question_bank_repository, attempt_repository)
        self.rubrics = RubricEvaluator(rubric_repository)
        self.grading = GradingEngine(question_bank_repository, attempt_repository, self.rubrics)
        self.analytics = AnalyticsAggregator(question_bank_repository, attempt_repository)

    @classmethod
    def in_memory(cls, start_retries: int = 3) -> 'GradebookService':
        return cls(
            MemoryQuestionBankRepository(),
            MemoryAttemptRepository(),
            MemoryRubricRepository(),
            start_retries=start_retries
        )

    @classmethod
    def with_sql(cls, session_factory: Optional[sessionmaker] = None, start_retries: int = 3) -> 'GradebookService':
        """Build a service over the SQL repositories (the global engine unless a factory is given)."""
        return cls(
            SqlQuestionBankRepository(session_factory),
            SqlAttemptRepository(session_factory),
            SqlRubricRepository(session_factory),
            start_retries=start_retries
        )

    # --- Question bank ---

    async def create_assessment(self, principal: Principal, course_id: str, title: str, **fields: Any) -> Assessment:
        principal.require_author("assessments")
        return await self.question_bank.create_assessment(
            course_id=course_id,
            created_by=principal.user_id,
            title=title,
            **fields
        )

    async def get_assessment(self, principal: Principal, assessment_id: str) -> Tuple[Assessment, List[Question]]:
        """Get an assessment with its ordered questions; learners only see published ones."""
        assessment = await self.question_bank.get_assessment(assessment_id)
        if not assessment.is_published and not principal.can_author:
            raise NotAuthorized(
                f"Assessment {assessment_id} is not published",
                resource=f"assessment:{assessment_id}",
                action="read"
            )
        return assessment, await self.question_bank.list_questions(assessment_id)

    async def list_assessments(self, principal: Principal, course_id: Optional[str] = None) -> List[Assessment]:
        assessments = await self.question_bank.list_assessments(course_id)
        if principal.can_author:
            return assessments
        return [a for a in assessments if a.is_published]

    async def add_question(self, principal: Principal, assessment_id: str, **fields: Any) -> Question:
        principal.require_author(f"assessment:{assessment_id}")
        return await self.question_bank.add_question(assessment_id, **fields)

    async def update_question(
        self, principal: Principal, assessment_id: str, question_id: str, changes: Mapping[str, Any]
    ) -> Question:
        principal.require_author(f"assessment:{assessment_id}")
        return await self.question_bank.update_question(assessment_id, question_id, changes)

    async def remove_question(self, principal: Principal, assessment_id: str, question_id: str) -> None:
        principal.require_author(f"assessment:{assessment_id}")
        await self.question_bank.remove_question(assessment_id, question_id)

    async def reorder_questions(
        self, principal: Principal, assessment_id: str, question_ids: Sequence[str]
    ) -> List[Question]:
        principal.require_author(f"assessment:{assessment_id}")
        return await self.question_bank.reorder_questions(assessment_id, question_ids)

    async def publish_assessment(self, principal: Principal, assessment_id: str) -> Assessment:
        principal.require_author(f"assessment:{assessment_id}")
        return await self.question_bank.publish_assessment(assessment_id)

    async def unpublish_assessment(self, principal: Principal, assessment_id: str) -> Assessment:
        principal.require_author(f"assessment:{assessment_id}")
        return await self.question_bank.unpublish_assessment(assessment_id)

    # --- Attempts ---

    async def start_attempt(self, principal: Principal, assessment_id: str) -> AssessmentAttempt:
        return await self.attempt_manager.start_attempt(assessment_id, principal.user_id)

    async def get_attempt(self, principal: Principal, attempt_id: str) -> AssessmentAttempt:
        attempt = await self.attempt_manager.get_attempt(attempt_id)
        if not principal.can_grade:
            principal.require_owner(attempt.user_id, f"attempt:{attempt_id}", "read")
        return attempt

    async def list_attempts(
        self,
        principal: Principal,
        assessment_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[AttemptStatus] = None
    ) -> List[AssessmentAttempt]:
        """List attempts; callers who cannot grade only ever see their own."""
        if not principal.can_grade:
            if user_id is not None:
                principal.require_owner(user_id, "attempts", "list")
            user_id = principal.user_id
        return await self.attempt_manager.list_attempts(assessment_id, user_id, status)

    async def save_response(
        self, principal: Principal, attempt_id: str, question_id: str, answer_data: Any
    ) -> AssessmentResponse:
        attempt = await self.attempt_manager.get_attempt(attempt_id, include_responses=False)
        principal.require_owner(attempt.user_id, f"attempt:{attempt_id}", "answer")
        return await self.recorder.save_response(attempt, question_id, answer_data)

    async def submit_attempt(
        self, principal: Principal, attempt_id: str, responses: Optional[Mapping[str, Any]] = None
    ) -> AssessmentAttempt:
        attempt = await self.attempt_manager.get_attempt(attempt_id, include_responses=False)
        principal.require_owner(attempt.user_id, f"attempt:{attempt_id}", "submit")
        return await self.grading.submit_attempt(attempt_id, responses)

    async def grade_attempt(
        self,
        principal: Principal,
        attempt_id: str,
        grades: Sequence[ManualGrade],
        feedback: Optional[str] = None
    ) -> AssessmentAttempt:
        principal.require_grader(f"attempt:{attempt_id}")
        return await self.grading.grade_attempt(attempt_id, grades, grader_id=principal.user_id, feedback=feedback)

    async def expire_attempt(self, principal: Principal, attempt_id: str) -> AssessmentAttempt:
        attempt = await self.attempt_manager.get_attempt(attempt_id, include_responses=False)
        if not principal.can_grade:
            principal.require_owner(attempt.user_id, f"attempt:{attempt_id}", "expire")
        return await self.attempt_manager.expire_attempt(attempt_id)

    async def is_overdue(
        self, principal: Principal, attempt_id: str, now: Optional[datetime.datetime] = None
    ) -> bool:
        return is_overdue(await self.get_attempt(principal, attempt_id), now)

    async def get_pending_grading(
        self, principal: Principal, assessment_id: Optional[str] = None
    ) -> List[PendingGrading]:
        principal.require_grader("grading queue")
        return await self.grading.get_pending_grading(assessment_id)

    async def list_evaluations(self, principal: Principal, attempt_id: str) -> List[RubricEvaluation]:
        principal.require_grader(f"attempt:{attempt_id}")
        return await self.grading.list_evaluations(attempt_id)

    # --- Rubrics ---

    async def create_rubric(
        self, principal: Principal, title: str, criteria: Sequence[Mapping[str, Any]], **fields: Any
    ) -> Rubric:
        principal.require_author("rubrics")
        return await self.rubrics.create_rubric(title, criteria, created_by=principal.user_id, **fields)

    async def get_rubric(self, principal: Principal, rubric_id: str) -> Rubric:
        principal.require_grader(f"rubric:{rubric_id}")
        return await self.rubrics.get_rubric(rubric_id)

    async def list_rubrics(self, principal: Principal, assessment_id: Optional[str] = None) -> List[Rubric]:
        principal.require_grader("rubrics")
        return await self.rubrics.list_rubrics(assessment_id)

    async def evaluate_rubric(
        self, principal: Principal, rubric_id: str, selections: Mapping[str, Any]
    ) -> RubricScore:
        principal.require_grader(f"rubric:{rubric_id}")
        _, score = await self.rubrics.evaluate(rubric_id, selections)
        return score

    # --- Analytics ---

    async def get_analytics(self, principal: Principal, assessment_id: str) -> AssessmentAnalytics:
        principal.require_grader(f"assessment:{assessment_id} analytics")
        return await self.analytics.get_analytics(assessment_id)


def build_service(backend: str = "sql", start_retries: int = 3) -> GradebookService:
    """Create the service for the configured storage backend."""
    logger.info(f"Building gradebook service on the {backend} backend")
    if backend == "memory":
        return GradebookService.in_memory(start_retries)
    return GradebookService.with_sql(start_retries=start_retries)
