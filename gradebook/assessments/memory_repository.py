"""
Memory Gradebook Repositories

This module provides in-memory implementations of the gradebook repository
interfaces for development and testing purposes.

Stored objects are deep-copied on the way in and out, so callers can
mutate what they get back without touching the store. Each repository
serialises its writes with an ``asyncio.Lock``, which makes the
check-then-write operations atomic within one event loop.
"""

import asyncio
import copy
import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from gradebook.common.errors import AttemptLimitExceeded, AttemptNotEditable, NotFoundError
from gradebook.common.logger import app_logger
from gradebook.assessments.models import (
    Assessment,
    AssessmentAttempt,
    AssessmentResponse,
    AttemptStatus,
    Question,
    Rubric,
    RubricEvaluation,
    utcnow,
)
from gradebook.assessments.repositories import (
    AttemptRepository,
    QuestionBankRepository,
    QuestionEdit,
    RubricRepository,
)

logger = app_logger.getChild("assessments.memory_repository")


class MemoryQuestionBankRepository(QuestionBankRepository):
    """
    In-memory implementation of the QuestionBankRepository.
    """

    def __init__(self):
        self._assessments: Dict[str, Assessment] = {}
        self._questions: Dict[str, Question] = {}
        self._lock = asyncio.Lock()

    async def get_assessment(self, assessment_id: str) -> Optional[Assessment]:
        return copy.deepcopy(self._assessments.get(assessment_id))

    async def save_assessment(self, assessment: Assessment) -> Assessment:
        async with self._lock:
            self._assessments[assessment.id] = copy.deepcopy(assessment)
        return assessment

    async def list_assessments(self, course_id: Optional[str] = None) -> List[Assessment]:
        result = [
            a for a in self._assessments.values()
            if course_id is None or a.course_id == course_id
        ]
        result.sort(key=lambda a: a.created_at)
        return copy.deepcopy(result)

    async def get_question(self, question_id: str) -> Optional[Question]:
        return copy.deepcopy(self._questions.get(question_id))

    async def list_questions(self, assessment_id: str) -> List[Question]:
        result = [q for q in self._questions.values() if q.assessment_id == assessment_id]
        result.sort(key=lambda q: q.order_index)
        return copy.deepcopy(result)

    async def modify_questions(
        self, assessment_id: str, edit: QuestionEdit
    ) -> Tuple[Assessment, List[Question]]:
        async with self._lock:
            stored = self._assessments.get(assessment_id)
            if stored is None:
                raise NotFoundError("Assessment", assessment_id)
            assessment = copy.deepcopy(stored)
            questions = edit(assessment, await self.list_questions(assessment_id))

            keep = {q.id for q in questions}
            for question_id in [
                qid for qid, q in self._questions.items()
                if q.assessment_id == assessment_id and qid not in keep
            ]:
                del self._questions[question_id]
            for question in questions:
                self._questions[question.id] = copy.deepcopy(question)
            self._assessments[assessment_id] = copy.deepcopy(assessment)
            return assessment, questions

    def clear(self) -> None:
        """
        Clear all assessments and questions.

        This method is specific to the memory implementation and not part of
        the QuestionBankRepository interface.
        """
        self._assessments.clear()
        self._questions.clear()


class MemoryAttemptRepository(AttemptRepository):
    """
    In-memory implementation of the AttemptRepository.

    Responses are kept apart from their attempts, keyed by
    (attempt_id, question_id), which is what makes saves overwrite.
    """

    def __init__(self):
        self._attempts: Dict[str, AssessmentAttempt] = {}
        self._responses: Dict[Tuple[str, str], AssessmentResponse] = {}
        self._evaluations: Dict[str, RubricEvaluation] = {}
        self._lock = asyncio.Lock()

    def _load(self, attempt: AssessmentAttempt, include_responses: bool) -> AssessmentAttempt:
        loaded = copy.deepcopy(attempt)
        if include_responses:
            loaded.responses = sorted(
                (copy.deepcopy(r) for (attempt_id, _), r in self._responses.items() if attempt_id == attempt.id),
                key=lambda r: r.created_at
            )
        return loaded

    def _store_response(self, response: AssessmentResponse) -> AssessmentResponse:
        key = (response.attempt_id, response.question_id)
        existing = self._responses.get(key)
        stored = copy.deepcopy(response)
        if existing is not None:
            stored.id = existing.id
            stored.created_at = existing.created_at
        stored.updated_at = utcnow()
        self._responses[key] = stored
        return copy.deepcopy(stored)

    async def get_attempt(self, attempt_id: str, include_responses: bool = True) -> Optional[AssessmentAttempt]:
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            return None
        return self._load(attempt, include_responses)

    async def list_attempts(
        self,
        assessment_id: Optional[str] = None,
        user_id: Optional[str] = None,
        statuses: Optional[Sequence[AttemptStatus]] = None,
        include_responses: bool = False
    ) -> List[AssessmentAttempt]:
        result = [
            a for a in self._attempts.values()
            if (assessment_id is None or a.assessment_id == assessment_id)
            and (user_id is None or a.user_id == user_id)
            and (statuses is None or a.status in statuses)
        ]
        result.sort(key=lambda a: (a.started_at, a.attempt_number))
        return [self._load(a, include_responses) for a in result]

    async def count_attempts(self, assessment_id: str, user_id: str) -> int:
        return sum(
            1 for a in self._attempts.values()
            if a.assessment_id == assessment_id and a.user_id == user_id
        )

    async def create_next_attempt(
        self,
        assessment_id: str,
        user_id: str,
        max_attempts: Optional[int],
        started_at: datetime.datetime,
        time_limit_minutes: Optional[int] = None
    ) -> AssessmentAttempt:
        async with self._lock:
            existing = await self.count_attempts(assessment_id, user_id)
            if max_attempts is not None and existing >= max_attempts:
                raise AttemptLimitExceeded(assessment_id, user_id, max_attempts)

            attempt = AssessmentAttempt(
                assessment_id=assessment_id,
                user_id=user_id,
                attempt_number=existing + 1,
                started_at=started_at,
                time_limit_minutes=time_limit_minutes
            )
            self._attempts[attempt.id] = copy.deepcopy(attempt)
            logger.debug(f"Stored attempt {attempt.id} as number {attempt.attempt_number} for {user_id}")
            return attempt

    async def upsert_response(
        self,
        response: AssessmentResponse,
        require_status: AttemptStatus = AttemptStatus.IN_PROGRESS
    ) -> AssessmentResponse:
        async with self._lock:
            attempt = self._attempts.get(response.attempt_id)
            if attempt is None:
                raise NotFoundError("AssessmentAttempt", response.attempt_id)
            if attempt.status is not require_status:
                raise AttemptNotEditable(attempt.id, attempt.status.value, "answered")
            return self._store_response(response)

    async def commit_attempt(
        self,
        attempt: AssessmentAttempt,
        responses: Sequence[AssessmentResponse],
        expected_status: AttemptStatus,
        evaluations: Sequence[RubricEvaluation] = ()
    ) -> AssessmentAttempt:
        async with self._lock:
            stored = self._attempts.get(attempt.id)
            if stored is None:
                raise NotFoundError("AssessmentAttempt", attempt.id)
            if stored.status is not expected_status:
                raise AttemptNotEditable(attempt.id, stored.status.value, f"moved to {attempt.status.value}")

            for evaluation in evaluations:
                self._evaluations[evaluation.id] = copy.deepcopy(evaluation)
            for response in responses:
                self._store_response(response)
            header = copy.deepcopy(attempt)
            header.responses = []
            self._attempts[attempt.id] = header
            logger.debug(f"Committed attempt {attempt.id} as {attempt.status.value} with {len(responses)} responses")
            return self._load(header, include_responses=True)

    async def list_evaluations(self, attempt_id: str) -> List[RubricEvaluation]:
        result = [e for e in self._evaluations.values() if e.attempt_id == attempt_id]
        result.sort(key=lambda e: e.evaluated_at)
        return copy.deepcopy(result)

    def clear(self) -> None:
        self._attempts.clear()
        self._responses.clear()
        self._evaluations.clear()


class MemoryRubricRepository(RubricRepository):
    """
    In-memory implementation of the RubricRepository.
    """

    def __init__(self):
        self._rubrics: Dict[str, Rubric] = {}

    async def get_rubric(self, rubric_id: str) -> Optional[Rubric]:
        return copy.deepcopy(self._rubrics.get(rubric_id))

    async def save_rubric(self, rubric: Rubric) -> Rubric:
        self._rubrics[rubric.id] = copy.deepcopy(rubric)
        return rubric

    async def list_rubrics(self, assessment_id: Optional[str] = None) -> List[Rubric]:
        result = [
            r for r in self._rubrics.values()
            if assessment_id is None or r.assessment_id == assessment_id
        ]
        result.sort(key=lambda r: r.created_at)
        return copy.deepcopy(result)

