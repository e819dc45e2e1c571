"""
Gradebook Repositories

This module defines the repository interfaces the engine persists through.
Attempts, their responses and the rubric evaluations behind their grades
are one aggregate: every write that moves an attempt between statuses goes
through a single atomic repository call, so the engine never leaves a
half-written submission or grading behind.
"""

import datetime
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence, Tuple

from gradebook.assessments.models import (
    Assessment,
    AssessmentAttempt,
    AssessmentResponse,
    AttemptStatus,
    Question,
    Rubric,
    RubricEvaluation,
)

QuestionEdit = Callable[[Assessment, List[Question]], List[Question]]


class QuestionBankRepository(ABC):
    """
    Abstract repository for assessments and their ordered questions.
    """

    @abstractmethod
    async def get_assessment(self, assessment_id: str) -> Optional[Assessment]:
        """Retrieve an assessment by ID, or None if it does not exist."""
        pass

    @abstractmethod
    async def save_assessment(self, assessment: Assessment) -> Assessment:
        """Insert or update an assessment."""
        pass

    @abstractmethod
    async def list_assessments(self, course_id: Optional[str] = None) -> List[Assessment]:
        pass

    @abstractmethod
    async def get_question(self, question_id: str) -> Optional[Question]:
        pass

    @abstractmethod
    async def list_questions(self, assessment_id: str) -> List[Question]:
        """
        Get the questions of an assessment.

        Returns:
            Questions ordered by ``order_index``
        """
        pass

    @abstractmethod
    async def modify_questions(
        self, assessment_id: str, edit: QuestionEdit
    ) -> Tuple[Assessment, List[Question]]:
        """
        Apply ``edit`` to the question list of an assessment and store the result.

        ``edit`` receives the assessment and its ordered questions and returns
        the complete new list; it may update the assessment in place.
        Reading, editing and writing happen under one lock (one transaction
        for SQL), so concurrent edits of the same assessment never drop each
        other's changes. Questions missing from the new list are deleted.

        Returns:
            The stored assessment and questions

        Raises:
            NotFoundError: If the assessment does not exist
            StorageError: If the store rejects the write
            Anything ``edit`` raises, with nothing written
        """
        pass


class AttemptRepository(ABC):
    """
    Abstract repository for attempts and their responses.
    """

    @abstractmethod
    async def get_attempt(self, attempt_id: str, include_responses: bool = True) -> Optional[AssessmentAttempt]:
        """Retrieve an attempt, with its responses unless told otherwise."""
        pass

    @abstractmethod
    async def list_attempts(
        self,
        assessment_id: Optional[str] = None,
        user_id: Optional[str] = None,
        statuses: Optional[Sequence[AttemptStatus]] = None,
        include_responses: bool = False
    ) -> List[AssessmentAttempt]:
        """
        Find attempts matching every given filter.

        Returns:
            Attempts ordered by ``started_at`` then ``attempt_number``
        """
        pass

    @abstractmethod
    async def count_attempts(self, assessment_id: str, user_id: str) -> int:
        pass

    @abstractmethod
    async def create_next_attempt(
        self,
        assessment_id: str,
        user_id: str,
        max_attempts: Optional[int],
        started_at: datetime.datetime,
        time_limit_minutes: Optional[int] = None
    ) -> AssessmentAttempt:
        """
        Count the learner's attempts and insert the next one atomically.

        Raises:
            AttemptLimitExceeded: If the count has reached ``max_attempts``
            AttemptConflictError: If a concurrent start took the same number
            StorageError: For any other store failure
        """
        pass

    @abstractmethod
    async def upsert_response(
        self,
        response: AssessmentResponse,
        require_status: AttemptStatus = AttemptStatus.IN_PROGRESS
    ) -> AssessmentResponse:
        """
        Insert or overwrite the response for (attempt, question).

        Raises:
            NotFoundError: If the attempt does not exist
            AttemptNotEditable: If the attempt's status is not ``require_status``
        """
        pass

    @abstractmethod
    async def commit_attempt(
        self,
        attempt: AssessmentAttempt,
        responses: Sequence[AssessmentResponse],
        expected_status: AttemptStatus,
        evaluations: Sequence[RubricEvaluation] = ()
    ) -> AssessmentAttempt:
        """
        Write ``attempt``, upsert ``responses`` and insert the rubric
        ``evaluations`` behind its grades in one transaction.

        The write only happens if the stored status still equals
        ``expected_status``; otherwise nothing is written.

        Raises:
            NotFoundError: If the attempt does not exist
            AttemptNotEditable: If the stored status changed underneath
            StorageError: If the store rejects the write, with nothing written
        """
        pass

    @abstractmethod
    async def list_evaluations(self, attempt_id: str) -> List[RubricEvaluation]:
        """Rubric evaluations recorded when grading ``attempt_id``, oldest first."""
        pass


class RubricRepository(ABC):
    """
    Abstract repository for rubrics.
    """

    @abstractmethod
    async def get_rubric(self, rubric_id: str) -> Optional[Rubric]:
        pass

    @abstractmethod
    async def save_rubric(self, rubric: Rubric) -> Rubric:
        pass

    @abstractmethod
    async def list_rubrics(self, assessment_id: Optional[str] = None) -> List[Rubric]:
        pass
