"""
Attempt Manager

Creates attempts under the attempt-count rule and moves them to
``expired`` when their time runs out.
"""

import datetime
from typing import List, Optional

from gradebook.common.errors import (
    AssessmentUnavailable,
    AttemptConflictError,
    AttemptNotEditable,
    NotFoundError,
    StorageError,
)
from gradebook.common.logger import app_logger, with_context
from gradebook.assessments.models import Assessment, AssessmentAttempt, AttemptStatus, utcnow
from gradebook.assessments.repositories import AttemptRepository, QuestionBankRepository

logger = app_logger.getChild("assessments.attempt_manager")


def is_overdue(attempt: AssessmentAttempt, now: Optional[datetime.datetime] = None) -> bool:
    """Whether an in-progress attempt has run past its deadline."""
    deadline = attempt.deadline
    if deadline is None or attempt.status is not AttemptStatus.IN_PROGRESS:
        return False
    return (now or utcnow()) > deadline


class AttemptManager:
    """
    Creates attempts and tracks their status.

    Attempt numbers come from the repository's atomic count-then-insert;
    a start that loses a race on the same number is retried up to
    ``max_retries`` times.
    """

    def __init__(
        self,
        question_bank: QuestionBankRepository,
        attempts: AttemptRepository,
        max_retries: int = 3
    ):
        self.question_bank = question_bank
        self.attempts = attempts
        self.max_retries = max_retries

    async def _get_assessment(self, assessment_id: str) -> Assessment:
        assessment = await self.question_bank.get_assessment(assessment_id)
        if assessment is None:
            raise NotFoundError("Assessment", assessment_id)
        return assessment

    async def start_attempt(self, assessment_id: str, user_id: str) -> AssessmentAttempt:
        """
        Start the learner's next attempt at an assessment.

        Raises:
            NotFoundError: If the assessment does not exist
            AssessmentUnavailable: If it is unpublished or outside its window
            AttemptLimitExceeded: If the learner has used up ``max_attempts``
            StorageError: If the start kept conflicting with concurrent starts
        """
        log = with_context(logger.name, assessment_id=assessment_id, user_id=user_id)
        assessment = await self._get_assessment(assessment_id)
        now = utcnow()

        reason = assessment.unavailable_reason(now)
        if reason:
            log.warning(f"Refused attempt on assessment {assessment_id}: {reason}")
            raise AssessmentUnavailable(assessment_id, reason)

        conflict: Optional[AttemptConflictError] = None
        for retry in range(self.max_retries + 1):
            try:
                attempt = await self.attempts.create_next_attempt(
                    assessment_id,
                    user_id,
                    assessment.max_attempts,
                    started_at=now,
                    time_limit_minutes=assessment.time_limit_minutes
                )
            except AttemptConflictError as e:
                conflict = e
                log.info(f"Attempt number conflict on start, retry {retry + 1} of {self.max_retries}")
                continue

            log.info(f"Started attempt {attempt.id} (number {attempt.attempt_number}) for user {user_id}")
            return attempt

        raise StorageError(
            f"could not allocate an attempt number after {self.max_retries} retries",
            cause=conflict,
            context={"assessment_id": assessment_id, "user_id": user_id}
        )

    async def get_attempt(self, attempt_id: str, include_responses: bool = True) -> AssessmentAttempt:
        attempt = await self.attempts.get_attempt(attempt_id, include_responses=include_responses)
        if attempt is None:
            raise NotFoundError("AssessmentAttempt", attempt_id)
        return attempt

    async def list_attempts(
        self,
        assessment_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[AttemptStatus] = None
    ) -> List[AssessmentAttempt]:
        return await self.attempts.list_attempts(
            assessment_id=assessment_id,
            user_id=user_id,
            statuses=[status] if status is not None else None
        )

    async def expire_attempt(self, attempt_id: str) -> AssessmentAttempt:
        """
        Move an in-progress attempt to the terminal ``expired`` status.

        Raises:
            AttemptNotEditable: If the attempt is no longer in progress
        """
        attempt = await self.get_attempt(attempt_id)
        if attempt.status is not AttemptStatus.IN_PROGRESS:
            logger.warning(f"Rejected expiry of attempt {attempt_id} in status {attempt.status.value}")
            raise AttemptNotEditable(attempt_id, attempt.status.value, "expired")

        now = utcnow()
        attempt.status = AttemptStatus.EXPIRED
        attempt.time_spent_seconds = max(0, int((now - attempt.started_at).total_seconds()))
        expired = await self.attempts.commit_attempt(attempt, [], AttemptStatus.IN_PROGRESS)
        logger.info(f"Expired attempt {attempt_id} after {attempt.time_spent_seconds} seconds")
        return expired
