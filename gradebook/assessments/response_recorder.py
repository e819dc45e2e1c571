"""
Response Recorder

Persists a learner's answer to one question while the attempt is in
progress. Saving never grades; later saves for the same question
overwrite the earlier answer.
"""

from typing import Any

from gradebook.common.errors import AttemptNotEditable, NotFoundError, ValidationError
from gradebook.common.logger import app_logger
from gradebook.assessments.grading import validate_answer
from gradebook.assessments.models import AssessmentAttempt, AssessmentResponse, AttemptStatus
from gradebook.assessments.repositories import AttemptRepository, QuestionBankRepository

logger = app_logger.getChild("assessments.response_recorder")


class ResponseRecorder:
    def __init__(self, question_bank: QuestionBankRepository, attempts: AttemptRepository):
        self.question_bank = question_bank
        self.attempts = attempts

    async def save_response(
        self,
        attempt: AssessmentAttempt,
        question_id: str,
        answer_data: Any
    ) -> AssessmentResponse:
        """
        Upsert the answer to ``question_id`` on ``attempt``.

        The status guard is re-checked by the repository inside the write,
        so a save racing a submit cannot land after it.

        Raises:
            AttemptNotEditable: If the attempt is not in progress
            NotFoundError: If the question does not exist
            ValidationError: If the question belongs to another assessment
                or the answer is malformed
        """
        if attempt.status is not AttemptStatus.IN_PROGRESS:
            logger.warning(f"Rejected save on attempt {attempt.id} in status {attempt.status.value}")
            raise AttemptNotEditable(attempt.id, attempt.status.value, "answered")

        question = await self.question_bank.get_question(question_id)
        if question is None:
            raise NotFoundError("Question", question_id)
        if question.assessment_id != attempt.assessment_id:
            raise ValidationError(
                f"Question {question_id} is not part of assessment {attempt.assessment_id}",
                errors={"question_id": question_id}
            )

        response = AssessmentResponse(
            attempt_id=attempt.id,
            question_id=question.id,
            question_type=question.question_type,
            answer_data=validate_answer(question, answer_data)
        )
        saved = await self.attempts.upsert_response(response, require_status=AttemptStatus.IN_PROGRESS)
        logger.debug(f"Saved response to question {question_id} on attempt {attempt.id}")
        return saved
