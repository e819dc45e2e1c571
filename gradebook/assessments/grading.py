"""
Grading Engine

Scoring is split in two layers:

1. Pure functions (``grade_response``, ``score_responses``) that turn
   question definitions and answers into points, with no I/O.
2. ``GradingEngine``, which loads an attempt, runs the pure layer and
   commits the result through the attempt repository in one atomic write.

Objective questions (multiple choice, true/false) are graded on submit.
Every other type waits in the manual grading queue, keeping the attempt at
``submitted`` with a provisional score until a grader finalizes it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from gradebook.common.errors import AttemptNotEditable, NotFoundError, ValidationError
from gradebook.common.logger import app_logger, log_execution_time
from gradebook.assessments.models import (
    Assessment,
    AssessmentAttempt,
    AssessmentResponse,
    AttemptStatus,
    ManualGrade,
    Question,
    RubricEvaluation,
    utcnow,
)
from gradebook.assessments.question_types import (
    ANSWER_DATA_TYPES,
    AnswerData,
    ChoiceAnswer,
    QuestionType,
    parse_answer_data,
)
from gradebook.assessments.repositories import AttemptRepository, QuestionBankRepository
from gradebook.assessments.rubrics import RubricEvaluator, scale_to_points

logger = app_logger.getChild("assessments.grading")


@dataclass(frozen=True)
class GradeResult:
    """Outcome of grading one answer."""

    is_correct: Optional[bool]
    points_earned: float
    auto_graded: bool


@dataclass(frozen=True)
class ScoreSummary:
    score: float
    total_possible: float
    percentage: float
    passed: bool

    def apply_to(self, attempt: AssessmentAttempt) -> None:
        attempt.score = self.score
        attempt.total_possible = self.total_possible
        attempt.percentage = self.percentage
        attempt.passed = self.passed


def answer_for(question: Question, answer: Optional[AnswerData]) -> Optional[AnswerData]:
    """
    The stored ``answer`` if it still fits ``question``.

    An answer saved before the question's type was changed no longer fits
    and is treated as no answer at all.
    """
    if answer is None or isinstance(answer, ANSWER_DATA_TYPES[question.question_type]):
        return answer
    logger.warning(
        f"Dropping {type(answer).__name__} saved for {question.question_type.value} question {question.id}"
    )
    return None


def grade_response(question: Question, answer: Optional[AnswerData]) -> GradeResult:
    """
    Grade a single answer against its question.

    A missing answer, or one that does not fit the question's type, earns
    nothing and counts as incorrect. Subjective types are never judged
    here; they get zero provisional points and are left for a human grader.
    """
    answer = answer_for(question, answer)
    if answer is None:
        return GradeResult(is_correct=False, points_earned=0.0, auto_graded=True)

    data = question.question_data
    if question.question_type is QuestionType.MULTIPLE_CHOICE:
        is_correct = answer.option_id == data.correct_option.id
    elif question.question_type is QuestionType.TRUE_FALSE:
        is_correct = answer.value == data.correct_answer
    else:
        return GradeResult(is_correct=None, points_earned=0.0, auto_graded=False)

    return GradeResult(
        is_correct=is_correct,
        points_earned=float(question.points) if is_correct else 0.0,
        auto_graded=True
    )


def score_responses(
    questions: Sequence[Question],
    points_by_question: Mapping[str, Optional[float]],
    passing_score: Optional[float]
) -> ScoreSummary:
    """
    Aggregate per-question points into an attempt score.

    ``total_possible`` is the sum of the question points; points for a
    question are capped at its value and questions without points count
    as zero.
    """
    total_possible = float(sum(q.points for q in questions))
    score = 0.0
    for question in questions:
        earned = points_by_question.get(question.id) or 0.0
        score += min(max(earned, 0.0), float(question.points))

    percentage = score / total_possible * 100 if total_possible > 0 else 0.0
    passed = True if passing_score is None else percentage >= passing_score
    return ScoreSummary(score=score, total_possible=total_possible, percentage=percentage, passed=passed)


def needs_manual_grading(questions: Iterable[Question]) -> bool:
    return any(not question.is_auto_gradable for question in questions)


def pending_responses(attempt: AssessmentAttempt) -> List[AssessmentResponse]:
    """Responses of ``attempt`` still waiting for a human grader."""
    return [r for r in attempt.responses if not r.auto_graded and r.graded_at is None]


def validate_answer(question: Question, raw_answer: Any) -> AnswerData:
    """
    Parse an answer for ``question``, rejecting choices that do not exist.

    Raises:
        ValidationError: If the answer is malformed for the question type
    """
    answer = parse_answer_data(question.question_type, raw_answer)
    if isinstance(answer, ChoiceAnswer):
        if not question.question_data.has_option(answer.option_id):
            raise ValidationError(
                f"Option {answer.option_id} is not an option of question {question.id}",
                errors={"option_id": answer.option_id}
            )
    return answer


@dataclass
class PendingGrading:
    """A submitted attempt together with the responses awaiting a grader."""

    attempt: AssessmentAttempt
    responses: List[AssessmentResponse] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt": self.attempt.to_dict(include_responses=False),
            "pending_responses": [r.to_dict() for r in self.responses],
        }


class GradingEngine:
    """
    Submits attempts, grades them automatically and applies manual grades.
    """

    def __init__(
        self,
        question_bank: QuestionBankRepository,
        attempts: AttemptRepository,
        rubrics: RubricEvaluator
    ):
        self.question_bank = question_bank
        self.attempts = attempts
        self.rubrics = rubrics

    async def _load(self, attempt_id: str) -> Tuple[AssessmentAttempt, Assessment, List[Question]]:
        attempt = await self.attempts.get_attempt(attempt_id)
        if attempt is None:
            raise NotFoundError("AssessmentAttempt", attempt_id)
        assessment = await self.question_bank.get_assessment(attempt.assessment_id)
        if assessment is None:
            raise NotFoundError("Assessment", attempt.assessment_id)
        questions = await self.question_bank.list_questions(assessment.id)

        question_total = sum(q.points for q in questions)
        if abs(assessment.total_points - question_total) > 1e-9:
            logger.warning(
                f"Assessment {assessment.id} total_points {assessment.total_points} "
                f"does not match its questions ({question_total}); scoring uses the questions"
            )
        return attempt, assessment, questions

    @log_execution_time(logger)
    async def submit_attempt(
        self,
        attempt_id: str,
        responses: Optional[Mapping[str, Any]] = None
    ) -> AssessmentAttempt:
        """
        Submit an in-progress attempt and grade what can be graded.

        Args:
            attempt_id: Attempt to submit
            responses: Final answers by question id; they replace any saved
                answer for the same question

        Returns:
            The attempt, ``graded`` if every question was machine-gradable,
            ``submitted`` with a provisional score otherwise

        Raises:
            NotFoundError: If the attempt or its assessment is missing
            AttemptNotEditable: If the attempt is not in progress
            ValidationError: If a submitted answer is malformed or names a
                question outside the assessment
        """
        attempt, assessment, questions = await self._load(attempt_id)
        if attempt.status is not AttemptStatus.IN_PROGRESS:
            logger.warning(f"Rejected submit of attempt {attempt_id} in status {attempt.status.value}")
            raise AttemptNotEditable(attempt_id, attempt.status.value, "submitted")

        by_id = {q.id: q for q in questions}
        answers: Dict[str, Optional[AnswerData]] = {r.question_id: r.answer_data for r in attempt.responses}
        for question_id, raw_answer in (responses or {}).items():
            question = by_id.get(question_id)
            if question is None:
                raise ValidationError(
                    f"Question {question_id} is not part of assessment {assessment.id}",
                    errors={"question_id": question_id}
                )
            answers[question_id] = validate_answer(question, raw_answer)

        now = utcnow()
        graded: List[AssessmentResponse] = []
        for question in questions:
            answer = answer_for(question, answers.get(question.id))
            result = grade_response(question, answer)
            existing = attempt.response_for(question.id)
            response = AssessmentResponse(
                attempt_id=attempt.id,
                question_id=question.id,
                question_type=question.question_type,
                answer_data=answer,
                is_correct=result.is_correct,
                points_earned=result.points_earned,
                auto_graded=result.auto_graded,
                graded_at=now if result.auto_graded else None
            )
            if existing is not None:
                response.id = existing.id
                response.created_at = existing.created_at
            graded.append(response)

        summary = score_responses(
            questions, {r.question_id: r.points_earned for r in graded}, assessment.passing_score
        )
        summary.apply_to(attempt)
        attempt.submitted_at = now
        attempt.time_spent_seconds = max(0, int((now - attempt.started_at).total_seconds()))

        manual = needs_manual_grading(questions)
        if manual:
            attempt.status = AttemptStatus.SUBMITTED
        else:
            attempt.status = AttemptStatus.GRADED
            attempt.graded_at = now

        committed = await self.attempts.commit_attempt(attempt, graded, AttemptStatus.IN_PROGRESS)

        if manual:
            logger.info(
                f"Attempt {attempt_id} submitted with provisional score "
                f"{summary.score}/{summary.total_possible}; "
                f"{len(pending_responses(committed))} responses queued for manual grading"
            )
        else:
            logger.info(
                f"Attempt {attempt_id} auto-graded: {summary.score}/{summary.total_possible} "
                f"({summary.percentage:.1f}%), passed={summary.passed}"
            )
        return committed

    @log_execution_time(logger)
    async def grade_attempt(
        self,
        attempt_id: str,
        grades: Sequence[ManualGrade],
        grader_id: Optional[str] = None,
        feedback: Optional[str] = None
    ) -> AssessmentAttempt:
        """
        Apply a grader's verdicts and finalize a submitted attempt.

        Grades may override any response, objective ones included.
        Subjective responses left ungraded keep zero points.

        Raises:
            NotFoundError: If the attempt, assessment or a rubric is missing
            AttemptNotEditable: If the attempt is not ``submitted``
            ValidationError: For foreign questions, duplicate grades or
                points outside the question's range
        """
        attempt, assessment, questions = await self._load(attempt_id)
        if attempt.status is not AttemptStatus.SUBMITTED:
            logger.warning(f"Rejected grading of attempt {attempt_id} in status {attempt.status.value}")
            raise AttemptNotEditable(attempt_id, attempt.status.value, "graded")

        by_id = {q.id: q for q in questions}
        seen = set()
        now = utcnow()
        updated: List[AssessmentResponse] = []
        evaluations: List[RubricEvaluation] = []

        for grade in grades:
            question = by_id.get(grade.question_id)
            if question is None:
                raise ValidationError(
                    f"Question {grade.question_id} is not part of assessment {assessment.id}",
                    errors={"question_id": grade.question_id}
                )
            if grade.question_id in seen:
                raise ValidationError(
                    f"Question {grade.question_id} was graded twice",
                    errors={"question_id": grade.question_id}
                )
            seen.add(grade.question_id)

            if grade.rubric_id is not None:
                rubric, rubric_score = await self.rubrics.evaluate(grade.rubric_id, grade.selections)
                points = scale_to_points(rubric_score, question.points)
                evaluations.append(RubricEvaluation(
                    attempt_id=attempt.id,
                    rubric_id=rubric.id,
                    question_id=question.id,
                    evaluator_id=grader_id,
                    scores=rubric_score.criterion_scores,
                    total_score=rubric_score.total,
                    max_score=rubric_score.max_score,
                    percentage=rubric_score.percentage,
                    overall_feedback=grade.feedback,
                    evaluated_at=now
                ))
            else:
                points = float(grade.points_earned)

            if not 0 <= points <= question.points:
                raise ValidationError(
                    f"Points for question {question.id} must be between 0 and {question.points}",
                    errors={"points_earned": points}
                )

            response = attempt.response_for(question.id) or AssessmentResponse(
                attempt_id=attempt.id,
                question_id=question.id,
                question_type=question.question_type
            )
            response.points_earned = points
            response.feedback = grade.feedback
            if grade.is_correct is not None:
                response.is_correct = grade.is_correct
            elif question.is_auto_gradable:
                response.is_correct = points == question.points
            else:
                response.is_correct = None
            response.auto_graded = False
            response.graded_at = now
            updated.append(response)

        graded_ids = {r.question_id for r in updated}
        points_by_question: Dict[str, Optional[float]] = {
            r.question_id: r.points_earned for r in attempt.responses
        }
        points_by_question.update({r.question_id: r.points_earned for r in updated})

        still_pending = [r.question_id for r in pending_responses(attempt) if r.question_id not in graded_ids]
        if still_pending:
            logger.warning(
                f"Attempt {attempt_id} finalized with {len(still_pending)} ungraded responses "
                f"scored as zero: {still_pending}"
            )

        summary = score_responses(questions, points_by_question, assessment.passing_score)
        summary.apply_to(attempt)
        attempt.status = AttemptStatus.GRADED
        attempt.graded_at = now
        attempt.graded_by = grader_id
        if feedback is not None:
            attempt.feedback = feedback

        committed = await self.attempts.commit_attempt(
            attempt, updated, AttemptStatus.SUBMITTED, evaluations=evaluations
        )

        logger.info(
            f"Attempt {attempt_id} graded by {grader_id}: {summary.score}/{summary.total_possible} "
            f"({summary.percentage:.1f}%), passed={summary.passed}"
        )
        return committed

    async def get_pending_grading(self, assessment_id: Optional[str] = None) -> List[PendingGrading]:
        """List the manual grading queue, oldest submission first."""
        submitted = await self.attempts.list_attempts(
            assessment_id=assessment_id,
            statuses=[AttemptStatus.SUBMITTED],
            include_responses=True
        )
        submitted.sort(key=lambda a: a.submitted_at or a.started_at)
        return [PendingGrading(attempt=a, responses=pending_responses(a)) for a in submitted]

    async def list_evaluations(self, attempt_id: str) -> List[RubricEvaluation]:
        """Rubric evaluations recorded while grading an attempt."""
        return await self.attempts.list_evaluations(attempt_id)
