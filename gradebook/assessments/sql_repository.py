"""
SQL Gradebook Repositories

Repository implementations over SQLAlchemy's async ORM. Every public
method runs in its own session and transaction; SQLAlchemy failures are
rolled back and surfaced as ``StorageError`` so no partial write survives
a failed call.
"""

import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload, sessionmaker

from gradebook.common.errors import (
    AttemptConflictError,
    AttemptLimitExceeded,
    AttemptNotEditable,
    NotFoundError,
    StorageError,
)
from gradebook.common.logger import app_logger
from gradebook.database.init_db import get_session_factory
from gradebook.assessments.database_models import (
    AssessmentRecord,
    AttemptRecord,
    QuestionRecord,
    ResponseRecord,
    RubricEvaluationRecord,
    RubricRecord,
)
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

logger = app_logger.getChild("assessments.sql_repository")


class _SqlRepository:
    """Shared session handling for the SQL repositories."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    @property
    def async_session(self) -> sessionmaker:
        """Get the async session factory, falling back to the global one."""
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    def _storage_error(self, action: str, error: Exception) -> StorageError:
        logger.error(f"{self.__class__.__name__} failed to {action}: {type(error).__name__}: {error}")
        return StorageError(f"failed to {action}", cause=error)


class SqlQuestionBankRepository(_SqlRepository, QuestionBankRepository):
    """
    Repository for assessments and questions using SQLAlchemy Async.
    """

    # --- Mapping between Domain and ORM ---

    def _map_assessment_to_domain(self, record: AssessmentRecord) -> Assessment:
        return Assessment(
            id=record.id,
            course_id=record.course_id,
            created_by=record.created_by,
            title=record.title,
            assessment_type=record.assessment_type,
            description=record.description,
            instructions=record.instructions,
            passing_score=record.passing_score,
            max_attempts=record.max_attempts,
            time_limit_minutes=record.time_limit_minutes,
            available_from=record.available_from,
            available_until=record.available_until,
            is_published=record.is_published,
            total_points=record.total_points,
            weight=record.weight,
            settings=dict(record.settings or {}),
            created_at=record.created_at,
            updated_at=record.updated_at
        )

    def _assessment_values(self, assessment: Assessment) -> Dict[str, Any]:
        values = assessment.to_dict()
        values.update(
            assessment_type=assessment.assessment_type.value,
            available_from=assessment.available_from,
            available_until=assessment.available_until,
            created_at=assessment.created_at,
            updated_at=assessment.updated_at
        )
        return values

    def _map_question_to_domain(self, record: QuestionRecord) -> Question:
        return Question(
            id=record.id,
            assessment_id=record.assessment_id,
            question_type=record.question_type,
            question_text=record.question_text,
            question_data=record.question_data,
            points=record.points,
            order_index=record.order_index,
            explanation=record.explanation,
            tags=list(record.tags or []),
            difficulty=record.difficulty,
            created_at=record.created_at
        )

    def _question_values(self, question: Question) -> Dict[str, Any]:
        return {
            "id": question.id,
            "assessment_id": question.assessment_id,
            "question_type": question.question_type.value,
            "question_text": question.question_text,
            "question_data": question.question_data.to_dict(),
            "points": question.points,
            "order_index": question.order_index,
            "explanation": question.explanation,
            "tags": list(question.tags),
            "difficulty": question.difficulty.value,
            "created_at": question.created_at,
        }

    async def _write_assessment(self, session: AsyncSession, assessment: Assessment) -> None:
        record = await session.get(AssessmentRecord, assessment.id)
        if record is None:
            record = AssessmentRecord(id=assessment.id)
            session.add(record)
        record.update(self._assessment_values(assessment))

    # --- Interface implementation ---

    async def get_assessment(self, assessment_id: str) -> Optional[Assessment]:
        try:
            async with self.async_session() as session:
                record = await session.get(AssessmentRecord, assessment_id)
                return self._map_assessment_to_domain(record) if record else None
        except SQLAlchemyError as e:
            raise self._storage_error(f"load assessment {assessment_id}", e)

    async def save_assessment(self, assessment: Assessment) -> Assessment:
        try:
            async with self.async_session() as session:
                async with session.begin():
                    await self._write_assessment(session, assessment)
            return assessment
        except SQLAlchemyError as e:
            raise self._storage_error(f"save assessment {assessment.id}", e)

    async def list_assessments(self, course_id: Optional[str] = None) -> List[Assessment]:
        query = select(AssessmentRecord).order_by(AssessmentRecord.created_at)
        if course_id is not None:
            query = query.where(AssessmentRecord.course_id == course_id)
        try:
            async with self.async_session() as session:
                result = await session.execute(query)
                return [self._map_assessment_to_domain(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise self._storage_error("list assessments", e)

    async def get_question(self, question_id: str) -> Optional[Question]:
        try:
            async with self.async_session() as session:
                record = await session.get(QuestionRecord, question_id)
                return self._map_question_to_domain(record) if record else None
        except SQLAlchemyError as e:
            raise self._storage_error(f"load question {question_id}", e)

    async def list_questions(self, assessment_id: str) -> List[Question]:
        query = (
            select(QuestionRecord)
            .where(QuestionRecord.assessment_id == assessment_id)
            .order_by(QuestionRecord.order_index)
        )
        try:
            async with self.async_session() as session:
                result = await session.execute(query)
                return [self._map_question_to_domain(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise self._storage_error(f"list questions of {assessment_id}", e)

    async def modify_questions(
        self, assessment_id: str, edit: QuestionEdit
    ) -> Tuple[Assessment, List[Question]]:
        try:
            async with self.async_session() as session:
                async with session.begin():
                    # Touching the assessment row first takes the write lock
                    # before the question list is read
                    locked = await session.execute(
                        update(AssessmentRecord.__table__)
                        .where(AssessmentRecord.__table__.c.id == assessment_id)
                        .values(updated_at=utcnow())
                    )
                    if locked.rowcount != 1:
                        raise NotFoundError("Assessment", assessment_id)

                    assessment = self._map_assessment_to_domain(await session.get(AssessmentRecord, assessment_id))
                    result = await session.execute(
                        select(QuestionRecord)
                        .where(QuestionRecord.assessment_id == assessment_id)
                        .order_by(QuestionRecord.order_index)
                    )
                    existing = {record.id: record for record in result.scalars().all()}
                    questions = edit(assessment, [self._map_question_to_domain(r) for r in existing.values()])
                    wanted = {question.id for question in questions}

                    await self._write_assessment(session, assessment)
                    for question_id, record in existing.items():
                        if question_id not in wanted:
                            await session.delete(record)

                    # Park kept rows on negative indexes first so reordering
                    # never collides on the (assessment, order_index) key
                    for offset, question_id in enumerate(q for q in existing if q in wanted):
                        existing[question_id].order_index = -1 - offset
                    await session.flush()

                    for question in questions:
                        record = existing.get(question.id)
                        if record is None:
                            record = QuestionRecord(id=question.id)
                            session.add(record)
                        record.update(self._question_values(question))
            return assessment, questions
        except SQLAlchemyError as e:
            raise self._storage_error(f"store questions of {assessment_id}", e)


class SqlAttemptRepository(_SqlRepository, AttemptRepository):
    """
    Repository for attempts, their responses and rubric evaluations using SQLAlchemy Async.
    """

    # --- Mapping between Domain and ORM ---

    def _map_response_to_domain(self, record: ResponseRecord) -> AssessmentResponse:
        return AssessmentResponse(
            id=record.id,
            attempt_id=record.attempt_id,
            question_id=record.question_id,
            question_type=record.question_type,
            answer_data=record.answer_data,
            is_correct=record.is_correct,
            points_earned=record.points_earned,
            auto_graded=record.auto_graded,
            feedback=record.feedback,
            graded_at=record.graded_at,
            created_at=record.created_at,
            updated_at=record.updated_at
        )

    def _map_attempt_to_domain(self, record: AttemptRecord, include_responses: bool) -> AssessmentAttempt:
        attempt = AssessmentAttempt(
            id=record.id,
            assessment_id=record.assessment_id,
            user_id=record.user_id,
            attempt_number=record.attempt_number,
            status=record.status,
            started_at=record.started_at,
            submitted_at=record.submitted_at,
            graded_at=record.graded_at,
            time_limit_minutes=record.time_limit_minutes,
            time_spent_seconds=record.time_spent_seconds,
            score=record.score,
            total_possible=record.total_possible,
            percentage=record.percentage,
            passed=record.passed,
            feedback=record.feedback,
            graded_by=record.graded_by,
            metadata=dict(record.attempt_metadata or {})
        )
        if include_responses:
            attempt.responses = sorted(
                (self._map_response_to_domain(r) for r in record.responses),
                key=lambda r: r.created_at
            )
        return attempt

    def _map_evaluation_to_domain(self, record: RubricEvaluationRecord) -> RubricEvaluation:
        return RubricEvaluation(
            id=record.id,
            attempt_id=record.attempt_id,
            rubric_id=record.rubric_id,
            question_id=record.question_id,
            evaluator_id=record.evaluator_id,
            scores=dict(record.scores),
            total_score=record.total_score,
            max_score=record.max_score,
            percentage=record.percentage,
            overall_feedback=record.overall_feedback,
            evaluated_at=record.evaluated_at
        )

    def _attempt_values(self, attempt: AssessmentAttempt) -> Dict[str, Any]:
        return {
            "status": attempt.status.value,
            "submitted_at": attempt.submitted_at,
            "graded_at": attempt.graded_at,
            "time_spent_seconds": attempt.time_spent_seconds,
            "score": attempt.score,
            "total_possible": attempt.total_possible,
            "percentage": attempt.percentage,
            "passed": attempt.passed,
            "feedback": attempt.feedback,
            "graded_by": attempt.graded_by,
            "attempt_metadata": dict(attempt.metadata),
        }

    def _response_values(self, response: AssessmentResponse) -> Dict[str, Any]:
        return {
            "question_type": response.question_type.value,
            "answer_data": response.answer_data.to_dict() if response.answer_data else None,
            "is_correct": response.is_correct,
            "points_earned": response.points_earned,
            "auto_graded": response.auto_graded,
            "feedback": response.feedback,
            "graded_at": response.graded_at,
            "updated_at": utcnow(),
        }

    async def _write_response(self, session: AsyncSession, response: AssessmentResponse) -> ResponseRecord:
        result = await session.execute(
            select(ResponseRecord).where(
                ResponseRecord.attempt_id == response.attempt_id,
                ResponseRecord.question_id == response.question_id
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            record = ResponseRecord(
                id=response.id,
                attempt_id=response.attempt_id,
                question_id=response.question_id,
                created_at=response.created_at
            )
            session.add(record)
        record.update(self._response_values(response))
        await session.flush()
        return record

    async def _load_attempt(
        self, session: AsyncSession, attempt_id: str, include_responses: bool
    ) -> Optional[AttemptRecord]:
        query = select(AttemptRecord).where(AttemptRecord.id == attempt_id)
        if include_responses:
            query = query.options(selectinload(AttemptRecord.responses))
        result = await session.execute(query)
        return result.scalar_one_or_none()

    # --- Interface implementation ---

    async def get_attempt(self, attempt_id: str, include_responses: bool = True) -> Optional[AssessmentAttempt]:
        try:
            async with self.async_session() as session:
                record = await self._load_attempt(session, attempt_id, include_responses)
                return self._map_attempt_to_domain(record, include_responses) if record else None
        except SQLAlchemyError as e:
            raise self._storage_error(f"load attempt {attempt_id}", e)

    async def list_attempts(
        self,
        assessment_id: Optional[str] = None,
        user_id: Optional[str] = None,
        statuses: Optional[Sequence[AttemptStatus]] = None,
        include_responses: bool = False
    ) -> List[AssessmentAttempt]:
        query = select(AttemptRecord).order_by(AttemptRecord.started_at, AttemptRecord.attempt_number)
        if assessment_id is not None:
            query = query.where(AttemptRecord.assessment_id == assessment_id)
        if user_id is not None:
            query = query.where(AttemptRecord.user_id == user_id)
        if statuses is not None:
            query = query.where(AttemptRecord.status.in_([s.value for s in statuses]))
        if include_responses:
            query = query.options(selectinload(AttemptRecord.responses))
        try:
            async with self.async_session() as session:
                result = await session.execute(query)
                return [self._map_attempt_to_domain(r, include_responses) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise self._storage_error("list attempts", e)

    async def count_attempts(self, assessment_id: str, user_id: str) -> int:
        try:
            async with self.async_session() as session:
                return await self._count(session, assessment_id, user_id)
        except SQLAlchemyError as e:
            raise self._storage_error("count attempts", e)

    async def _count(self, session: AsyncSession, assessment_id: str, user_id: str) -> int:
        count = await session.scalar(
            select(func.count()).select_from(AttemptRecord).where(
                AttemptRecord.assessment_id == assessment_id,
                AttemptRecord.user_id == user_id
            )
        )
        return int(count or 0)

    async def create_next_attempt(
        self,
        assessment_id: str,
        user_id: str,
        max_attempts: Optional[int],
        started_at: datetime.datetime,
        time_limit_minutes: Optional[int] = None
    ) -> AssessmentAttempt:
        attempt_number = None
        try:
            async with self.async_session() as session:
                async with session.begin():
                    existing = await self._count(session, assessment_id, user_id)
                    if max_attempts is not None and existing >= max_attempts:
                        raise AttemptLimitExceeded(assessment_id, user_id, max_attempts)

                    attempt_number = existing + 1
                    attempt = AssessmentAttempt(
                        assessment_id=assessment_id,
                        user_id=user_id,
                        attempt_number=attempt_number,
                        started_at=started_at,
                        time_limit_minutes=time_limit_minutes
                    )
                    record = AttemptRecord(
                        id=attempt.id,
                        assessment_id=assessment_id,
                        user_id=user_id,
                        attempt_number=attempt_number,
                        started_at=started_at,
                        time_limit_minutes=time_limit_minutes
                    )
                    record.update(self._attempt_values(attempt))
                    session.add(record)
                    await session.flush()
            return attempt
        except IntegrityError as e:
            raise AttemptConflictError(assessment_id, user_id, attempt_number, cause=e)
        except SQLAlchemyError as e:
            raise self._storage_error(f"start attempt for {user_id} on {assessment_id}", e)

    async def _lock_attempt(
        self, session: AsyncSession, attempt_id: str, status: AttemptStatus, action: str
    ) -> None:
        """
        Claim the attempt row for this transaction if it is still in ``status``.

        The guard is a conditional UPDATE rather than a read, so it takes the
        row lock (the database write lock on SQLite) before anything else in
        the transaction is read or written.

        Raises:
            NotFoundError: If the attempt does not exist
            AttemptNotEditable: If the attempt is in another status
        """
        table = AttemptRecord.__table__
        result = await session.execute(
            update(table)
            .where(table.c.id == attempt_id, table.c.status == status.value)
            .values(status=status.value)
        )
        if result.rowcount != 1:
            current = await session.scalar(select(AttemptRecord.status).where(AttemptRecord.id == attempt_id))
            if current is None:
                raise NotFoundError("AssessmentAttempt", attempt_id)
            raise AttemptNotEditable(attempt_id, current, action)

    async def upsert_response(
        self,
        response: AssessmentResponse,
        require_status: AttemptStatus = AttemptStatus.IN_PROGRESS
    ) -> AssessmentResponse:
        try:
            async with self.async_session() as session:
                async with session.begin():
                    await self._lock_attempt(session, response.attempt_id, require_status, "answered")
                    record = await self._write_response(session, response)
                return self._map_response_to_domain(record)
        except SQLAlchemyError as e:
            raise self._storage_error(f"save response to {response.question_id}", e)

    async def _write_evaluation(self, session: AsyncSession, evaluation: RubricEvaluation) -> None:
        record = RubricEvaluationRecord(id=evaluation.id)
        values = evaluation.to_dict()
        values["evaluated_at"] = evaluation.evaluated_at
        record.update(values)
        session.add(record)

    async def commit_attempt(
        self,
        attempt: AssessmentAttempt,
        responses: Sequence[AssessmentResponse],
        expected_status: AttemptStatus,
        evaluations: Sequence[RubricEvaluation] = ()
    ) -> AssessmentAttempt:
        values = self._attempt_values(attempt)
        values["metadata"] = values.pop("attempt_metadata")
        table = AttemptRecord.__table__
        try:
            async with self.async_session() as session:
                async with session.begin():
                    await self._lock_attempt(session, attempt.id, expected_status, f"moved to {attempt.status.value}")
                    await session.execute(update(table).where(table.c.id == attempt.id).values(**values))

                    for response in responses:
                        await self._write_response(session, response)
                    for evaluation in evaluations:
                        await self._write_evaluation(session, evaluation)

            async with self.async_session() as session:
                record = await self._load_attempt(session, attempt.id, include_responses=True)
                return self._map_attempt_to_domain(record, include_responses=True)
        except SQLAlchemyError as e:
            raise self._storage_error(f"commit attempt {attempt.id}", e)

    async def list_evaluations(self, attempt_id: str) -> List[RubricEvaluation]:
        query = (
            select(RubricEvaluationRecord)
            .where(RubricEvaluationRecord.attempt_id == attempt_id)
            .order_by(RubricEvaluationRecord.evaluated_at)
        )
        try:
            async with self.async_session() as session:
                result = await session.execute(query)
                return [self._map_evaluation_to_domain(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise self._storage_error(f"list rubric evaluations of {attempt_id}", e)


class SqlRubricRepository(_SqlRepository, RubricRepository):
    """
    Repository for rubrics using SQLAlchemy Async.
    """

    def _map_rubric_to_domain(self, record: RubricRecord) -> Rubric:
        return Rubric(
            id=record.id,
            assessment_id=record.assessment_id,
            title=record.title,
            description=record.description,
            criteria=list(record.criteria),
            created_by=record.created_by,
            created_at=record.created_at,
            updated_at=record.updated_at
        )

    async def get_rubric(self, rubric_id: str) -> Optional[Rubric]:
        try:
            async with self.async_session() as session:
                record = await session.get(RubricRecord, rubric_id)
                return self._map_rubric_to_domain(record) if record else None
        except SQLAlchemyError as e:
            raise self._storage_error(f"load rubric {rubric_id}", e)

    async def save_rubric(self, rubric: Rubric) -> Rubric:
        try:
            async with self.async_session() as session:
                async with session.begin():
                    record = await session.get(RubricRecord, rubric.id)
                    if record is None:
                        record = RubricRecord(id=rubric.id)
                        session.add(record)
                    record.update({
                        "assessment_id": rubric.assessment_id,
                        "title": rubric.title,
                        "description": rubric.description,
                        "criteria": [criterion.to_dict() for criterion in rubric.criteria],
                        "total_points": rubric.total_points,
                        "created_by": rubric.created_by,
                        "created_at": rubric.created_at,
                        "updated_at": rubric.updated_at,
                    })
            return rubric
        except SQLAlchemyError as e:
            raise self._storage_error(f"save rubric {rubric.id}", e)

    async def list_rubrics(self, assessment_id: Optional[str] = None) -> List[Rubric]:
        query = select(RubricRecord).order_by(RubricRecord.created_at)
        if assessment_id is not None:
            query = query.where(RubricRecord.assessment_id == assessment_id)
        try:
            async with self.async_session() as session:
                result = await session.execute(query)
                return [self._map_rubric_to_domain(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise self._storage_error("list rubrics", e)

