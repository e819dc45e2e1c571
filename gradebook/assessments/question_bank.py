"""
Question Bank

Authoring operations for assessments and their ordered questions. After
every change the question list is renumbered densely from zero and the
assessment's ``total_points`` is recomputed from the question points, so
scoring always reads a consistent total.
"""

import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from gradebook.common.errors import NotFoundError, ValidationError
from gradebook.common.logger import app_logger
from gradebook.assessments.models import Assessment, AssessmentType, Difficulty, Question, utcnow
from gradebook.assessments.question_types import QuestionType, parse_question_data
from gradebook.assessments.repositories import QuestionBankRepository, QuestionEdit

logger = app_logger.getChild("assessments.question_bank")

# Question fields an author may change after creation
_UPDATABLE_QUESTION_FIELDS = frozenset({
    "question_text", "question_type", "question_data", "points", "explanation", "tags", "difficulty"
})


class QuestionBank:
    """
    Holds assessments and their questions.
    """

    def __init__(self, repository: QuestionBankRepository):
        self.repository = repository

    async def create_assessment(
        self,
        course_id: str,
        created_by: str,
        title: str,
        assessment_type: AssessmentType = AssessmentType.QUIZ,
        description: Optional[str] = None,
        instructions: Optional[str] = None,
        passing_score: Optional[float] = None,
        max_attempts: Optional[int] = None,
        time_limit_minutes: Optional[int] = None,
        available_from: Optional[datetime.datetime] = None,
        available_until: Optional[datetime.datetime] = None,
        weight: float = 1.0,
        settings: Optional[Dict[str, Any]] = None
    ) -> Assessment:
        assessment = Assessment(
            course_id=course_id,
            created_by=created_by,
            title=title,
            assessment_type=assessment_type,
            description=description,
            instructions=instructions,
            passing_score=passing_score,
            max_attempts=max_attempts,
            time_limit_minutes=time_limit_minutes,
            available_from=available_from,
            available_until=available_until,
            weight=weight,
            settings=dict(settings or {})
        )
        await self.repository.save_assessment(assessment)
        logger.info(f"Created assessment {assessment.id} ({assessment.title}) for course {course_id}")
        return assessment

    async def get_assessment(self, assessment_id: str) -> Assessment:
        assessment = await self.repository.get_assessment(assessment_id)
        if assessment is None:
            raise NotFoundError("Assessment", assessment_id)
        return assessment

    async def list_assessments(self, course_id: Optional[str] = None) -> List[Assessment]:
        return await self.repository.list_assessments(course_id)

    async def list_questions(self, assessment_id: str) -> List[Question]:
        await self.get_assessment(assessment_id)
        return await self.repository.list_questions(assessment_id)

    async def get_question(self, assessment_id: str, question_id: str) -> Question:
        question = await self.repository.get_question(question_id)
        if question is None or question.assessment_id != assessment_id:
            raise NotFoundError("Question", question_id)
        return question

    async def _modify(self, assessment_id: str, edit: QuestionEdit) -> Tuple[Assessment, List[Question]]:
        """Run ``edit`` in the repository, renumbering and re-totalling its result."""

        def apply(assessment: Assessment, questions: List[Question]) -> List[Question]:
            questions = edit(assessment, questions)
            for index, question in enumerate(questions):
                question.order_index = index
            assessment.total_points = float(sum(q.points for q in questions))
            assessment.updated_at = utcnow()
            return questions

        return await self.repository.modify_questions(assessment_id, apply)

    async def add_question(
        self,
        assessment_id: str,
        question_type: QuestionType,
        question_text: str,
        question_data: Any,
        points: float,
        position: Optional[int] = None,
        explanation: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        difficulty: Difficulty = Difficulty.MEDIUM
    ) -> Question:
        """
        Add a question, appended unless ``position`` says otherwise.

        Raises:
            NotFoundError: If the assessment does not exist
            ValidationError: For unknown types, malformed data or non-positive points
        """
        question = Question(
            assessment_id=assessment_id,
            question_type=question_type,
            question_text=question_text,
            question_data=question_data,
            points=points,
            explanation=explanation,
            tags=list(tags or []),
            difficulty=difficulty
        )

        def insert(assessment: Assessment, questions: List[Question]) -> List[Question]:
            if position is None or position >= len(questions):
                questions.append(question)
            else:
                questions.insert(max(position, 0), question)
            return questions

        assessment, questions = await self._modify(assessment_id, insert)
        added = next(q for q in questions if q.id == question.id)
        logger.info(
            f"Added {added.question_type.value} question {added.id} to assessment {assessment_id}; "
            f"total_points is now {assessment.total_points}"
        )
        return added

    async def update_question(self, assessment_id: str, question_id: str, changes: Mapping[str, Any]) -> Question:
        """
        Change fields of a question.

        A type change must come with matching ``question_data``.
        """
        unknown = set(changes) - _UPDATABLE_QUESTION_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update question fields: {sorted(unknown)}",
                errors={field: "not updatable" for field in sorted(unknown)}
            )

        def replace(assessment: Assessment, questions: List[Question]) -> List[Question]:
            index = next((i for i, q in enumerate(questions) if q.id == question_id), None)
            if index is None:
                raise NotFoundError("Question", question_id)

            current = questions[index]
            question_type = QuestionType.parse(changes.get("question_type", current.question_type))
            question_data = changes.get("question_data")
            if question_data is None:
                if question_type is not current.question_type:
                    raise ValidationError(
                        "Changing the question type requires new question_data",
                        errors={"question_data": None}
                    )
                question_data = current.question_data
            else:
                question_data = parse_question_data(question_type, question_data)

            questions[index] = Question(
                id=current.id,
                assessment_id=current.assessment_id,
                question_type=question_type,
                question_text=changes.get("question_text", current.question_text),
                question_data=question_data,
                points=changes.get("points", current.points),
                order_index=current.order_index,
                explanation=changes.get("explanation", current.explanation),
                tags=list(changes.get("tags", current.tags)),
                difficulty=changes.get("difficulty", current.difficulty),
                created_at=current.created_at
            )
            return questions

        _, questions = await self._modify(assessment_id, replace)
        logger.info(f"Updated question {question_id} of assessment {assessment_id}")
        return next(q for q in questions if q.id == question_id)

    async def remove_question(self, assessment_id: str, question_id: str) -> None:
        def remove(assessment: Assessment, questions: List[Question]) -> List[Question]:
            remaining = [q for q in questions if q.id != question_id]
            if len(remaining) == len(questions):
                raise NotFoundError("Question", question_id)
            return remaining

        await self._modify(assessment_id, remove)
        logger.info(f"Removed question {question_id} from assessment {assessment_id}")

    async def reorder_questions(self, assessment_id: str, question_ids: Sequence[str]) -> List[Question]:
        """
        Put the questions in the order given by ``question_ids``.

        Raises:
            ValidationError: Unless ``question_ids`` names every question exactly once
        """
        def reorder(assessment: Assessment, questions: List[Question]) -> List[Question]:
            by_id = {q.id: q for q in questions}
            if len(question_ids) != len(by_id) or set(question_ids) != set(by_id):
                raise ValidationError(
                    "Reordering must list every question of the assessment exactly once",
                    errors={"question_ids": list(question_ids)}
                )
            return [by_id[qid] for qid in question_ids]

        _, questions = await self._modify(assessment_id, reorder)
        return questions

    async def publish_assessment(self, assessment_id: str) -> Assessment:
        assessment = await self.get_assessment(assessment_id)
        questions = await self.repository.list_questions(assessment_id)
        if not questions:
            raise ValidationError(
                f"Assessment {assessment_id} has no questions and cannot be published",
                errors={"questions": 0}
            )
        assessment.is_published = True
        assessment.total_points = float(sum(q.points for q in questions))
        assessment.updated_at = utcnow()
        await self.repository.save_assessment(assessment)
        logger.info(f"Published assessment {assessment_id} with {len(questions)} questions")
        return assessment

    async def unpublish_assessment(self, assessment_id: str) -> Assessment:
        assessment = await self.get_assessment(assessment_id)
        assessment.is_published = False
        assessment.updated_at = utcnow()
        await self.repository.save_assessment(assessment)
        logger.info(f"Unpublished assessment {assessment_id}")
        return assessment
