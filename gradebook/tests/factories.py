"""
Builders shared by the gradebook tests.
"""

from typing import Any, Dict, List, Sequence, Tuple

from gradebook.common.auth import Principal, UserRole
from gradebook.assessments.models import Assessment, Question
from gradebook.assessments.question_types import QuestionType
from gradebook.assessments.service import GradebookService

INSTRUCTOR = Principal("instructor-1", frozenset({UserRole.INSTRUCTOR}))
GRADER = Principal("grader-1", frozenset({UserRole.GRADER}))
LEARNER = Principal("learner-1")
OTHER_LEARNER = Principal("learner-2")


def choice_data(correct: str = "b") -> Dict[str, Any]:
    """Four options a-d with ``correct`` flagged."""
    return {
        "options": [
            {"id": option_id, "text": f"Option {option_id.upper()}", "is_correct": option_id == correct}
            for option_id in ("a", "b", "c", "d")
        ]
    }


def mc_question(points: float = 5, correct: str = "b", text: str = "Pick one") -> Dict[str, Any]:
    return {
        "question_type": QuestionType.MULTIPLE_CHOICE,
        "question_text": text,
        "question_data": choice_data(correct),
        "points": points,
    }


def tf_question(points: float = 2, correct: bool = True) -> Dict[str, Any]:
    return {
        "question_type": QuestionType.TRUE_FALSE,
        "question_text": "True or false?",
        "question_data": {"correct_answer": correct},
        "points": points,
    }


def essay_question(points: float = 5) -> Dict[str, Any]:
    return {
        "question_type": QuestionType.ESSAY,
        "question_text": "Explain your reasoning",
        "question_data": {"min_words": 10},
        "points": points,
    }


async def build_assessment(
    service: GradebookService,
    questions: Sequence[Dict[str, Any]],
    publish: bool = True,
    author: Principal = INSTRUCTOR,
    **fields: Any
) -> Tuple[Assessment, List[Question]]:
    """Create an assessment with ``questions``, published unless told otherwise."""
    assessment = await service.create_assessment(author, "course-1", fields.pop("title", "Unit quiz"), **fields)
    created = [await service.add_question(author, assessment.id, **spec) for spec in questions]
    if publish and created:
        assessment = await service.publish_assessment(author, assessment.id)
    return assessment, created


async def submit_answers(
    service: GradebookService,
    assessment_id: str,
    answers: Dict[str, Any],
    learner: Principal = LEARNER
):
    """Start an attempt and submit ``answers`` in one go."""
    attempt = await service.start_attempt(learner, assessment_id)
    return await service.submit_attempt(learner, attempt.id, answers)
