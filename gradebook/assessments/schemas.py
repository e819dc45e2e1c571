"""
Request models for the gradebook API.

Payload shapes are checked here; the domain rules (option ids, point
ranges, state guards) are enforced by the engine itself.
"""

import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from gradebook.assessments.models import AssessmentType, Difficulty, ManualGrade, parse_timestamp
from gradebook.assessments.question_types import QuestionType


class CreateAssessmentRequest(BaseModel):
    course_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
    assessment_type: AssessmentType = AssessmentType.QUIZ
    description: Optional[str] = None
    instructions: Optional[str] = None
    passing_score: Optional[float] = Field(None, ge=0, le=100)
    max_attempts: Optional[int] = Field(None, ge=1)
    time_limit_minutes: Optional[int] = Field(None, gt=0)
    available_from: Optional[datetime.datetime] = None
    available_until: Optional[datetime.datetime] = None
    weight: float = Field(1.0, ge=0)
    settings: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("available_from", "available_until")
    @classmethod
    def normalise_timestamp(cls, v: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
        """Store window bounds as naive UTC"""
        return parse_timestamp(v)


class AddQuestionRequest(BaseModel):
    question_type: QuestionType
    question_text: str = Field(..., min_length=1)
    question_data: Dict[str, Any] = Field(default_factory=dict)
    points: float = Field(..., gt=0)
    position: Optional[int] = Field(None, ge=0)
    explanation: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    difficulty: Difficulty = Difficulty.MEDIUM


class SaveResponseRequest(BaseModel):
    answer_data: Dict[str, Any]


class SubmittedAnswer(BaseModel):
    question_id: str
    answer_data: Dict[str, Any]


class SubmitAttemptRequest(BaseModel):
    responses: List[SubmittedAnswer] = Field(default_factory=list)

    def answers_by_question(self) -> Dict[str, Dict[str, Any]]:
        return {answer.question_id: answer.answer_data for answer in self.responses}


class ManualGradeRequest(BaseModel):
    question_id: str
    points_earned: Optional[float] = Field(None, ge=0)
    rubric_id: Optional[str] = None
    selections: Dict[str, Union[float, str]] = Field(default_factory=dict)
    feedback: Optional[str] = None
    is_correct: Optional[bool] = None

    def to_domain(self) -> ManualGrade:
        return ManualGrade.from_dict(self.model_dump())


class GradeAttemptRequest(BaseModel):
    grades: List[ManualGradeRequest] = Field(default_factory=list)
    feedback: Optional[str] = None


class RubricLevelRequest(BaseModel):
    name: str
    points: float = Field(..., ge=0)
    description: str = ""


class RubricCriterionRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    max_points: Optional[float] = Field(None, gt=0)
    levels: List[RubricLevelRequest] = Field(default_factory=list)


class CreateRubricRequest(BaseModel):
    title: str = Field(..., min_length=1)
    criteria: List[RubricCriterionRequest] = Field(..., min_length=1)
    assessment_id: Optional[str] = None
    description: Optional[str] = None


class EvaluateRubricRequest(BaseModel):
    selections: Dict[str, Union[float, str]]
