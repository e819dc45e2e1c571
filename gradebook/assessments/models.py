"""
Gradebook Domain Models

This module defines the core data models of the engine: assessments and
their questions, learner attempts with their responses, rubrics and the
manual grades a grader hands to the grading engine.

Every model validates itself in ``__post_init__`` and raises
``ValidationError`` for values the engine must never store.
"""

import uuid
import enum
import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from gradebook.common.errors import ValidationError
from gradebook.assessments.question_types import (
    AnswerData,
    QuestionData,
    QuestionType,
    parse_answer_data,
    parse_question_data,
)


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp, the representation used by every stored model."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: Optional[datetime.datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_datetime(value: Union[str, datetime.datetime, None]) -> Optional[datetime.datetime]:
    if value is None or isinstance(value, datetime.datetime):
        return value
    return datetime.datetime.fromisoformat(value)


class AssessmentType(enum.Enum):
    """Kinds of assessment an instructor can author."""
    QUIZ = "quiz"
    EXAM = "exam"
    ASSIGNMENT = "assignment"
    PROJECT = "project"
    SURVEY = "survey"


class Difficulty(enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class AttemptStatus(enum.Enum):
    """
    Status of an assessment attempt.

    ``in_progress`` moves to ``submitted`` exactly once, or to ``expired``;
    ``submitted`` moves to ``graded``. ``graded`` and ``expired`` are terminal.
    """
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    GRADED = "graded"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (AttemptStatus.GRADED, AttemptStatus.EXPIRED)


@dataclass
class Assessment:
    """
    An assessment owned by a course.

    ``total_points`` mirrors the sum of the question points and is
    recomputed by the question bank after every question change.
    """

    course_id: str
    created_by: str
    title: str
    id: str = field(default_factory=new_id)
    assessment_type: AssessmentType = AssessmentType.QUIZ
    description: Optional[str] = None
    instructions: Optional[str] = None
    passing_score: Optional[float] = None
    max_attempts: Optional[int] = None
    time_limit_minutes: Optional[int] = None
    available_from: Optional[datetime.datetime] = None
    available_until: Optional[datetime.datetime] = None
    is_published: bool = False
    total_points: float = 0.0
    weight: float = 1.0
    settings: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime.datetime = field(default_factory=utcnow)
    updated_at: datetime.datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if isinstance(self.assessment_type, str):
            try:
                self.assessment_type = AssessmentType(self.assessment_type)
            except ValueError:
                raise ValidationError(
                    f"Unknown assessment type: {self.assessment_type}",
                    errors={"assessment_type": [t.value for t in AssessmentType]}
                )
        if not self.title or not self.title.strip():
            raise ValidationError("Assessment title is required", errors={"title": self.title})
        if self.passing_score is not None and not 0 <= self.passing_score <= 100:
            raise ValidationError(
                "passing_score must be a percentage between 0 and 100",
                errors={"passing_score": self.passing_score}
            )
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValidationError("max_attempts must be at least 1", errors={"max_attempts": self.max_attempts})
        if self.time_limit_minutes is not None and self.time_limit_minutes <= 0:
            raise ValidationError(
                "time_limit_minutes must be positive",
                errors={"time_limit_minutes": self.time_limit_minutes}
            )
        if (self.available_from and self.available_until
                and self.available_from >= self.available_until):
            raise ValidationError(
                "available_from must be before available_until",
                errors={"available_from": _iso(self.available_from), "available_until": _iso(self.available_until)}
            )

    def unavailable_reason(self, now: Optional[datetime.datetime] = None) -> Optional[str]:
        """Why an attempt cannot be started at ``now``, or None if it can."""
        now = now or utcnow()
        if not self.is_published:
            return "assessment is not published"
        if self.available_from and now < self.available_from:
            return f"opens at {self.available_from.isoformat()}"
        if self.available_until and now > self.available_until:
            return f"closed at {self.available_until.isoformat()}"
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "course_id": self.course_id,
            "created_by": self.created_by,
            "title": self.title,
            "assessment_type": self.assessment_type.value,
            "description": self.description,
            "instructions": self.instructions,
            "passing_score": self.passing_score,
            "max_attempts": self.max_attempts,
            "time_limit_minutes": self.time_limit_minutes,
            "available_from": _iso(self.available_from),
            "available_until": _iso(self.available_until),
            "is_published": self.is_published,
            "total_points": self.total_points,
            "weight": self.weight,
            "settings": dict(self.settings),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class Question:
    """A question within an assessment, carrying its own grading rule."""

    assessment_id: str
    question_type: QuestionType
    question_text: str
    question_data: QuestionData
    points: float
    order_index: int = 0
    id: str = field(default_factory=new_id)
    explanation: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    difficulty: Difficulty = Difficulty.MEDIUM
    created_at: datetime.datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.question_type = QuestionType.parse(self.question_type)
        self.question_data = parse_question_data(self.question_type, self.question_data)
        if isinstance(self.difficulty, str):
            try:
                self.difficulty = Difficulty(self.difficulty)
            except ValueError:
                raise ValidationError(f"Unknown difficulty: {self.difficulty}", errors={"difficulty": self.difficulty})
        if isinstance(self.points, bool) or not isinstance(self.points, (int, float)) or self.points <= 0:
            raise ValidationError("Question points must be positive", errors={"points": self.points})
        if self.order_index < 0:
            raise ValidationError("order_index cannot be negative", errors={"order_index": self.order_index})
        if not self.question_text or not self.question_text.strip():
            raise ValidationError("Question text is required", errors={"question_text": self.question_text})

    @property
    def is_auto_gradable(self) -> bool:
        return self.question_type.is_auto_gradable

    def to_dict(self, include_answers: bool = True) -> Dict[str, Any]:
        """
        Convert the question to a dictionary.

        With ``include_answers`` False the correct answer is left out, which
        is the shape shown to learners while an attempt is in progress.
        """
        data = self.question_data.to_dict()
        if not include_answers:
            if self.question_type is QuestionType.MULTIPLE_CHOICE:
                data = {"options": [{"id": o["id"], "text": o["text"]} for o in data["options"]]}
            elif self.question_type is QuestionType.TRUE_FALSE:
                data = {}
            elif self.question_type is QuestionType.SHORT_ANSWER:
                data.pop("reference_answer", None)
        result = {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "question_type": self.question_type.value,
            "question_text": self.question_text,
            "question_data": data,
            "points": self.points,
            "order_index": self.order_index,
            "tags": list(self.tags),
            "difficulty": self.difficulty.value,
            "created_at": _iso(self.created_at),
        }
        if include_answers:
            result["explanation"] = self.explanation
        return result


@dataclass
class AssessmentResponse:
    """
    A learner's answer to one question of an attempt.

    ``is_correct`` and ``points_earned`` stay None until the response is
    graded; subjective questions keep ``is_correct`` None after the
    automatic pass.
    """

    attempt_id: str
    question_id: str
    question_type: QuestionType
    answer_data: Optional[AnswerData] = None
    id: str = field(default_factory=new_id)
    is_correct: Optional[bool] = None
    points_earned: Optional[float] = None
    auto_graded: bool = False
    feedback: Optional[str] = None
    graded_at: Optional[datetime.datetime] = None
    created_at: datetime.datetime = field(default_factory=utcnow)
    updated_at: datetime.datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.question_type = QuestionType.parse(self.question_type)
        if self.answer_data is not None:
            self.answer_data = parse_answer_data(self.question_type, self.answer_data)
        if self.points_earned is not None and self.points_earned < 0:
            raise ValidationError("points_earned cannot be negative", errors={"points_earned": self.points_earned})

    @property
    def is_graded(self) -> bool:
        return self.graded_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "attempt_id": self.attempt_id,
            "question_id": self.question_id,
            "question_type": self.question_type.value,
            "answer_data": self.answer_data.to_dict() if self.answer_data else None,
            "is_correct": self.is_correct,
            "points_earned": self.points_earned,
            "auto_graded": self.auto_graded,
            "feedback": self.feedback,
            "graded_at": _iso(self.graded_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class AssessmentAttempt:
    """One learner's instance of taking an assessment."""

    assessment_id: str
    user_id: str
    attempt_number: int
    id: str = field(default_factory=new_id)
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    started_at: datetime.datetime = field(default_factory=utcnow)
    submitted_at: Optional[datetime.datetime] = None
    graded_at: Optional[datetime.datetime] = None
    time_limit_minutes: Optional[int] = None
    time_spent_seconds: int = 0
    score: Optional[float] = None
    total_possible: Optional[float] = None
    percentage: Optional[float] = None
    passed: Optional[bool] = None
    feedback: Optional[str] = None
    graded_by: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    responses: List[AssessmentResponse] = field(default_factory=list)

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = AttemptStatus(self.status)
        if self.attempt_number < 1:
            raise ValidationError("attempt_number is 1-based", errors={"attempt_number": self.attempt_number})

    @property
    def deadline(self) -> Optional[datetime.datetime]:
        """When the time limit runs out, or None for untimed attempts."""
        if not self.time_limit_minutes:
            return None
        return self.started_at + datetime.timedelta(minutes=self.time_limit_minutes)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def response_for(self, question_id: str) -> Optional[AssessmentResponse]:
        return next((r for r in self.responses if r.question_id == question_id), None)

    def to_dict(self, include_responses: bool = True) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "user_id": self.user_id,
            "attempt_number": self.attempt_number,
            "status": self.status.value,
            "started_at": _iso(self.started_at),
            "submitted_at": _iso(self.submitted_at),
            "graded_at": _iso(self.graded_at),
            "deadline": _iso(self.deadline),
            "time_spent_seconds": self.time_spent_seconds,
            "score": self.score,
            "total_possible": self.total_possible,
            "percentage": self.percentage,
            "passed": self.passed,
            "feedback": self.feedback,
            "graded_by": self.graded_by,
            "metadata": dict(self.metadata),
        }
        if include_responses:
            result["responses"] = [response.to_dict() for response in self.responses]
        return result


@dataclass(frozen=True)
class RubricLevel:
    name: str
    points: float
    description: str = ""


@dataclass(frozen=True)
class RubricCriterion:
    """A single rubric criterion with its point ceiling and optional levels."""

    name: str
    max_points: float
    description: str = ""
    id: str = field(default_factory=new_id)
    levels: Tuple[RubricLevel, ...] = ()

    def __post_init__(self):
        if not self.name:
            raise ValidationError("Rubric criteria need a name", errors={"name": self.name})
        if self.max_points <= 0:
            raise ValidationError(
                f"Criterion {self.name} needs positive max_points",
                errors={"max_points": self.max_points}
            )
        for level in self.levels:
            if not 0 <= level.points <= self.max_points:
                raise ValidationError(
                    f"Level {level.name} of criterion {self.name} is outside 0..{self.max_points}",
                    errors={"level": level.name, "points": level.points}
                )

    def level(self, name: str) -> Optional[RubricLevel]:
        return next((level for level in self.levels if level.name == name), None)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'RubricCriterion':
        levels = tuple(
            RubricLevel(name=level["name"], points=level["points"], description=level.get("description", ""))
            for level in data.get("levels") or ()
        )
        max_points = data.get("max_points")
        if max_points is None and levels:
            max_points = max(level.points for level in levels)
        return cls(
            id=data.get("id") or new_id(),
            name=data.get("name", ""),
            description=data.get("description", ""),
            max_points=max_points if max_points is not None else 0,
            levels=levels
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "max_points": self.max_points,
            "levels": [
                {"name": level.name, "points": level.points, "description": level.description}
                for level in self.levels
            ],
        }


@dataclass
class Rubric:
    """A structured point-allocation guide used by human graders."""

    title: str
    criteria: List[RubricCriterion]
    id: str = field(default_factory=new_id)
    assessment_id: Optional[str] = None
    description: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime.datetime = field(default_factory=utcnow)
    updated_at: datetime.datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.criteria = [
            criterion if isinstance(criterion, RubricCriterion) else RubricCriterion.from_dict(criterion)
            for criterion in self.criteria
        ]
        if not self.criteria:
            raise ValidationError("A rubric needs at least one criterion", errors={"criteria": []})
        names = [criterion.name for criterion in self.criteria]
        ids = [criterion.id for criterion in self.criteria]
        if len(set(names)) != len(names) or len(set(ids)) != len(ids):
            raise ValidationError("Rubric criteria must be unique", errors={"criteria": names})

    @property
    def total_points(self) -> float:
        return sum(criterion.max_points for criterion in self.criteria)

    def criterion(self, key: str) -> Optional[RubricCriterion]:
        """Look a criterion up by id or by name."""
        return next((c for c in self.criteria if c.id == key or c.name == key), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "title": self.title,
            "description": self.description,
            "total_points": self.total_points,
            "criteria": [criterion.to_dict() for criterion in self.criteria],
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class RubricEvaluation:
    """A grader's rubric scoring of one question of an attempt."""

    attempt_id: str
    rubric_id: str
    scores: Dict[str, float]
    total_score: float
    max_score: float
    percentage: float
    id: str = field(default_factory=new_id)
    question_id: Optional[str] = None
    evaluator_id: Optional[str] = None
    overall_feedback: Optional[str] = None
    evaluated_at: datetime.datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "attempt_id": self.attempt_id,
            "rubric_id": self.rubric_id,
            "question_id": self.question_id,
            "evaluator_id": self.evaluator_id,
            "scores": dict(self.scores),
            "total_score": self.total_score,
            "max_score": self.max_score,
            "percentage": self.percentage,
            "overall_feedback": self.overall_feedback,
            "evaluated_at": _iso(self.evaluated_at),
        }


@dataclass
class ManualGrade:
    """
    A grader's verdict on one response.

    Exactly one of ``points_earned`` or ``rubric_id`` is given; rubric
    grades carry per-criterion ``selections`` (points or level names).
    """

    question_id: str
    points_earned: Optional[float] = None
    rubric_id: Optional[str] = None
    selections: Dict[str, Union[float, str]] = field(default_factory=dict)
    feedback: Optional[str] = None
    is_correct: Optional[bool] = None

    def __post_init__(self):
        if (self.points_earned is None) == (self.rubric_id is None):
            raise ValidationError(
                f"Grade for question {self.question_id} needs either points_earned or a rubric",
                errors={"question_id": self.question_id}
            )
        if self.rubric_id is not None and not self.selections:
            raise ValidationError(
                f"Rubric grade for question {self.question_id} has no selections",
                errors={"selections": {}}
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'ManualGrade':
        return cls(
            question_id=data["question_id"],
            points_earned=data.get("points_earned"),
            rubric_id=data.get("rubric_id"),
            selections=dict(data.get("selections") or {}),
            feedback=data.get("feedback"),
            is_correct=data.get("is_correct")
        )


def parse_timestamp(value: Union[str, datetime.datetime, None]) -> Optional[datetime.datetime]:
    """Parse an ISO timestamp, normalising aware values to naive UTC."""
    parsed = _parse_datetime(value)
    if parsed is not None and parsed.tzinfo is not None:
        parsed = parsed.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return parsed
