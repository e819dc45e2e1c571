"""
SQLAlchemy ORM models for the gradebook engine.

This module defines the database models for assessments, including:
- AssessmentRecord: An assessment and its attempt rules
- QuestionRecord: Questions of an assessment, densely ordered
- AttemptRecord: A learner's attempt with its score fields
- ResponseRecord: One answer per (attempt, question)
- RubricRecord: Rubrics with their criteria
- RubricEvaluationRecord: Rubric scorings recorded by graders
"""

from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text
)
from sqlalchemy.orm import relationship
from sqlalchemy.schema import UniqueConstraint

from gradebook.database.base import ModelBase
from gradebook.assessments.models import utcnow


class AssessmentRecord(ModelBase):
    __tablename__ = "assessments"

    id = Column(String(36), primary_key=True)
    course_id = Column(String(255), nullable=False, index=True)
    created_by = Column(String(255), nullable=False)
    title = Column(String(255), nullable=False)
    assessment_type = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    instructions = Column(Text, nullable=True)
    passing_score = Column(Float, nullable=True)
    max_attempts = Column(Integer, nullable=True)
    time_limit_minutes = Column(Integer, nullable=True)
    available_from = Column(DateTime, nullable=True)
    available_until = Column(DateTime, nullable=True)
    is_published = Column(Boolean, nullable=False, default=False)
    total_points = Column(Float, nullable=False, default=0.0)
    weight = Column(Float, nullable=False, default=1.0)
    settings = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    questions = relationship(
        "QuestionRecord",
        back_populates="assessment",
        cascade="all, delete-orphan",
        order_by="QuestionRecord.order_index"
    )


class QuestionRecord(ModelBase):
    """
    Model for assessment questions.

    ``order_index`` is unique per assessment; ``question_data`` holds the
    type-specific payload as JSON.
    """
    __tablename__ = "assessment_questions"

    id = Column(String(36), primary_key=True)
    assessment_id = Column(
        String(36), ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_type = Column(String(50), nullable=False)
    question_text = Column(Text, nullable=False)
    question_data = Column(JSON, nullable=False)
    points = Column(Float, nullable=False)
    order_index = Column(Integer, nullable=False)
    explanation = Column(Text, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    difficulty = Column(String(20), nullable=False, default="medium")
    created_at = Column(DateTime, nullable=False, default=utcnow)

    assessment = relationship("AssessmentRecord", back_populates="questions")

    __table_args__ = (
        UniqueConstraint("assessment_id", "order_index", name="uq_assessment_questions_order"),
    )


class AttemptRecord(ModelBase):
    """
    Model for assessment attempts.

    The unique (assessment_id, user_id, attempt_number) constraint is what
    turns racing starts into a detectable conflict.
    """
    __tablename__ = "assessment_attempts"

    id = Column(String(36), primary_key=True)
    assessment_id = Column(
        String(36), ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(String(255), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, index=True)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    submitted_at = Column(DateTime, nullable=True)
    graded_at = Column(DateTime, nullable=True)
    time_limit_minutes = Column(Integer, nullable=True)
    time_spent_seconds = Column(Integer, nullable=False, default=0)
    score = Column(Float, nullable=True)
    total_possible = Column(Float, nullable=True)
    percentage = Column(Float, nullable=True)
    passed = Column(Boolean, nullable=True)
    feedback = Column(Text, nullable=True)
    graded_by = Column(String(255), nullable=True)
    attempt_metadata = Column("metadata", JSON, nullable=False, default=dict)

    responses = relationship(
        "ResponseRecord",
        back_populates="attempt",
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint(
            "assessment_id", "user_id", "attempt_number", name="uq_assessment_attempts_number"
        ),
        Index("idx_attempts_assessment_status", "assessment_id", "status"),
    )


class ResponseRecord(ModelBase):
    __tablename__ = "assessment_responses"

    id = Column(String(36), primary_key=True)
    attempt_id = Column(
        String(36), ForeignKey("assessment_attempts.id", ondelete="CASCADE"), nullable=False
    )
    question_id = Column(
        String(36), ForeignKey("assessment_questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_type = Column(String(50), nullable=False)
    answer_data = Column(JSON, nullable=True)
    is_correct = Column(Boolean, nullable=True)
    points_earned = Column(Float, nullable=True)
    auto_graded = Column(Boolean, nullable=False, default=False)
    feedback = Column(Text, nullable=True)
    graded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    attempt = relationship("AttemptRecord", back_populates="responses")

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_assessment_responses_question"),
    )


class RubricRecord(ModelBase):
    __tablename__ = "rubrics"

    id = Column(String(36), primary_key=True)
    assessment_id = Column(
        String(36), ForeignKey("assessments.id", ondelete="SET NULL"), nullable=True, index=True
    )
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    criteria = Column(JSON, nullable=False)
    total_points = Column(Float, nullable=False)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class RubricEvaluationRecord(ModelBase):
    __tablename__ = "rubric_assessments"

    id = Column(String(36), primary_key=True)
    attempt_id = Column(
        String(36), ForeignKey("assessment_attempts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    rubric_id = Column(
        String(36), ForeignKey("rubrics.id", ondelete="CASCADE"), nullable=False
    )
    question_id = Column(String(36), nullable=True)
    evaluator_id = Column(String(255), nullable=True)
    scores = Column(JSON, nullable=False)
    total_score = Column(Float, nullable=False)
    max_score = Column(Float, nullable=False)
    percentage = Column(Float, nullable=False)
    overall_feedback = Column(Text, nullable=True)
    evaluated_at = Column(DateTime, nullable=False, default=utcnow)
