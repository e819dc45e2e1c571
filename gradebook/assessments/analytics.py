"""
Analytics Aggregator

Derives assessment statistics from graded attempts only; attempts still in
progress or waiting for a grader would skew the numbers with provisional
zeros, so they are never read. Aggregation never mutates attempts.
"""

import datetime
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from gradebook.common.errors import NotFoundError
from gradebook.common.logger import app_logger, log_execution_time
from gradebook.assessments.models import AssessmentAttempt, AttemptStatus, Question, utcnow
from gradebook.assessments.repositories import AttemptRepository, QuestionBankRepository

logger = app_logger.getChild("assessments.analytics")


@dataclass
class QuestionStats:
    """
    Response statistics for one question.

    ``difficulty`` is the fraction of respondents who answered correctly;
    it is None for subjective questions and for questions nobody answered.
    """

    question_id: str
    question_type: str
    total_responses: int = 0
    correct_responses: int = 0
    incorrect_responses: int = 0
    average_points: Optional[float] = None
    difficulty: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "question_type": self.question_type,
            "total_responses": self.total_responses,
            "correct_responses": self.correct_responses,
            "incorrect_responses": self.incorrect_responses,
            "average_points": self.average_points,
            "difficulty": self.difficulty,
        }


@dataclass
class AssessmentAnalytics:
    assessment_id: str
    total_attempts: int = 0
    average_score: Optional[float] = None
    median_score: Optional[float] = None
    highest_score: Optional[float] = None
    lowest_score: Optional[float] = None
    pass_rate: Optional[float] = None
    average_time_minutes: Optional[float] = None
    question_stats: Dict[str, QuestionStats] = field(default_factory=dict)
    attempt_distribution: Dict[int, int] = field(default_factory=dict)
    computed_at: datetime.datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assessment_id": self.assessment_id,
            "total_attempts": self.total_attempts,
            "average_score": self.average_score,
            "median_score": self.median_score,
            "highest_score": self.highest_score,
            "lowest_score": self.lowest_score,
            "pass_rate": self.pass_rate,
            "average_time_minutes": self.average_time_minutes,
            "question_stats": {qid: stats.to_dict() for qid, stats in self.question_stats.items()},
            "attempt_distribution": {str(k): v for k, v in sorted(self.attempt_distribution.items())},
            "computed_at": self.computed_at.isoformat(),
        }


def _question_stats(question: Question, attempts: Sequence[AssessmentAttempt]) -> QuestionStats:
    stats = QuestionStats(question_id=question.id, question_type=question.question_type.value)
    points: List[float] = []
    for attempt in attempts:
        response = attempt.response_for(question.id)
        if response is None or response.answer_data is None:
            continue
        stats.total_responses += 1
        if response.is_correct is True:
            stats.correct_responses += 1
        elif response.is_correct is False:
            stats.incorrect_responses += 1
        points.append(response.points_earned or 0.0)

    if points:
        stats.average_points = float(np.mean(points))
    if question.is_auto_gradable and stats.total_responses:
        stats.difficulty = stats.correct_responses / stats.total_responses
    return stats


def compute_analytics(
    assessment_id: str,
    questions: Sequence[Question],
    attempts: Sequence[AssessmentAttempt]
) -> AssessmentAnalytics:
    """
    Compute analytics over ``attempts``, ignoring any that are not graded.
    """
    graded = [a for a in attempts if a.status is AttemptStatus.GRADED]
    analytics = AssessmentAnalytics(assessment_id=assessment_id, total_attempts=len(graded))
    analytics.question_stats = {q.id: _question_stats(q, graded) for q in questions}
    if not graded:
        return analytics

    percentages = np.array([a.percentage or 0.0 for a in graded], dtype=float)
    analytics.average_score = float(percentages.mean())
    analytics.median_score = float(np.median(percentages))
    analytics.highest_score = float(percentages.max())
    analytics.lowest_score = float(percentages.min())
    analytics.pass_rate = sum(1 for a in graded if a.passed) / len(graded)
    analytics.average_time_minutes = float(np.mean([a.time_spent_seconds for a in graded])) / 60

    per_learner = Counter(a.user_id for a in graded)
    analytics.attempt_distribution = dict(Counter(per_learner.values()))
    return analytics


class AnalyticsAggregator:
    """
    Read-only statistics over an assessment's graded attempts.
    """

    def __init__(self, question_bank: QuestionBankRepository, attempts: AttemptRepository):
        self.question_bank = question_bank
        self.attempts = attempts

    @log_execution_time(logger)
    async def get_analytics(self, assessment_id: str) -> AssessmentAnalytics:
        assessment = await self.question_bank.get_assessment(assessment_id)
        if assessment is None:
            raise NotFoundError("Assessment", assessment_id)

        questions = await self.question_bank.list_questions(assessment_id)
        graded = await self.attempts.list_attempts(
            assessment_id=assessment_id,
            statuses=[AttemptStatus.GRADED],
            include_responses=True
        )
        analytics = compute_analytics(assessment_id, questions, graded)
        logger.debug(f"Computed analytics for {assessment_id} over {analytics.total_attempts} graded attempts")
        return analytics
