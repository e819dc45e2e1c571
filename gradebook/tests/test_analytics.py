"""
Tests for assessment analytics.
"""

import pytest

from gradebook.common.errors import NotAuthorized, NotFoundError
from gradebook.assessments.analytics import compute_analytics
from gradebook.assessments.models import ManualGrade
from gradebook.common.auth import Principal
from gradebook.tests.factories import (
    GRADER,
    INSTRUCTOR,
    LEARNER,
    build_assessment,
    essay_question,
    mc_question,
    submit_answers,
)


@pytest.mark.asyncio
async def test_analytics_over_graded_attempts(service):
    assessment, (q1, q2) = await build_assessment(service, [mc_question(), mc_question()], passing_score=60)
    learners = [Principal(f"learner-{i}") for i in range(3)]

    # 100%, 50% and 0%
    await submit_answers(service, assessment.id, {q1.id: {"option_id": "b"}, q2.id: {"option_id": "b"}}, learners[0])
    await submit_answers(service, assessment.id, {q1.id: {"option_id": "b"}, q2.id: {"option_id": "a"}}, learners[1])
    await submit_answers(service, assessment.id, {q1.id: {"option_id": "c"}}, learners[2])
    # A second attempt by the first learner, and one still in progress
    await submit_answers(service, assessment.id, {q1.id: {"option_id": "b"}, q2.id: {"option_id": "b"}}, learners[0])
    await service.start_attempt(learners[1], assessment.id)

    analytics = await service.get_analytics(INSTRUCTOR, assessment.id)

    assert analytics.total_attempts == 4
    assert analytics.average_score == pytest.approx(62.5)
    assert analytics.median_score == pytest.approx(75)
    assert analytics.highest_score == 100
    assert analytics.lowest_score == 0
    assert analytics.pass_rate == pytest.approx(0.5)
    assert analytics.attempt_distribution == {1: 2, 2: 1}

    first = analytics.question_stats[q1.id]
    assert first.total_responses == 4
    assert first.correct_responses == 3
    assert first.incorrect_responses == 1
    assert first.difficulty == pytest.approx(0.75)

    # The third learner left q2 blank
    second = analytics.question_stats[q2.id]
    assert second.total_responses == 3
    assert second.correct_responses == 2
    assert second.average_points == pytest.approx(10 / 3)


@pytest.mark.asyncio
async def test_submitted_attempts_are_left_out_until_graded(service):
    assessment, (essay,) = await build_assessment(service, [essay_question(points=4)])
    attempt = await submit_answers(service, assessment.id, {essay.id: {"text": "Draft"}})

    before = await service.get_analytics(GRADER, assessment.id)
    assert before.total_attempts == 0
    assert before.average_score is None
    assert before.question_stats[essay.id].total_responses == 0

    await service.grade_attempt(GRADER, attempt.id, [ManualGrade(question_id=essay.id, points_earned=3)])

    after = await service.get_analytics(GRADER, assessment.id)
    assert after.total_attempts == 1
    assert after.average_score == 75
    assert after.pass_rate == 1.0
    # Subjective questions have no difficulty index
    assert after.question_stats[essay.id].difficulty is None
    assert after.question_stats[essay.id].average_points == 3


@pytest.mark.asyncio
async def test_analytics_permissions(service):
    assessment, _ = await build_assessment(service, [mc_question()])

    with pytest.raises(NotAuthorized):
        await service.get_analytics(LEARNER, assessment.id)
    with pytest.raises(NotFoundError):
        await service.get_analytics(GRADER, "missing")


def test_empty_analytics_serialise():
    analytics = compute_analytics("assessment-1", [], [])

    data = analytics.to_dict()
    assert data["total_attempts"] == 0
    assert data["question_stats"] == {}
    assert data["attempt_distribution"] == {}
    assert data["pass_rate"] is None
