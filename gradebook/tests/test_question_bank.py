"""
Tests for authoring assessments and questions.
"""

import asyncio

import pytest

from gradebook.common.errors import NotAuthorized, NotFoundError, ValidationError
from gradebook.assessments.models import AssessmentType
from gradebook.assessments.question_types import QuestionType
from gradebook.tests.factories import (
    INSTRUCTOR,
    LEARNER,
    build_assessment,
    essay_question,
    mc_question,
    tf_question,
)


@pytest.mark.asyncio
async def test_create_assessment(service):
    assessment = await service.create_assessment(
        INSTRUCTOR, "course-9", "Final exam",
        assessment_type=AssessmentType.EXAM, passing_score=70, max_attempts=1
    )

    assert assessment.created_by == INSTRUCTOR.user_id
    assert assessment.is_published is False
    assert assessment.total_points == 0
    assert [a.id for a in await service.list_assessments(INSTRUCTOR, "course-9")] == [assessment.id]


@pytest.mark.asyncio
async def test_invalid_assessment_fields(service):
    for fields in ({"passing_score": 120}, {"max_attempts": 0}, {"time_limit_minutes": -5}, {"assessment_type": "poll"}):
        with pytest.raises(ValidationError):
            await service.create_assessment(INSTRUCTOR, "course-1", "Quiz", **fields)


@pytest.mark.asyncio
async def test_learners_cannot_author(service):
    with pytest.raises(NotAuthorized):
        await service.create_assessment(LEARNER, "course-1", "Mine now")

    assessment, _ = await build_assessment(service, [], publish=False)
    with pytest.raises(NotAuthorized):
        await service.add_question(LEARNER, assessment.id, **mc_question())


@pytest.mark.asyncio
async def test_questions_keep_dense_order_and_total(service):
    assessment, (q1, q2) = await build_assessment(service, [mc_question(points=5), tf_question(points=2)], publish=False)

    inserted = await service.add_question(INSTRUCTOR, assessment.id, position=0, **essay_question(points=3))

    stored, questions = await service.get_assessment(INSTRUCTOR, assessment.id)
    assert [q.id for q in questions] == [inserted.id, q1.id, q2.id]
    assert [q.order_index for q in questions] == [0, 1, 2]
    assert stored.total_points == 10

    await service.remove_question(INSTRUCTOR, assessment.id, q1.id)
    stored, questions = await service.get_assessment(INSTRUCTOR, assessment.id)
    assert [q.order_index for q in questions] == [0, 1]
    assert stored.total_points == 5


@pytest.mark.asyncio
async def test_reorder_questions(service):
    assessment, (q1, q2, q3) = await build_assessment(
        service, [mc_question(), tf_question(), essay_question()], publish=False
    )

    reordered = await service.reorder_questions(INSTRUCTOR, assessment.id, [q3.id, q1.id, q2.id])
    assert [q.id for q in reordered] == [q3.id, q1.id, q2.id]

    with pytest.raises(ValidationError):
        await service.reorder_questions(INSTRUCTOR, assessment.id, [q1.id, q2.id])
    with pytest.raises(ValidationError):
        await service.reorder_questions(INSTRUCTOR, assessment.id, [q1.id, q1.id, q2.id])


@pytest.mark.asyncio
async def test_update_question(service):
    assessment, (q1,) = await build_assessment(service, [mc_question(points=5)], publish=False)

    updated = await service.update_question(INSTRUCTOR, assessment.id, q1.id, {"points": 8, "question_text": "Choose"})
    assert updated.points == 8
    assert updated.question_text == "Choose"
    stored, _ = await service.get_assessment(INSTRUCTOR, assessment.id)
    assert stored.total_points == 8

    with pytest.raises(ValidationError):
        await service.update_question(INSTRUCTOR, assessment.id, q1.id, {"question_type": "true_false"})
    with pytest.raises(ValidationError):
        await service.update_question(INSTRUCTOR, assessment.id, q1.id, {"assessment_id": "elsewhere"})

    changed = await service.update_question(INSTRUCTOR, assessment.id, q1.id, {
        "question_type": "true_false",
        "question_data": {"correct_answer": False},
    })
    assert changed.question_type is QuestionType.TRUE_FALSE


@pytest.mark.asyncio
async def test_add_question_validation(service):
    assessment, _ = await build_assessment(service, [], publish=False)

    with pytest.raises(ValidationError):
        await service.add_question(INSTRUCTOR, assessment.id, **mc_question(points=0))
    with pytest.raises(ValidationError):
        await service.add_question(
            INSTRUCTOR, assessment.id,
            question_type="multiple_choice", question_text="Broken",
            question_data={"options": [{"id": "a", "text": "only"}]}, points=1
        )
    with pytest.raises(NotFoundError):
        await service.add_question(INSTRUCTOR, "missing", **mc_question())


@pytest.mark.asyncio
async def test_publishing(service):
    empty, _ = await build_assessment(service, [], publish=False)
    with pytest.raises(ValidationError):
        await service.publish_assessment(INSTRUCTOR, empty.id)

    assessment, _ = await build_assessment(service, [mc_question()], publish=False)
    with pytest.raises(NotAuthorized):
        await service.get_assessment(LEARNER, assessment.id)
    assert await service.list_assessments(LEARNER) == []

    await service.publish_assessment(INSTRUCTOR, assessment.id)
    visible, questions = await service.get_assessment(LEARNER, assessment.id)
    assert visible.is_published
    assert len(questions) == 1

    unpublished = await service.unpublish_assessment(INSTRUCTOR, assessment.id)
    assert unpublished.is_published is False


@pytest.mark.asyncio
async def test_concurrent_adds_keep_every_question(service):
    assessment, _ = await build_assessment(service, [], publish=False)

    added = await asyncio.gather(
        service.add_question(INSTRUCTOR, assessment.id, **mc_question(points=5)),
        service.add_question(INSTRUCTOR, assessment.id, **tf_question(points=2)),
        service.add_question(INSTRUCTOR, assessment.id, **essay_question(points=3)),
    )

    stored, questions = await service.get_assessment(INSTRUCTOR, assessment.id)
    assert {q.id for q in questions} == {q.id for q in added}
    assert [q.order_index for q in questions] == [0, 1, 2]
    assert stored.total_points == 10
