"""
Tests for rubric definitions and evaluation.
"""

import unittest

import pytest

from gradebook.common.errors import NotAuthorized, NotFoundError, ValidationError
from gradebook.assessments.models import Rubric, RubricCriterion, RubricLevel
from gradebook.assessments.rubrics import RubricScore, evaluate, scale_to_points
from gradebook.tests.factories import GRADER, INSTRUCTOR, LEARNER


def writing_rubric():
    return Rubric(
        title="Writing",
        criteria=[
            RubricCriterion(
                name="Clarity",
                max_points=4,
                levels=(RubricLevel("poor", 1), RubricLevel("good", 3), RubricLevel("excellent", 4))
            ),
            {"name": "Evidence", "max_points": 6},
        ]
    )


class TestRubricModel(unittest.TestCase):
    def test_total_points(self):
        rubric = writing_rubric()
        self.assertEqual(rubric.total_points, 10)
        self.assertIs(rubric.criterion("Clarity"), rubric.criteria[0])
        self.assertIs(rubric.criterion(rubric.criteria[1].id), rubric.criteria[1])

    def test_max_points_defaults_to_best_level(self):
        criterion = RubricCriterion.from_dict({
            "name": "Structure",
            "levels": [{"name": "weak", "points": 1}, {"name": "strong", "points": 5}],
        })
        self.assertEqual(criterion.max_points, 5)

    def test_invalid_rubrics(self):
        with self.assertRaises(ValidationError):
            Rubric(title="Empty", criteria=[])
        with self.assertRaises(ValidationError):
            Rubric(title="Twice", criteria=[{"name": "A", "max_points": 1}, {"name": "A", "max_points": 2}])
        with self.assertRaises(ValidationError):
            RubricCriterion(name="Zero", max_points=0)
        with self.assertRaises(ValidationError):
            RubricCriterion(name="Level too high", max_points=2, levels=(RubricLevel("max", 3),))


class TestEvaluate(unittest.TestCase):
    def setUp(self):
        self.rubric = writing_rubric()

    def test_levels_and_points(self):
        score = evaluate(self.rubric, {"Clarity": "good", "Evidence": 5})
        self.assertEqual(score.criterion_scores, {"Clarity": 3.0, "Evidence": 5.0})
        self.assertEqual(score.total, 8)
        self.assertEqual(score.max_score, 10)
        self.assertEqual(score.percentage, 80)

    def test_unselected_criteria_earn_nothing(self):
        score = evaluate(self.rubric, {"Clarity": "excellent"})
        self.assertEqual(score.criterion_scores["Evidence"], 0)
        self.assertEqual(score.total, 4)

    def test_points_are_clamped_to_criterion_maximum(self):
        score = evaluate(self.rubric, {"Evidence": 60})
        self.assertEqual(score.criterion_scores["Evidence"], 6)

    def test_invalid_selections(self):
        cases = [
            {"Originality": 2},
            {"Clarity": "superb"},
            {"Evidence": -1},
            {"Evidence": True},
        ]
        for selections in cases:
            with self.subTest(selections=selections), self.assertRaises(ValidationError):
                evaluate(self.rubric, selections)

    def test_scale_to_points(self):
        self.assertEqual(scale_to_points(RubricScore({}, 8, 10), 5), 4)
        self.assertEqual(scale_to_points(RubricScore({}, 0, 0), 5), 0)


class TestRubricService:
    @pytest.mark.asyncio
    async def test_create_and_evaluate(self, service):
        rubric = await service.create_rubric(INSTRUCTOR, "Essay", [
            {"name": "Argument", "max_points": 5},
            {"name": "Style", "max_points": 5},
        ], description="Essay marking guide")

        assert rubric.created_by == INSTRUCTOR.user_id
        fetched = await service.get_rubric(GRADER, rubric.id)
        assert fetched.to_dict() == rubric.to_dict()

        score = await service.evaluate_rubric(GRADER, rubric.id, {"Argument": 4, "Style": 2})
        assert score.total == 6
        assert score.percentage == 60

    @pytest.mark.asyncio
    async def test_list_by_assessment(self, service):
        first = await service.create_rubric(INSTRUCTOR, "A", [{"name": "x", "max_points": 1}], assessment_id="a1")
        await service.create_rubric(INSTRUCTOR, "B", [{"name": "x", "max_points": 1}], assessment_id="a2")

        listed = await service.list_rubrics(GRADER, "a1")
        assert [r.id for r in listed] == [first.id]

    @pytest.mark.asyncio
    async def test_permissions_and_missing(self, service):
        with pytest.raises(NotAuthorized):
            await service.create_rubric(GRADER, "Not mine", [{"name": "x", "max_points": 1}])
        with pytest.raises(NotAuthorized):
            await service.get_rubric(LEARNER, "anything")
        with pytest.raises(NotFoundError):
            await service.get_rubric(GRADER, "missing")
