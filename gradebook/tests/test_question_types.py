"""
Tests for question and answer data parsing.
"""

import unittest

from gradebook.common.errors import ValidationError
from gradebook.assessments.models import Question
from gradebook.assessments.question_types import (
    BooleanAnswer,
    ChoiceAnswer,
    CodeAnswer,
    EssayData,
    MultipleChoiceData,
    QuestionType,
    TextAnswer,
    TrueFalseData,
    parse_answer_data,
    parse_question_data,
)
from gradebook.tests.factories import choice_data


class TestQuestionDataParsing(unittest.TestCase):
    def test_multiple_choice(self):
        data = parse_question_data("multiple_choice", choice_data("c"))
        self.assertIsInstance(data, MultipleChoiceData)
        self.assertEqual(len(data.options), 4)
        self.assertEqual(data.correct_option.id, "c")
        self.assertTrue(data.has_option("a"))
        self.assertFalse(data.has_option("z"))

    def test_multiple_choice_assigns_missing_ids(self):
        data = parse_question_data(QuestionType.MULTIPLE_CHOICE, {
            "options": [{"text": "yes", "is_correct": True}, {"text": "no"}]
        })
        ids = [option.id for option in data.options]
        self.assertTrue(all(ids))
        self.assertEqual(len(set(ids)), 2)

    def test_multiple_choice_needs_exactly_one_correct_option(self):
        no_correct = {"options": [{"id": "a", "text": "A"}, {"id": "b", "text": "B"}]}
        two_correct = {"options": [
            {"id": "a", "text": "A", "is_correct": True},
            {"id": "b", "text": "B", "is_correct": True},
        ]}
        for raw in (no_correct, two_correct):
            with self.assertRaises(ValidationError):
                parse_question_data("multiple_choice", raw)

    def test_multiple_choice_rejects_bad_option_lists(self):
        cases = [
            {},
            {"options": [{"id": "a", "text": "A", "is_correct": True}]},
            {"options": [{"id": "a", "text": "A", "is_correct": True}, {"id": "a", "text": "B"}]},
            {"options": [{"id": "a", "text": "", "is_correct": True}, {"id": "b", "text": "B"}]},
        ]
        for raw in cases:
            with self.subTest(raw=raw), self.assertRaises(ValidationError):
                parse_question_data("multiple_choice", raw)

    def test_true_false_requires_boolean(self):
        self.assertEqual(parse_question_data("true_false", {"correct_answer": False}), TrueFalseData(False))
        with self.assertRaises(ValidationError):
            parse_question_data("true_false", {"correct_answer": "yes"})

    def test_essay_word_bounds(self):
        self.assertEqual(parse_question_data("essay", {"min_words": 10, "max_words": 200}), EssayData(10, 200))
        with self.assertRaises(ValidationError):
            parse_question_data("essay", {"min_words": 300, "max_words": 200})
        with self.assertRaises(ValidationError):
            parse_question_data("essay", {"min_words": -1})

    def test_code_defaults_to_python(self):
        data = parse_question_data("code", None)
        self.assertEqual(data.language, "python")

    def test_unknown_type(self):
        with self.assertRaises(ValidationError):
            parse_question_data("matching", {})

    def test_existing_variant_passes_through(self):
        data = TrueFalseData(True)
        self.assertIs(parse_question_data(QuestionType.TRUE_FALSE, data), data)


class TestAnswerDataParsing(unittest.TestCase):
    def test_variants_per_type(self):
        self.assertEqual(parse_answer_data("multiple_choice", {"option_id": "a"}), ChoiceAnswer("a"))
        self.assertEqual(parse_answer_data("true_false", {"value": True}), BooleanAnswer(True))
        self.assertEqual(parse_answer_data("short_answer", {"text": "42"}), TextAnswer("42"))
        self.assertEqual(parse_answer_data("essay", {"text": "Because"}), TextAnswer("Because"))
        self.assertEqual(
            parse_answer_data("code", {"code": "print(1)", "language": "python"}),
            CodeAnswer("print(1)", "python")
        )

    def test_malformed_answers(self):
        cases = [
            ("multiple_choice", {"option": "a"}),
            ("true_false", {"value": "true"}),
            ("essay", {"text": 5}),
            ("code", {}),
            ("essay", "plain string"),
        ]
        for question_type, raw in cases:
            with self.subTest(question_type=question_type, raw=raw), self.assertRaises(ValidationError):
                parse_answer_data(question_type, raw)

    def test_to_dict_drops_empty_fields(self):
        self.assertEqual(CodeAnswer("x = 1").to_dict(), {"code": "x = 1"})


class TestQuestionModel(unittest.TestCase):
    def test_points_must_be_positive(self):
        for points in (0, -1, True):
            with self.subTest(points=points), self.assertRaises(ValidationError):
                Question(
                    assessment_id="a1",
                    question_type="true_false",
                    question_text="Sky is blue",
                    question_data={"correct_answer": True},
                    points=points
                )

    def test_learner_view_hides_answers(self):
        question = Question(
            assessment_id="a1",
            question_type="multiple_choice",
            question_text="Pick one",
            question_data=choice_data("a"),
            points=5,
            explanation="A is right"
        )
        hidden = question.to_dict(include_answers=False)
        self.assertNotIn("explanation", hidden)
        for option in hidden["question_data"]["options"]:
            self.assertNotIn("is_correct", option)

        full = question.to_dict()
        self.assertEqual(full["explanation"], "A is right")
        self.assertTrue(full["question_data"]["options"][0]["is_correct"])


if __name__ == "__main__":
    unittest.main()
