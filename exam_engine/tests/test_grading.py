import unittest

from exam_engine.assessments.grading import (
    answers_match,
    build_detail,
    grade,
    normalize_answer,
    score_percent
)
from exam_engine.domain.questions import Question


def _questions():
    return {
        "a": Question(question_id="a", prompt="A?", question_type="free-text", correct_answer=3, points=2),
        "b": Question(question_id="b", prompt="B?", question_type="true-false", correct_answer=False, points=1,
                      explanation="Because."),
        "c": Question(question_id="c", prompt="C?", question_type="single-choice", correct_answer="Blue",
                      choices=["Red", "Blue"], points=1),
    }


class TestNormalizeAnswer(unittest.TestCase):
    """Test the canonical string coercion used before comparing answers."""

    def test_none_stays_none(self):
        self.assertIsNone(normalize_answer(None))

    def test_booleans(self):
        self.assertEqual(normalize_answer(True), "true")
        self.assertEqual(normalize_answer(False), "false")
        self.assertEqual(normalize_answer(" TRUE "), "true")
        self.assertEqual(normalize_answer("False"), "false")

    def test_numbers(self):
        self.assertEqual(normalize_answer(3), "3")
        self.assertEqual(normalize_answer(3.0), "3")
        self.assertEqual(normalize_answer(2.5), "2.5")
        self.assertEqual(normalize_answer(" 3 "), "3")

    def test_strings_keep_case(self):
        self.assertEqual(normalize_answer("  Paris "), "Paris")
        self.assertNotEqual(normalize_answer("paris"), normalize_answer("Paris"))


class TestAnswersMatch(unittest.TestCase):

    def test_transport_type_mismatches_match(self):
        self.assertTrue(answers_match("3", 3))
        self.assertTrue(answers_match(3.0, "3"))
        self.assertTrue(answers_match("true", True))
        self.assertTrue(answers_match(False, "FALSE"))

    def test_missing_answer_never_matches(self):
        self.assertFalse(answers_match(None, None))
        self.assertFalse(answers_match(None, "x"))

    def test_different_values(self):
        self.assertFalse(answers_match("4", 3))
        self.assertFalse(answers_match("1", True))


class TestScorePercent(unittest.TestCase):

    def test_zero_possible_is_zero(self):
        self.assertEqual(score_percent(0, 0), 0)
        self.assertEqual(score_percent(5, 0), 0)

    def test_rounding_half_up(self):
        self.assertEqual(score_percent(1, 2), 50)
        self.assertEqual(score_percent(1, 3), 33)
        self.assertEqual(score_percent(2, 3), 67)
        # 101 / 200 = 50.5%
        self.assertEqual(score_percent(101, 200), 51)
        # 1 / 8 = 12.5%
        self.assertEqual(score_percent(1, 8), 13)

    def test_full_marks(self):
        self.assertEqual(score_percent(10, 10), 100)


class TestGrade(unittest.TestCase):

    def test_scores_every_presented_question(self):
        result = grade(["a", "b", "c"], _questions(), {"a": "3", "b": "false"}, passing_score=70)

        self.assertEqual(result.possible, 4)
        self.assertEqual(result.earned, 3)
        self.assertEqual(result.score_percent, 75)
        self.assertTrue(result.passed)
        self.assertEqual(result.correct_count, 2)
        self.assertEqual([a.question_id for a in result.answers], ["a", "b", "c"])

        missing = result.answers[2]
        self.assertIsNone(missing.given_answer)
        self.assertFalse(missing.is_correct)
        self.assertEqual(missing.points_awarded, 0)

    def test_unknown_question_ids_are_ignored(self):
        result = grade(["a"], _questions(), {"a": 3, "zzz": "anything"}, passing_score=100)

        self.assertEqual(len(result.answers), 1)
        self.assertEqual(result.score_percent, 100)
        self.assertTrue(result.passed)

    def test_passing_threshold_is_inclusive(self):
        result = grade(["a", "b", "c"], _questions(), {"a": 3, "b": False}, passing_score=75)
        self.assertTrue(result.passed)

        result = grade(["a", "b", "c"], _questions(), {"a": 3, "b": False}, passing_score=76)
        self.assertFalse(result.passed)

    def test_deterministic(self):
        submitted = {"a": "3", "c": "Red"}
        first = grade(["c", "a", "b"], _questions(), submitted, passing_score=50)
        second = grade(["c", "a", "b"], _questions(), submitted, passing_score=50)
        self.assertEqual(first.score_percent, second.score_percent)
        self.assertEqual(first.answers, second.answers)

    def test_build_detail(self):
        questions = _questions()
        result = grade(["b"], questions, {"b": True}, passing_score=0)
        detail = build_detail(result.answers, questions)

        self.assertEqual(detail, [{
            "question_id": "b",
            "prompt": "B?",
            "given_answer": True,
            "correct_answer": False,
            "is_correct": False,
            "points_awarded": 0,
            "explanation": "Because."
        }])


if __name__ == "__main__":
    unittest.main()
