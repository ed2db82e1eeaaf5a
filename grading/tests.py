from decimal import Decimal
from types import SimpleNamespace
from unittest import TestCase

from grading.exceptions import GradingValidationError
from grading.matcher import (
    count_enumeration_matches,
    enumeration_passes,
    enumeration_variants,
    is_identification_correct,
    is_multiple_choice_correct,
    parse_enumeration_answer,
    parse_enumeration_key,
)
from grading.normalizer import normalize_answer, normalize_for_enumeration, singularize
from grading.schemas import AnswerItem, parse_answers_bundle
from grading.scorer import GradingKey, score_attempt
from grading.types import GradableQuestion, QuestionKind, coerce_question_kind, effective_points, parse_options


def bundle(multiple_choice=None, identification=None, enumeration=None):
    def items(answers):
        return [{"questionId": qid, "answer": answer} for qid, answer in (answers or {}).items()]

    return {
        "multiple_choice": items(multiple_choice),
        "identification": items(identification),
        "enumeration": items(enumeration),
    }


class NormalizerTestCase(TestCase):

    def test_normalize_answer(self):
        self.assertEqual(normalize_answer("  Sub-Total!  "), "sub total")
        self.assertEqual(normalize_answer("Paris."), "paris")
        self.assertEqual(normalize_answer("A/B"), "a/b")
        self.assertEqual(normalize_answer("The   quick\tfox"), "the quick fox")
        self.assertEqual(normalize_answer(None), "")

    def test_normalize_for_enumeration_drops_and(self):
        self.assertEqual(normalize_for_enumeration("Salt and Pepper"), "salt pepper")
        self.assertEqual(normalize_for_enumeration("Salt AND pepper"), "salt pepper")
        self.assertEqual(normalize_for_enumeration("Andes"), "andes")

    def test_normalize_for_enumeration_keeps_hyphens_and_slashes(self):
        self.assertEqual(normalize_for_enumeration("Sub-total"), "sub-total")
        self.assertEqual(normalize_for_enumeration("Red/Blue!"), "red/blue")

    def test_singularize(self):
        self.assertEqual(singularize("cities"), "city")
        self.assertEqual(singularize("boxes"), "box")
        self.assertEqual(singularize("heroes"), "hero")
        self.assertEqual(singularize("classes"), "class")
        self.assertEqual(singularize("cats"), "cat")
        self.assertEqual(singularize("glass"), "glass")
        self.assertEqual(singularize("bus"), "bus")


class MatcherTestCase(TestCase):

    def test_multiple_choice(self):
        self.assertTrue(is_multiple_choice_correct("  paris ", "Paris"))
        self.assertFalse(is_multiple_choice_correct("London", "Paris"))

    def test_identification_equal_after_normalization(self):
        pairs = [("Isaac Newton!", "isaac   newton"), ("Sub-total", "sub total"), ("", "")]
        for answer, key in pairs:
            self.assertTrue(is_identification_correct(answer, key), (answer, key))

    def test_identification_word_count_mismatch_fails(self):
        self.assertFalse(is_identification_correct("Isaac Newton", "Newton"))
        self.assertFalse(is_identification_correct("Newton", "Isaac Newton"))

    def test_identification_near_matches(self):
        self.assertTrue(is_identification_correct("Newtons", "Newton"))
        self.assertTrue(is_identification_correct("cats", "cat"))
        self.assertTrue(is_identification_correct("Mitochondrial", "Mitochondria"))

    def test_identification_wrong(self):
        self.assertFalse(is_identification_correct("dog", "cat"))
        self.assertFalse(is_identification_correct("", "paris"))
        self.assertFalse(is_identification_correct("paris", ""))
        # short words get no prefix tolerance
        self.assertFalse(is_identification_correct("cart", "car"))

    def test_parse_enumeration_key(self):
        self.assertEqual(parse_enumeration_key("cat\ndog"), ["cat", "dog"])
        self.assertEqual(parse_enumeration_key("cat, dog; bird\n\n"), ["cat", "dog", "bird"])
        self.assertEqual(parse_enumeration_key(""), [])

    def test_parse_enumeration_answer_tolerates_lists(self):
        answer = "1. Mercury\n2) Venus\n- Earth"
        self.assertEqual(parse_enumeration_answer(answer), ["mercury", "venus", "earth"])

    def test_enumeration_variants(self):
        self.assertEqual(enumeration_variants("Red/Blue"), ["red/blue", "red", "blue", "red blue"])
        self.assertEqual(enumeration_variants("New York"), ["new york", "newyork"])
        self.assertEqual(enumeration_variants("cat"), ["cat"])

    def test_enumeration_order_independent(self):
        self.assertEqual(count_enumeration_matches(["dog", "cat"], ["cat", "dog"]), 2)

    def test_enumeration_never_reuses_student_item(self):
        self.assertEqual(count_enumeration_matches(["cat"], ["cat", "cat"]), 1)

    def test_enumeration_variant_matches(self):
        self.assertEqual(count_enumeration_matches(["blue"], ["red/blue"]), 1)
        self.assertEqual(count_enumeration_matches(["newyork"], ["new york"]), 1)
        self.assertEqual(count_enumeration_matches(["photo"], ["photosynthesis"]), 1)

    def test_enumeration_short_items_need_exact_match(self):
        self.assertEqual(count_enumeration_matches(["box"], ["ox"]), 0)

    def test_enumeration_boolean_sequence_is_positional(self):
        key = parse_enumeration_key("true, false, true")
        self.assertEqual(count_enumeration_matches(["false", "false", "true"], key), 2)
        self.assertEqual(count_enumeration_matches(["f", "f", "t"], ["t", "f", "t"]), 2)
        self.assertEqual(count_enumeration_matches(["true", "false", "true"], key), 3)

    def test_enumeration_boolean_mode_counts_up_to_shorter_list(self):
        self.assertEqual(count_enumeration_matches(["true"], ["true", "false", "true"]), 1)

    def test_enumeration_mixed_items_use_unordered_matching(self):
        self.assertEqual(count_enumeration_matches(["false", "cat", "true"], ["true", "cat"]), 2)

    def test_enumeration_passes_threshold(self):
        self.assertFalse(enumeration_passes(3, 4))
        self.assertTrue(enumeration_passes(4, 5))
        self.assertTrue(enumeration_passes(5, 5))
        self.assertFalse(enumeration_passes(0, 0))


class QuestionTypeTestCase(TestCase):

    def test_coerce_question_kind_aliases(self):
        self.assertIs(coerce_question_kind("Multiple Choice"), QuestionKind.MULTIPLE_CHOICE)
        self.assertIs(coerce_question_kind("true_false"), QuestionKind.MULTIPLE_CHOICE)
        self.assertIs(coerce_question_kind("TF"), QuestionKind.MULTIPLE_CHOICE)
        self.assertIs(coerce_question_kind("enum"), QuestionKind.ENUMERATION)
        self.assertIs(coerce_question_kind("essay"), QuestionKind.LONG_ANSWER)
        self.assertIsNone(coerce_question_kind("matching"))
        self.assertIsNone(coerce_question_kind(None))

    def test_long_answer_reads_identification_bucket(self):
        self.assertEqual(QuestionKind.LONG_ANSWER.bucket, "identification")
        self.assertEqual(QuestionKind.ENUMERATION.bucket, "enumeration")

    def test_effective_points_fallback(self):
        self.assertEqual(effective_points("2.5"), Decimal("2.5"))
        self.assertEqual(effective_points(0), Decimal(1))
        self.assertEqual(effective_points("-2"), Decimal(1))
        self.assertEqual(effective_points("abc"), Decimal(1))
        self.assertEqual(effective_points(None), Decimal(1))

    def test_parse_options(self):
        self.assertEqual(parse_options('["a", " b ", ""]'), ("a", "b"))
        self.assertEqual(parse_options(["Paris", "London"]), ("Paris", "London"))
        self.assertEqual(parse_options("not json"), ())
        self.assertEqual(parse_options(None), ())

    def test_build_degrades_multiple_choice_without_options(self):
        question = GradableQuestion.build(5, "multiple_choice", answer_key="Paris", options=["Paris"])
        self.assertIs(question.kind, QuestionKind.IDENTIFICATION)
        self.assertIs(question.declared_kind, QuestionKind.MULTIPLE_CHOICE)

    def test_build_unknown_type(self):
        self.assertIsNone(GradableQuestion.build(1, "matching", answer_key="x"))

    def test_long_answer_without_key_is_not_gradable(self):
        self.assertFalse(GradableQuestion.build(1, "long_answer", answer_key="  ").is_gradable)
        self.assertTrue(GradableQuestion.build(1, "long_answer", answer_key="Osmosis").is_gradable)


class AnswersBundleTestCase(TestCase):

    def test_answer_item_coercion(self):
        item = AnswerItem.model_validate({"questionId": 7, "answer": ["a", "b"]})
        self.assertEqual(item.question_id, "7")
        self.assertEqual(item.answer, "a\nb")

        item = AnswerItem.model_validate({"questionId": "8", "answer": None})
        self.assertEqual(item.answer, "")

    def test_none_is_empty_bundle(self):
        parsed = parse_answers_bundle(None)
        self.assertEqual(parsed.bucket_map("identification"), {})

    def test_malformed_bundle(self):
        with self.assertRaises(GradingValidationError):
            parse_answers_bundle({"multiple_choice": "nope"})
        with self.assertRaises(GradingValidationError):
            parse_answers_bundle(["not", "a", "bundle"])

    def test_to_storage_uses_camel_case(self):
        parsed = parse_answers_bundle(bundle(identification={"3": "Newton"}))
        stored = parsed.to_storage()
        self.assertEqual(stored["identification"], [{"questionId": "3", "answer": "Newton"}])
        self.assertEqual(stored["enumeration"], [])


class GradingKeyTestCase(TestCase):

    def setUp(self):
        self.questions = [
            GradableQuestion.build(1, "multiple_choice", answer_key="Paris", points=1, options=["Paris", "London"]),
            GradableQuestion.build(2, "identification", answer_key="Newton", points=2),
            GradableQuestion.build(3, "enumeration", answer_key="cat\ndog", points=2),
        ]
        self.key = GradingKey(self.questions)

    def test_max_score(self):
        self.assertEqual(self.key.max_score, Decimal(5))
        self.assertEqual(self.key.gradable_count, 3)

    def test_grade(self):
        answers = bundle(
            multiple_choice={"1": "paris"},
            identification={"2": "Isaac Newton"},
            enumeration={"3": "dog"},
        )
        result = self.key.grade(answers)
        self.assertEqual(result.score, Decimal(2))
        self.assertEqual(result.max_score, Decimal(5))

        outcomes = {o.question_id: o for o in result.outcomes}
        self.assertTrue(outcomes["1"].correct)
        self.assertFalse(outcomes["2"].correct)
        self.assertEqual(outcomes["3"].matched_items, 1)
        self.assertEqual(outcomes["3"].expected_items, 2)
        self.assertFalse(outcomes["3"].correct)

    def test_grade_is_deterministic(self):
        answers = bundle(multiple_choice={"1": "London"}, enumeration={"3": "dog, cat"})
        self.assertEqual(self.key.grade(answers), self.key.grade(answers))

    def test_missing_answers_score_zero(self):
        result = self.key.grade(None)
        self.assertEqual(result.score, Decimal(0))
        self.assertEqual(result.max_score, Decimal(5))

    def test_malformed_answers_raise(self):
        with self.assertRaises(GradingValidationError):
            self.key.grade({"identification": [42]})

    def test_unknown_types_are_ignored(self):
        key = GradingKey([GradableQuestion.build(1, "matching", answer_key="x"), self.questions[1]])
        self.assertEqual(key.gradable_count, 1)
        self.assertEqual(key.max_score, Decimal(2))


class EnumerationScoringTestCase(TestCase):

    def grade(self, answer_key, points, answer):
        key = GradingKey([GradableQuestion.build(9, "enumeration", answer_key=answer_key, points=points)])
        return key.grade(bundle(enumeration={"9": answer}))

    def test_fixed_mode_below_threshold_scores_zero(self):
        result = self.grade("mercury, venus, earth, mars", 1, "mercury, venus, earth")
        self.assertEqual(result.score, Decimal(0))
        self.assertEqual(result.max_score, Decimal(1))

    def test_fixed_mode_at_threshold_scores_full(self):
        result = self.grade("mercury, venus, earth, mars, jupiter", 10, "mars\nearth\nvenus\nmercury")
        self.assertEqual(result.score, Decimal(10))
        self.assertTrue(result.outcomes[0].correct)

    def test_per_item_mode_caps_at_expected(self):
        result = self.grade("cat, dog", 2, "cat, dog, cat, dog")
        self.assertEqual(result.score, Decimal(2))
        self.assertEqual(result.max_score, Decimal(2))

    def test_points_equal_to_item_count_switch_mode(self):
        # same key and answer, only the point value differs
        per_item = self.grade("red, green, blue", 3, "red")
        self.assertEqual(per_item.score, Decimal(1))

        fixed = self.grade("red, green, blue", 2, "red")
        self.assertEqual(fixed.score, Decimal(0))

        fixed = self.grade("red, green, blue", 2, "blue, red, green")
        self.assertEqual(fixed.score, Decimal(2))

    def test_adding_key_item_changes_mode(self):
        self.assertEqual(self.grade("red, green, blue", 3, "red, green").score, Decimal(2))
        self.assertEqual(self.grade("red, green, blue, yellow", 3, "red, green").score, Decimal(0))

    def test_empty_key_scores_zero_but_counts_in_max(self):
        result = self.grade("", 1, "anything")
        self.assertEqual(result.score, Decimal(0))
        self.assertEqual(result.max_score, Decimal(1))
        self.assertFalse(result.outcomes[0].correct)

    def test_boolean_sequence(self):
        result = self.grade("true\nfalse\ntrue", 3, "false\nfalse\ntrue")
        self.assertEqual(result.score, Decimal(2))


class FallbackScoringTestCase(TestCase):

    def test_degraded_multiple_choice_answer_found_in_either_bucket(self):
        key = GradingKey([GradableQuestion.build(5, "multiple_choice", answer_key="Paris", points=1, options=["Paris"])])
        self.assertEqual(key.grade(bundle(multiple_choice={"5": "paris"})).score, Decimal(1))
        self.assertEqual(key.grade(bundle(identification={"5": "Paris"})).score, Decimal(1))
        self.assertEqual(key.grade(bundle(identification={"5": "Lyon"})).score, Decimal(0))

    def test_long_answer_without_key_left_out_of_max(self):
        key = GradingKey([
            GradableQuestion.build(1, "long_answer", answer_key="", points=5),
            GradableQuestion.build(2, "identification", answer_key="Osmosis", points=1),
        ])
        result = key.grade(bundle(identification={"1": "A long essay", "2": "osmosis"}))
        self.assertEqual(result.score, Decimal(1))
        self.assertEqual(result.max_score, Decimal(1))

    def test_long_answer_with_key_graded_like_identification(self):
        key = GradingKey([GradableQuestion.build(1, "long_answer", answer_key="Photosynthesis", points=3)])
        self.assertEqual(key.grade(bundle(identification={"1": "photosynthesis"})).score, Decimal(3))

    def test_non_positive_points_count_as_one(self):
        key = GradingKey([GradableQuestion.build(1, "identification", answer_key="Newton", points=0)])
        result = key.grade(bundle(identification={"1": "Newton"}))
        self.assertEqual(result.score, Decimal(1))
        self.assertEqual(result.max_score, Decimal(1))

    def test_score_attempt_from_model_like_objects(self):
        questions = [
            SimpleNamespace(pk=1, question_type="identification", answer_key="Newton", points=Decimal("1.50"),
                            options=[]),
            SimpleNamespace(pk=2, question_type="matching", answer_key="x", points=1, options=[]),
        ]
        result = score_attempt(questions, bundle(identification={"1": "newton"}))
        self.assertEqual(result.score, Decimal("1.5"))
        self.assertEqual(result.max_score, Decimal("1.5"))
