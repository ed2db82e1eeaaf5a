"""
Per-quiz scoring.

Both the live submission path and the recheck batch go through
`GradingKey.grade`, which is a pure function of the question set and the raw
answers bundle.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple

from grading.matcher import (
    count_enumeration_matches,
    enumeration_passes,
    is_identification_correct,
    is_multiple_choice_correct,
    parse_enumeration_answer,
)
from grading.schemas import AnswersBundle, parse_answers_bundle
from grading.types import GradableQuestion, QuestionKind

ZERO = Decimal(0)


@dataclass(frozen=True)
class QuestionOutcome:
    question_id: str
    kind: QuestionKind
    answer: str
    correct: bool
    points_awarded: Decimal
    max_points: Decimal
    matched_items: Optional[int] = None
    expected_items: Optional[int] = None


@dataclass(frozen=True)
class ScoreResult:
    score: Decimal
    max_score: Decimal
    outcomes: Tuple[QuestionOutcome, ...] = ()


class GradingKey:
    """
    The gradable form of one source quiz's question set.

    Built once per source quiz and reused for every attempt graded against it.
    """

    def __init__(self, questions: Iterable[GradableQuestion]):
        self.questions = tuple(q for q in questions if q is not None and q.is_gradable)
        self.max_score = sum((q.max_points for q in self.questions), ZERO)

    @classmethod
    def from_questions(cls, questions):
        """Build from Question model instances (or anything shaped like them)."""
        return cls(GradableQuestion.from_question(q) for q in questions)

    @property
    def gradable_count(self):
        return len(self.questions)

    def grade(self, raw_answers) -> ScoreResult:
        bundle = parse_answers_bundle(raw_answers)
        buckets = {
            bucket: bundle.bucket_map(bucket)
            for bucket in ("multiple_choice", "identification", "enumeration")
        }

        outcomes = tuple(self._grade_question(q, _answer_for(q, buckets)) for q in self.questions)
        score = sum((o.points_awarded for o in outcomes), ZERO)
        return ScoreResult(score=score, max_score=self.max_score, outcomes=outcomes)

    def _grade_question(self, question: GradableQuestion, answer: str) -> QuestionOutcome:
        if question.kind is QuestionKind.ENUMERATION:
            return _grade_enumeration(question, answer)

        if question.kind is QuestionKind.MULTIPLE_CHOICE:
            correct = is_multiple_choice_correct(answer, question.answer_key)
        else:
            correct = is_identification_correct(answer, question.answer_key)

        return QuestionOutcome(
            question_id=question.question_id,
            kind=question.kind,
            answer=answer,
            correct=correct,
            points_awarded=question.points if correct else ZERO,
            max_points=question.max_points,
        )


def _answer_for(question: GradableQuestion, buckets: Dict[str, Dict[str, str]]) -> str:
    answers = buckets[question.kind.bucket]
    if question.question_id in answers:
        return answers[question.question_id]
    # degraded multiple choice may still have been answered as multiple choice
    return buckets[question.declared_kind.bucket].get(question.question_id, "")


def _grade_enumeration(question: GradableQuestion, answer: str) -> QuestionOutcome:
    expected = question.expected_items
    matched = count_enumeration_matches(parse_enumeration_answer(answer), list(question.key_items))

    if expected == 0:
        awarded = ZERO
    elif question.per_item_mode:
        awarded = Decimal(min(matched, expected))
    elif enumeration_passes(matched, expected):
        awarded = question.points
    else:
        awarded = ZERO

    return QuestionOutcome(
        question_id=question.question_id,
        kind=question.kind,
        answer=answer,
        correct=expected > 0 and awarded == question.max_points,
        points_awarded=awarded,
        max_points=question.max_points,
        matched_items=matched,
        expected_items=expected,
    )


def score_attempt(questions, raw_answers) -> ScoreResult:
    """Grade one answers bundle against Question instances."""
    return GradingKey.from_questions(questions).grade(raw_answers)
