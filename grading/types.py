import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Tuple

from grading.matcher import parse_enumeration_key

logger = logging.getLogger("django_quiz")


class QuestionKind(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    IDENTIFICATION = "identification"
    ENUMERATION = "enumeration"
    LONG_ANSWER = "long_answer"

    @property
    def bucket(self):
        """Key of the raw answers bundle this kind is read from."""
        if self is QuestionKind.LONG_ANSWER:
            # long answers travel in the identification bucket
            return QuestionKind.IDENTIFICATION.value
        return self.value


QUESTION_TYPE_ALIASES = {
    "multiple_choice": QuestionKind.MULTIPLE_CHOICE,
    "multiplechoice": QuestionKind.MULTIPLE_CHOICE,
    "mc": QuestionKind.MULTIPLE_CHOICE,
    "true_false": QuestionKind.MULTIPLE_CHOICE,
    "truefalse": QuestionKind.MULTIPLE_CHOICE,
    "tf": QuestionKind.MULTIPLE_CHOICE,
    "identification": QuestionKind.IDENTIFICATION,
    "id": QuestionKind.IDENTIFICATION,
    "enumeration": QuestionKind.ENUMERATION,
    "enum": QuestionKind.ENUMERATION,
    "long_answer": QuestionKind.LONG_ANSWER,
    "longanswer": QuestionKind.LONG_ANSWER,
    "essay": QuestionKind.LONG_ANSWER,
}


def coerce_question_kind(raw) -> Optional[QuestionKind]:
    if isinstance(raw, QuestionKind):
        return raw
    key = "_".join(str(raw or "").lower().split())
    return QUESTION_TYPE_ALIASES.get(key)


def effective_points(raw) -> Decimal:
    """Point value of a question, non-positive or unparsable values count as 1."""
    try:
        points = Decimal(str(raw))
    except (InvalidOperation, TypeError, ValueError):
        return Decimal(1)
    if not points.is_finite() or points <= 0:
        return Decimal(1)
    return points


def parse_options(raw) -> Tuple[str, ...]:
    if not raw:
        return ()
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return ()
    if not isinstance(raw, (list, tuple)):
        return ()
    options = (str(option).strip() for option in raw)
    return tuple(option for option in options if option)


@dataclass(frozen=True)
class GradableQuestion:
    """
    A question as the scorer sees it.

    `kind` is the effective kind after coercion: a multiple choice question
    with fewer than two usable options is graded as identification.
    `declared_kind` keeps what the teacher picked so answers can still be
    found in that bucket.
    """

    question_id: str
    kind: QuestionKind
    declared_kind: QuestionKind
    answer_key: str = ""
    points: Decimal = Decimal(1)
    options: Tuple[str, ...] = ()
    key_items: Tuple[str, ...] = field(default=(), compare=False)

    @classmethod
    def build(cls, question_id, question_type, answer_key="", points=None, options=None):
        declared = coerce_question_kind(question_type)
        if declared is None:
            return None

        parsed_options = parse_options(options)
        kind = declared
        if declared is QuestionKind.MULTIPLE_CHOICE and len(parsed_options) < 2:
            kind = QuestionKind.IDENTIFICATION

        answer_key = str(answer_key or "")
        key_items = tuple(parse_enumeration_key(answer_key)) if kind is QuestionKind.ENUMERATION else ()

        return cls(
            question_id=str(question_id),
            kind=kind,
            declared_kind=declared,
            answer_key=answer_key,
            points=effective_points(points),
            options=parsed_options,
            key_items=key_items,
        )

    @classmethod
    def from_question(cls, question):
        gradable = cls.build(
            question_id=question.pk,
            question_type=question.question_type,
            answer_key=question.answer_key,
            points=question.points,
            options=question.options,
        )
        if gradable is None:
            logger.warning(f"Skipping question {question.pk} with unknown type {question.question_type!r}")
        return gradable

    @property
    def has_answer_key(self):
        return bool(self.answer_key.strip())

    @property
    def expected_items(self):
        return len(self.key_items)

    @property
    def per_item_mode(self):
        """
        Enumeration questions whose points equal the number of key items
        award one point per matched item instead of all-or-nothing credit.

        Nothing else selects the mode, so editing the key's item count can
        flip it.
        """
        return (
            self.kind is QuestionKind.ENUMERATION
            and self.expected_items > 0
            and self.points == self.expected_items
        )

    @property
    def is_gradable(self):
        # long answers without a key are ungraded and left out of the max score
        if self.kind is QuestionKind.LONG_ANSWER:
            return self.has_answer_key
        return True

    @property
    def max_points(self) -> Decimal:
        if self.per_item_mode:
            return Decimal(self.expected_items)
        return self.points
