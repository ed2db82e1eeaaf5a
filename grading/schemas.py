from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from grading.exceptions import GradingValidationError


class AnswerItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question_id: Optional[str] = Field(default=None, alias="questionId")
    answer: str = ""

    @field_validator("question_id", mode="before")
    @classmethod
    def stringify_question_id(cls, value):
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("answer", mode="before")
    @classmethod
    def stringify_answer(cls, value):
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            # multi-select answers arrive as lists of picks
            return "\n".join(str(v) for v in value)
        return str(value)


class AnswersBundle(BaseModel):
    """
    Raw answers exactly as a student submitted them, grouped by bucket.

    Long answer questions are answered through the identification bucket.
    """

    multiple_choice: List[AnswerItem] = []
    identification: List[AnswerItem] = []
    enumeration: List[AnswerItem] = []

    def bucket_map(self, bucket) -> Dict[str, str]:
        answers = {}
        for item in getattr(self, bucket):
            if item.question_id:
                answers[item.question_id] = item.answer
        return answers

    def to_storage(self):
        return self.model_dump(by_alias=True)


def parse_answers_bundle(raw) -> AnswersBundle:
    if isinstance(raw, AnswersBundle):
        return raw
    if raw is None:
        return AnswersBundle()
    try:
        return AnswersBundle.model_validate(raw)
    except ValidationError as e:
        raise GradingValidationError(f"Malformed answers bundle: {e.error_count()} error(s)") from e
