"""
Question and Answer Variants

Each question type carries its own ``question_data`` shape and accepts its
own ``answer_data`` shape. Both are closed sets of frozen dataclasses keyed
by ``QuestionType``; wire dictionaries are turned into variants by
``parse_question_data`` and ``parse_answer_data``, which reject anything
malformed with a ``ValidationError``.
"""

import enum
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from gradebook.common.errors import ValidationError


class QuestionType(enum.Enum):
    """Question types supported by the engine."""
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    ESSAY = "essay"
    CODE = "code"

    @classmethod
    def parse(cls, value: Union[str, 'QuestionType']) -> 'QuestionType':
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                f"Unknown question type: {value}",
                errors={"question_type": f"must be one of {[t.value for t in cls]}"}
            )

    @property
    def is_auto_gradable(self) -> bool:
        """Whether correctness is decided by exact rule matching."""
        return self in AUTO_GRADED_TYPES


AUTO_GRADED_TYPES = frozenset({QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE})


# --- Question data variants ---

@dataclass(frozen=True)
class ChoiceOption:
    id: str
    text: str
    is_correct: bool = False
    explanation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"id": self.id, "text": self.text, "is_correct": self.is_correct}
        if self.explanation:
            result["explanation"] = self.explanation
        return result


@dataclass(frozen=True)
class MultipleChoiceData:
    """Options for a single-answer multiple choice question."""
    options: Tuple[ChoiceOption, ...]

    question_type = QuestionType.MULTIPLE_CHOICE

    @property
    def correct_option(self) -> ChoiceOption:
        return next(option for option in self.options if option.is_correct)

    def has_option(self, option_id: str) -> bool:
        return any(option.id == option_id for option in self.options)

    def to_dict(self) -> Dict[str, Any]:
        return {"options": [option.to_dict() for option in self.options]}


@dataclass(frozen=True)
class TrueFalseData:
    correct_answer: bool

    question_type = QuestionType.TRUE_FALSE

    def to_dict(self) -> Dict[str, Any]:
        return {"correct_answer": self.correct_answer}


@dataclass(frozen=True)
class ShortAnswerData:
    """Guidance for graders of a short free-text answer."""
    reference_answer: Optional[str] = None
    max_length: Optional[int] = None

    question_type = QuestionType.SHORT_ANSWER

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"reference_answer": self.reference_answer, "max_length": self.max_length})


@dataclass(frozen=True)
class EssayData:
    min_words: Optional[int] = None
    max_words: Optional[int] = None

    question_type = QuestionType.ESSAY

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"min_words": self.min_words, "max_words": self.max_words})


@dataclass(frozen=True)
class CodeData:
    language: str = "python"
    starter_code: Optional[str] = None

    question_type = QuestionType.CODE

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"language": self.language, "starter_code": self.starter_code})


QuestionData = Union[MultipleChoiceData, TrueFalseData, ShortAnswerData, EssayData, CodeData]


# --- Answer data variants ---

@dataclass(frozen=True)
class ChoiceAnswer:
    option_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"option_id": self.option_id}


@dataclass(frozen=True)
class BooleanAnswer:
    value: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value}


@dataclass(frozen=True)
class TextAnswer:
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text}


@dataclass(frozen=True)
class CodeAnswer:
    code: str
    language: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"code": self.code, "language": self.language})


AnswerData = Union[ChoiceAnswer, BooleanAnswer, TextAnswer, CodeAnswer]


def _compact(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _require_mapping(raw: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise ValidationError(f"{what} must be an object", errors={what: "expected an object"})
    return raw


def _optional_positive_int(raw: Mapping[str, Any], key: str) -> Optional[int]:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{key} must be a positive integer", errors={key: value})
    return value


# --- question_data parsers ---

def _parse_multiple_choice(raw: Mapping[str, Any]) -> MultipleChoiceData:
    raw_options = raw.get("options")
    if not isinstance(raw_options, list) or len(raw_options) < 2:
        raise ValidationError(
            "Multiple choice questions need at least two options",
            errors={"options": "expected a list of at least two options"}
        )

    options: List[ChoiceOption] = []
    for index, raw_option in enumerate(raw_options):
        raw_option = _require_mapping(raw_option, f"options[{index}]")
        text = raw_option.get("text")
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Option text is required", errors={f"options[{index}].text": text})
        is_correct = raw_option.get("is_correct", False)
        if not isinstance(is_correct, bool):
            raise ValidationError("is_correct must be a boolean", errors={f"options[{index}].is_correct": is_correct})
        options.append(ChoiceOption(
            id=str(raw_option.get("id") or uuid.uuid4()),
            text=text,
            is_correct=is_correct,
            explanation=raw_option.get("explanation")
        ))

    ids = [option.id for option in options]
    if len(set(ids)) != len(ids):
        raise ValidationError("Option ids must be unique", errors={"options": ids})

    correct = sum(1 for option in options if option.is_correct)
    if correct != 1:
        raise ValidationError(
            "Multiple choice questions need exactly one correct option",
            errors={"options": f"{correct} options flagged correct"}
        )

    return MultipleChoiceData(options=tuple(options))


def _parse_true_false(raw: Mapping[str, Any]) -> TrueFalseData:
    correct_answer = raw.get("correct_answer")
    if not isinstance(correct_answer, bool):
        raise ValidationError(
            "True/false questions need a boolean correct_answer",
            errors={"correct_answer": correct_answer}
        )
    return TrueFalseData(correct_answer=correct_answer)


def _parse_short_answer(raw: Mapping[str, Any]) -> ShortAnswerData:
    reference = raw.get("reference_answer")
    if reference is not None and not isinstance(reference, str):
        raise ValidationError("reference_answer must be a string", errors={"reference_answer": reference})
    return ShortAnswerData(reference_answer=reference, max_length=_optional_positive_int(raw, "max_length"))


def _parse_essay(raw: Mapping[str, Any]) -> EssayData:
    data = EssayData(
        min_words=_optional_positive_int(raw, "min_words"),
        max_words=_optional_positive_int(raw, "max_words")
    )
    if data.min_words and data.max_words and data.min_words > data.max_words:
        raise ValidationError(
            "min_words cannot exceed max_words",
            errors={"min_words": data.min_words, "max_words": data.max_words}
        )
    return data


def _parse_code(raw: Mapping[str, Any]) -> CodeData:
    language = raw.get("language", "python")
    if not isinstance(language, str) or not language:
        raise ValidationError("language must be a non-empty string", errors={"language": language})
    starter = raw.get("starter_code")
    if starter is not None and not isinstance(starter, str):
        raise ValidationError("starter_code must be a string", errors={"starter_code": starter})
    return CodeData(language=language, starter_code=starter)


_QUESTION_PARSERS: Dict[QuestionType, Callable[[Mapping[str, Any]], QuestionData]] = {
    QuestionType.MULTIPLE_CHOICE: _parse_multiple_choice,
    QuestionType.TRUE_FALSE: _parse_true_false,
    QuestionType.SHORT_ANSWER: _parse_short_answer,
    QuestionType.ESSAY: _parse_essay,
    QuestionType.CODE: _parse_code,
}


def parse_question_data(question_type: Union[str, QuestionType], raw: Any) -> QuestionData:
    """
    Build the question data variant for ``question_type`` from a wire dict.

    Raises:
        ValidationError: For unknown types or malformed data
    """
    question_type = QuestionType.parse(question_type)
    if isinstance(raw, QUESTION_DATA_TYPES[question_type]):
        return raw
    return _QUESTION_PARSERS[question_type](_require_mapping(raw or {}, "question_data"))


# --- answer_data parsers ---

def _parse_choice_answer(raw: Mapping[str, Any]) -> ChoiceAnswer:
    option_id = raw.get("option_id")
    if not isinstance(option_id, str) or not option_id:
        raise ValidationError("Multiple choice answers need an option_id", errors={"option_id": option_id})
    return ChoiceAnswer(option_id=option_id)


def _parse_boolean_answer(raw: Mapping[str, Any]) -> BooleanAnswer:
    value = raw.get("value")
    if not isinstance(value, bool):
        raise ValidationError("True/false answers need a boolean value", errors={"value": value})
    return BooleanAnswer(value=value)


def _parse_text_answer(raw: Mapping[str, Any]) -> TextAnswer:
    text = raw.get("text")
    if not isinstance(text, str):
        raise ValidationError("Text answers need a text field", errors={"text": text})
    return TextAnswer(text=text)


def _parse_code_answer(raw: Mapping[str, Any]) -> CodeAnswer:
    code = raw.get("code")
    if not isinstance(code, str):
        raise ValidationError("Code answers need a code field", errors={"code": code})
    language = raw.get("language")
    if language is not None and not isinstance(language, str):
        raise ValidationError("language must be a string", errors={"language": language})
    return CodeAnswer(code=code, language=language)


_ANSWER_PARSERS: Dict[QuestionType, Callable[[Mapping[str, Any]], AnswerData]] = {
    QuestionType.MULTIPLE_CHOICE: _parse_choice_answer,
    QuestionType.TRUE_FALSE: _parse_boolean_answer,
    QuestionType.SHORT_ANSWER: _parse_text_answer,
    QuestionType.ESSAY: _parse_text_answer,
    QuestionType.CODE: _parse_code_answer,
}

QUESTION_DATA_TYPES = {
    QuestionType.MULTIPLE_CHOICE: MultipleChoiceData,
    QuestionType.TRUE_FALSE: TrueFalseData,
    QuestionType.SHORT_ANSWER: ShortAnswerData,
    QuestionType.ESSAY: EssayData,
    QuestionType.CODE: CodeData,
}

ANSWER_DATA_TYPES = {
    QuestionType.MULTIPLE_CHOICE: ChoiceAnswer,
    QuestionType.TRUE_FALSE: BooleanAnswer,
    QuestionType.SHORT_ANSWER: TextAnswer,
    QuestionType.ESSAY: TextAnswer,
    QuestionType.CODE: CodeAnswer,
}


def parse_answer_data(question_type: Union[str, QuestionType], raw: Any) -> AnswerData:
    """
    Build the answer variant a learner submitted for a ``question_type`` question.

    Raises:
        ValidationError: For unknown types or malformed answers
    """
    question_type = QuestionType.parse(question_type)
    if isinstance(raw, ANSWER_DATA_TYPES[question_type]):
        return raw
    return _ANSWER_PARSERS[question_type](_require_mapping(raw, "answer_data"))
