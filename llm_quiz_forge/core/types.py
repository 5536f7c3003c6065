from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class CredentialOrigin(str, Enum):
    SYSTEM = "SYSTEM"
    USER = "USER"


class KeyStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RATE_LIMITED = "RATE_LIMITED"
    ERROR = "ERROR"


class FailureKind(str, Enum):
    THROTTLED = "THROTTLED"
    REQUEST = "REQUEST"
    TRANSPORT = "TRANSPORT"
    ERROR = "ERROR"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    COMPLEX_MULTIPLE_CHOICE = "COMPLEX_MULTIPLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"
    SHORT_ANSWER = "SHORT_ANSWER"
    ESSAY = "ESSAY"


class Difficulty(str, Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class CognitiveLevel(str, Enum):
    C1 = "C1"
    C2 = "C2"
    C3 = "C3"
    C4 = "C4"
    C5 = "C5"
    C6 = "C6"


class ReadingMode(str, Enum):
    NONE = "none"
    PER_QUESTION = "simple"
    GROUPED = "grouped"


FREE_RESPONSE_TYPES = (QuestionType.SHORT_ANSWER, QuestionType.ESSAY)


def mask_credential(value: str, visible: int = 6) -> str:
    """Display form of a secret: only the trailing characters survive."""
    shown = min(visible, len(value) // 3)
    return "..." + value[-shown:] if shown else "..."


@dataclass(frozen=True, repr=False)
class Credential:
    value: str
    origin: CredentialOrigin = CredentialOrigin.SYSTEM

    @property
    def masked(self) -> str:
        return mask_credential(self.value)

    def __repr__(self) -> str:
        return f"Credential({self.masked}, {self.origin.value})"

    __str__ = __repr__


@dataclass
class KeyHealthRecord:
    masked_id: str
    origin: CredentialOrigin
    usage_count: int = 0
    error_count: int = 0
    last_used_at: Union[float, None] = None
    last_error_at: Union[float, None] = None
    status: KeyStatus = KeyStatus.ACTIVE


@dataclass
class CredentialPhase:
    name: str
    credentials: list[Credential] = field(default_factory=list)


@dataclass(frozen=True)
class GenerationRequest:
    subject: str
    topic: str
    question_count: int
    types: tuple[QuestionType, ...] = (QuestionType.MULTIPLE_CHOICE,)
    cognitive_levels: tuple[CognitiveLevel, ...] = (
        CognitiveLevel.C2,
        CognitiveLevel.C3,
        CognitiveLevel.C4,
    )
    difficulty: Difficulty = Difficulty.MEDIUM
    subject_category: str = ""
    level: str = ""
    grade: str = ""
    sub_topic: str = ""
    mc_option_count: int = 5
    image_question_count: int = 0
    language: str = "ID"
    reading_mode: ReadingMode = ReadingMode.NONE
    ref_image: Union[str, None] = None
    material_text: Union[str, None] = None
    fact_check: bool = True
    user_credentials: tuple[str, ...] = ()


@dataclass
class Question:
    id: str
    text: str
    type: QuestionType
    options: list[str] = field(default_factory=list)
    correct_answer: str = ""
    explanation: str = ""
    cognitive_level: str = ""
    difficulty: str = ""
    stimulus: Union[str, None] = None
    image_prompt: Union[str, None] = None
    has_image: bool = False
    image_url: Union[str, None] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "type": self.type.value,
            "options": list(self.options),
            "correctAnswer": self.correct_answer,
            "explanation": self.explanation,
            "cognitiveLevel": self.cognitive_level,
            "difficulty": self.difficulty,
            "stimulus": self.stimulus,
            "imagePrompt": self.image_prompt,
            "hasImage": self.has_image,
            "imageUrl": self.image_url,
        }


@dataclass
class BlueprintEntry:
    question_number: int
    basic_competency: str = ""
    indicator: str = ""
    cognitive_level: str = ""
    difficulty: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "questionNumber": self.question_number,
            "basicCompetency": self.basic_competency,
            "indicator": self.indicator,
            "cognitiveLevel": self.cognitive_level,
            "difficulty": self.difficulty,
        }


@dataclass
class GenerationResult:
    questions: list[Question]
    blueprint: list[BlueprintEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "questions": [q.to_dict() for q in self.questions],
            "blueprint": [b.to_dict() for b in self.blueprint],
        }
