"""Core data models for AnswerEval."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class QuestionKind(str, Enum):
    TEXT = "text"
    AUDIO = "audio"
    IMAGE = "image"


@dataclass(frozen=True)
class QuestionInput:
    """The single modality a test case asks its question in.

    ``value`` is the question text for TEXT and a file path for AUDIO/IMAGE.
    """
    kind: QuestionKind
    value: str

    @classmethod
    def text(cls, value: str) -> "QuestionInput":
        return cls(QuestionKind.TEXT, value)

    @classmethod
    def audio(cls, path: str) -> "QuestionInput":
        return cls(QuestionKind.AUDIO, path)

    @classmethod
    def image(cls, path: str) -> "QuestionInput":
        return cls(QuestionKind.IMAGE, path)

    @classmethod
    def from_fields(
        cls,
        question_text: Optional[str] = None,
        question_audio_path: Optional[str] = None,
        question_image_path: Optional[str] = None,
    ) -> Optional["QuestionInput"]:
        """Pick the first present modality, in text/audio/image order."""
        if question_text and question_text.strip():
            return cls.text(question_text)
        if question_audio_path and question_audio_path.strip():
            return cls.audio(question_audio_path)
        if question_image_path and question_image_path.strip():
            return cls.image(question_image_path)
        return None

    @property
    def is_audio(self) -> bool:
        return self.kind is QuestionKind.AUDIO

    def describe(self) -> str:
        """Textual stand-in used where scorers need a question string."""
        if self.kind is QuestionKind.AUDIO:
            return f"[Audio: {self.value}]"
        if self.kind is QuestionKind.IMAGE:
            return f"[Image: {self.value}]"
        return self.value

    def as_fields(self) -> Dict[str, Optional[str]]:
        return {
            "question_text": self.value if self.kind is QuestionKind.TEXT else None,
            "question_audio_path": self.value if self.kind is QuestionKind.AUDIO else None,
            "question_image_path": self.value if self.kind is QuestionKind.IMAGE else None,
        }


@dataclass
class TestCase:
    """A single question/expected-answer pair."""
    __test__ = False

    id: str
    question: Optional[QuestionInput]
    expected_answer: str


@dataclass
class ContextDocument:
    """Suite-level reference material: inline text, a file, or both."""
    id: str
    name: str = ""
    text: Optional[str] = None
    file_path: Optional[str] = None


@dataclass
class TestSuite:
    """A named collection of test cases and their context documents."""
    __test__ = False

    id: str
    name: str
    cases: List[TestCase] = field(default_factory=list)
    contexts: List[ContextDocument] = field(default_factory=list)


class RunStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class ResultStatus(str, Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class TestRun:
    """One execution of a suite against one model configuration."""
    __test__ = False

    id: str
    suite_id: str
    llm_model: str
    prompt: str
    temperature: float = 0.7
    top_p: float = 1.0
    top_k: int = 40
    status: RunStatus = RunStatus.PENDING
    created_at: str = ""
    completed_at: Optional[str] = None
    suite: Optional[TestSuite] = None
    results: List["TestRunResult"] = field(default_factory=list)


@dataclass
class TestRunResult:
    """Outcome of one (run, case) pair."""
    __test__ = False

    run_id: str
    case_id: str
    status: ResultStatus
    answer: str
    bleu_score: float = 0.0
    cosine_sim_score: float = 0.0
    llm_score: float = 0.0
    llm_score_reason: str = ""
    fail_reason: Optional[str] = None

    def to_dict(self) -> Dict:
        """Persisted record shape."""
        data = {
            "runId": self.run_id,
            "caseId": self.case_id,
            "status": self.status.value,
            "answer": self.answer,
            "bleuScore": self.bleu_score,
            "cosineSimScore": self.cosine_sim_score,
            "llmScore": self.llm_score,
            "llmScoreReason": self.llm_score_reason,
        }
        if self.fail_reason is not None:
            data["failReason"] = self.fail_reason
        return data


@dataclass
class ScoreResult:
    """The three metric scores for one generated answer."""
    bleu: float
    cosine: float
    llm_score: float
    llm_reason: str


@dataclass
class JudgeResult:
    score: float
    reason: str


@dataclass(frozen=True)
class ModelConfig:
    provider: str
    model_id: str


@dataclass
class RealtimeAnswer:
    """Answer produced over the realtime transport."""
    answer: str
    input_type: str
    input_transcript: Optional[str] = None
    duration_ms: int = 0
