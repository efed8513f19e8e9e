"""Exception hierarchy for AnswerEval."""

from __future__ import annotations


class AnswerEvalError(Exception):
    """Base class for all AnswerEval errors."""


class ConfigurationError(AnswerEvalError):
    """Missing credentials, malformed model identifier or unsupported provider."""


class GenerationError(AnswerEvalError):
    """The answer-generation provider call failed."""


class EmbeddingError(AnswerEvalError):
    """The embedding provider call failed."""


class RealtimeError(AnswerEvalError):
    """The realtime transport failed to connect, configure or respond."""


class AudioFormatError(RealtimeError):
    """An audio question file could not be decoded."""


class RunNotFoundError(AnswerEvalError):
    """A test run could not be loaded."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"TestRun not found: {run_id}")
        self.run_id = run_id
