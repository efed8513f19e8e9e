"""AnswerEval — answer-quality evaluation for LLM test suites."""

__version__ = "0.3.0"
