"""YAML suite loader for AnswerEval."""

from __future__ import annotations

import re
from pathlib import Path

import yaml

from answereval.models import ContextDocument, QuestionInput, TestCase, TestSuite

QUESTION_FIELDS = ("question", "audio", "image")


class LoadError(Exception):
    """Raised when a suite file cannot be loaded or is invalid."""


def _slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "suite"


def _load_case(i: int, case_data: object, suite_id: str) -> TestCase:
    if not isinstance(case_data, dict):
        raise LoadError(f"Case {i} must be a mapping")
    if "expected" not in case_data:
        raise LoadError(f"Case {i} missing required field: 'expected'")

    question = QuestionInput.from_fields(
        case_data.get("question"), case_data.get("audio"), case_data.get("image"),
    )
    if question is None:
        raise LoadError(
            f"Case {i} needs one of: {', '.join(repr(f) for f in QUESTION_FIELDS)}"
        )
    return TestCase(
        id=str(case_data.get("id") or f"{suite_id}-case-{i + 1}"),
        question=question,
        expected_answer=str(case_data["expected"]),
    )


def _load_context(i: int, ctx_data: object, suite_id: str) -> ContextDocument:
    if isinstance(ctx_data, str):
        ctx_data = {"text": ctx_data}
    if not isinstance(ctx_data, dict):
        raise LoadError(f"Context {i} must be a mapping or a string")
    text = ctx_data.get("text")
    file_path = ctx_data.get("file")
    if not text and not file_path:
        raise LoadError(f"Context {i} needs 'text' or 'file'")
    return ContextDocument(
        id=str(ctx_data.get("id") or f"{suite_id}-ctx-{i + 1}"),
        name=str(ctx_data.get("name", "")),
        text=text,
        file_path=file_path,
    )


def load_suite(path: str) -> TestSuite:
    """Load a TestSuite from a YAML file.

    Example::

        name: Geography
        contexts:
          - text: "Paris is the capital of France."
          - file: docs/atlas.pdf
        cases:
          - question: What is the capital of France?
            expected: Paris
          - audio: audio/capital.wav
            expected: Paris

    Args:
        path: Path to the YAML file.

    Returns:
        A validated TestSuite. Case and context ids default to ids derived
        from the suite id, so loading the same file twice yields the same ids.

    Raises:
        LoadError: If the file is missing, invalid YAML, or fails validation.
    """
    filepath = Path(path)
    if not filepath.exists():
        raise LoadError(f"Suite file not found: {path}")

    try:
        with open(filepath) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise LoadError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise LoadError(f"Suite file must contain a YAML mapping, got {type(data).__name__}")

    if "name" not in data:
        raise LoadError("Suite missing required field: 'name'")
    if "cases" not in data:
        raise LoadError("Suite missing required field: 'cases'")
    if not isinstance(data["cases"], list) or len(data["cases"]) == 0:
        raise LoadError("Suite 'cases' must be a non-empty list")

    contexts_data = data.get("contexts", [])
    if not isinstance(contexts_data, list):
        raise LoadError("Suite 'contexts' must be a list")

    suite_id = str(data.get("id") or _slugify(str(data["name"])))
    return TestSuite(
        id=suite_id,
        name=str(data["name"]),
        cases=[_load_case(i, c, suite_id) for i, c in enumerate(data["cases"])],
        contexts=[_load_context(i, c, suite_id) for i, c in enumerate(contexts_data)],
    )
