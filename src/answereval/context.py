"""Context loader — flattens a suite's context documents into one string."""

from __future__ import annotations

import base64
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

from answereval.models import ContextDocument

logger = logging.getLogger(__name__)

CONTEXT_DELIMITER = "\n\n---\n\n"
PDF_MAGIC = b"%PDF"


@dataclass
class TextPart:
    content: str
    type: str = "text"


@dataclass
class PdfPart:
    data: str  # base64
    mime_type: str = "application/pdf"
    type: str = "file"


ContextPart = Union[TextPart, PdfPart]


def resolve_file_path(file_path: str, files_dir: Optional[str] = None) -> Path:
    """Resolve a context or audio path.

    Absolute paths are used as-is. Relative paths are tried under
    ``<files_dir>/files``, ``<files_dir>`` and the working directory, in that
    order; when none exists the first candidate is returned so the error
    message names the canonical location.
    """
    path = Path(file_path)
    if path.is_absolute():
        return path

    base = Path(files_dir or os.environ.get("ANSWEREVAL_FILES_DIR") or "public")
    if not base.is_absolute():
        base = Path.cwd() / base
    candidates = [base / "files" / path, base / path, Path.cwd() / path]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return candidates[0]


def is_pdf(file_path: str, data: bytes) -> bool:
    return file_path.lower().endswith(".pdf") or data[:4] == PDF_MAGIC


def _read_file(file_path: str, files_dir: Optional[str]) -> bytes:
    full_path = resolve_file_path(file_path, files_dir)
    if not full_path.exists():
        raise FileNotFoundError(f"File not found: {full_path}")
    return full_path.read_bytes()


def load_file_as_text(file_path: str, files_dir: Optional[str] = None) -> str:
    """Text files as UTF-8; PDFs as a marked base64 block."""
    data = _read_file(file_path, files_dir)
    logger.debug("Read %s (%s)", file_path, format_file_size(len(data)))
    if is_pdf(file_path, data):
        encoded = base64.b64encode(data).decode("ascii")
        return f"[PDF Base64 Content - {len(data)} bytes]\n{encoded}"
    return data.decode("utf-8")


def load_contexts(
    documents: Sequence[ContextDocument],
    files_dir: Optional[str] = None,
) -> str:
    """Join every document's text and file content with ``---`` delimiters.

    A document that fails to load contributes an
    ``[Error loading context <id>]: <message>`` marker instead.
    """
    parts: List[str] = []
    for doc in documents:
        try:
            if doc.text:
                parts.append(f"[Text Context]\n{doc.text}")
                logger.debug("Loaded text context %s", doc.id)
            if doc.file_path:
                content = load_file_as_text(doc.file_path, files_dir)
                parts.append(f"[File: {doc.file_path}]\n{content}")
                logger.debug("Loaded file context %s (%s)", doc.id, doc.file_path)
        except Exception as exc:
            logger.error("Failed to load context %s: %s", doc.id, exc)
            parts.append(f"[Error loading context {doc.id}]: {exc}")
    return CONTEXT_DELIMITER.join(parts)


def load_contexts_as_parts(
    documents: Sequence[ContextDocument],
    files_dir: Optional[str] = None,
) -> List[ContextPart]:
    """Typed parts for multimodal providers; failed documents are skipped."""
    parts: List[ContextPart] = []
    for doc in documents:
        try:
            if doc.text:
                parts.append(TextPart(content=doc.text))
            if doc.file_path:
                data = _read_file(doc.file_path, files_dir)
                if is_pdf(doc.file_path, data):
                    parts.append(PdfPart(data=base64.b64encode(data).decode("ascii")))
                else:
                    parts.append(TextPart(content=data.decode("utf-8")))
        except Exception as exc:
            logger.error("Failed to load context %s: %s", doc.id, exc)
    return parts


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"
