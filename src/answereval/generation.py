"""Answer generation — prompt assembly, model catalog and transport choice."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from answereval.config import DEFAULT_REALTIME_MODEL
from answereval.models import QuestionInput, RealtimeAnswer
from answereval.providers import generate_text
from answereval.realtime import generate_answer_realtime

logger = logging.getLogger(__name__)


class Transport(str, Enum):
    HTTP = "http"
    REALTIME = "realtime"


@dataclass(frozen=True)
class ModelInfo:
    name: str
    text_transport: Transport


# Keys under "realtime:" are not provider:model strings; they only select
# the realtime transport.
MODEL_CATALOG: Dict[str, ModelInfo] = {
    "realtime:gpt-realtime": ModelInfo("OpenAI Realtime (gpt-realtime)", Transport.REALTIME),
    "openai:gpt-realtime-2025-08-28": ModelInfo("GPT Realtime", Transport.REALTIME),
    "openai:gpt-5-mini-2025-08-07": ModelInfo("GPT-5 Mini", Transport.HTTP),
    "openai:gpt-5.2-2025-12-11": ModelInfo("GPT-5.2", Transport.HTTP),
    "openai:gpt-4o-mini": ModelInfo("GPT-4o Mini", Transport.HTTP),
}


def text_transport_for(model: str) -> Transport:
    info = MODEL_CATALOG.get(model)
    if info is not None:
        return info.text_transport
    if model.startswith("realtime:"):
        return Transport.REALTIME
    return Transport.HTTP


def select_transport(question: QuestionInput, model: str) -> Transport:
    """Audio always needs the realtime transport; text follows the model."""
    if question.is_audio:
        return Transport.REALTIME
    return text_transport_for(model)


def realtime_model_for(model: str, default: str = DEFAULT_REALTIME_MODEL) -> str:
    """The realtime model id to connect with when running ``model``."""
    if text_transport_for(model) is Transport.REALTIME:
        return model.split(":", 1)[1]
    return default


def build_prompt(system_prompt: str, question: str, context: str) -> str:
    parts = []
    if system_prompt:
        parts.append(system_prompt)
    if context and context.strip():
        parts.append(f"\n--- Context ---\n{context}")
    parts.append(f"\n--- Question ---\n{question}")
    parts.append("\n--- Answer ---")
    return "\n".join(parts)


async def generate_answer(
    model: str,
    system_prompt: str,
    question: str,
    context: str,
    temperature: float,
    top_p: float,
    top_k: Optional[int] = None,
) -> str:
    """Request/response text generation with a ``provider:model-id`` model."""
    logger.debug(
        "Generating with %s (temperature=%s, top_p=%s, top_k=%s)",
        model, temperature, top_p, top_k,
    )
    text = await generate_text(
        model,
        build_prompt(system_prompt, question, context),
        temperature=temperature,
        top_p=top_p,
        top_k=top_k,
    )
    logger.debug("Generated %d characters", len(text))
    return text


class AnswerGenerator:
    """The two generation paths the orchestrator chooses between.

    Subclass or replace in tests to avoid network calls.
    """

    def __init__(self, files_dir: Optional[str] = None, realtime_default: str = DEFAULT_REALTIME_MODEL) -> None:
        self.files_dir = files_dir
        self.realtime_default = realtime_default

    async def generate(
        self,
        model: str,
        system_prompt: str,
        question: str,
        context: str,
        temperature: float,
        top_p: float,
        top_k: Optional[int] = None,
    ) -> str:
        return await generate_answer(
            model, system_prompt, question, context, temperature, top_p, top_k,
        )

    async def generate_realtime(
        self,
        model: str,
        system_prompt: str,
        context: str,
        question_text: Optional[str] = None,
        question_audio_path: Optional[str] = None,
    ) -> RealtimeAnswer:
        return await generate_answer_realtime(
            system_prompt,
            context,
            question_text=question_text,
            question_audio_path=question_audio_path,
            model=realtime_model_for(model, self.realtime_default),
            files_dir=self.files_dir,
        )
