"""Answer generation over the OpenAI Realtime API.

Audio questions always go through here; text questions do when the run's
model declares the realtime transport.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Optional, Tuple

from answereval.config import DEFAULT_REALTIME_MODEL
from answereval.errors import RealtimeError
from answereval.models import RealtimeAnswer
from answereval.realtime.audio import chunk_audio, get_audio_stats, load_audio_file
from answereval.realtime.token import get_realtime_token
from answereval.realtime.websocket import SessionConfig, create_realtime_connection

logger = logging.getLogger(__name__)


async def generate_answer_realtime(
    prompt: str,
    context: str,
    question_text: Optional[str] = None,
    question_audio_path: Optional[str] = None,
    model: Optional[str] = None,
    files_dir: Optional[str] = None,
) -> RealtimeAnswer:
    """Ask one question (audio preferred over text) and return the text answer."""
    has_audio = bool(question_audio_path and question_audio_path.strip())
    has_text = bool(question_text and question_text.strip())
    if not has_audio and not has_text:
        raise RealtimeError("Either question_text or question_audio_path must be provided")

    model = model or os.environ.get("REALTIME_MODEL") or DEFAULT_REALTIME_MODEL
    start = time.perf_counter()
    connection = await create_realtime_connection(
        SessionConfig(instructions=prompt, context=context), model,
    )
    try:
        await connection.configure_session()
        if has_audio:
            audio = load_audio_file(question_audio_path, files_dir)
            logger.debug("Audio loaded: %s", get_audio_stats(audio))
            response = await connection.stream_audio(chunk_audio(audio))
        else:
            response = await connection.send_text_message(question_text)
    finally:
        await connection.close()

    answer = RealtimeAnswer(
        answer=response.text,
        input_type="audio" if has_audio else "text",
        input_transcript=response.input_transcript if has_audio else None,
        duration_ms=int((time.perf_counter() - start) * 1000),
    )
    logger.info(
        "Realtime answer: %d chars in %dms (%s input)",
        len(answer.answer), answer.duration_ms, answer.input_type,
    )
    return answer


async def check_realtime_availability() -> Tuple[bool, Optional[str]]:
    """Return ``(available, error)`` by requesting a token."""
    if not os.environ.get("OPENAI_API_KEY"):
        return False, "OPENAI_API_KEY not set"
    try:
        await get_realtime_token()
    except Exception as exc:
        return False, str(exc)
    return True, None
