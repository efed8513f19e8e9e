"""WebSocket session with the OpenAI Realtime API."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import websockets

from answereval.config import DEFAULT_REALTIME_MODEL
from answereval.errors import RealtimeError
from answereval.realtime.audio import TARGET_SAMPLE_RATE, AudioChunk
from answereval.realtime.token import get_realtime_token

logger = logging.getLogger(__name__)

REALTIME_API_URL = "wss://api.openai.com/v1/realtime"
CONNECTION_TIMEOUT = 30.0
SESSION_TIMEOUT = 10.0
RESPONSE_TIMEOUT = 60.0
TRANSCRIPTION_MODEL = "gpt-4o-mini-transcribe"

_TEXT_DELTA_EVENTS = {
    "response.output_text.delta",
    "response.text.delta",
    "response.audio_transcript.delta",
    "response.output_audio_transcript.delta",
}
_TEXT_DONE_EVENTS = {
    "response.output_text.done",
    "response.text.done",
    "response.audio_transcript.done",
    "response.output_audio_transcript.done",
}


@dataclass
class SessionConfig:
    instructions: str
    context: str = ""
    voice: str = "ballad"

    def full_instructions(self) -> str:
        if self.context:
            return f"{self.instructions}\n\nContext Information:\n{self.context}"
        return self.instructions


@dataclass
class RealtimeResponse:
    text: str
    response_id: str
    input_transcript: Optional[str] = None


def _error_message(event: Dict[str, Any], default: str) -> str:
    error = event.get("error") or {}
    return error.get("message") or default


class RealtimeConnection:
    """One realtime session: configure, ask one question, collect the text answer."""

    def __init__(self, ws: Any, config: SessionConfig) -> None:
        self._ws = ws
        self.config = config
        self.session_configured = False
        self._response_text = ""
        self._input_transcript = ""
        self._response_id: Optional[str] = None

    async def send(self, message: Dict[str, Any]) -> None:
        await self._ws.send(json.dumps(message))

    async def _next_event(self) -> Dict[str, Any]:
        try:
            raw = await self._ws.recv()
        except websockets.ConnectionClosed as exc:
            raise RealtimeError(f"Realtime connection closed: {exc}") from exc
        return json.loads(raw)

    def _session_update(self) -> Dict[str, Any]:
        pcm = {"type": "audio/pcm", "rate": TARGET_SAMPLE_RATE}
        return {
            "type": "session.update",
            "session": {
                "type": "realtime",
                "instructions": self.config.full_instructions(),
                "audio": {
                    "input": {
                        "format": pcm,
                        "transcription": {"model": TRANSCRIPTION_MODEL},
                        "turn_detection": {
                            "type": "server_vad",
                            "threshold": 0.5,
                            "prefix_padding_ms": 300,
                            "silence_duration_ms": 1500,
                        },
                    },
                    "output": {"format": pcm, "voice": self.config.voice},
                },
            },
        }

    async def configure_session(self, timeout: float = SESSION_TIMEOUT) -> None:
        """Push instructions and context; wait for the server to acknowledge."""
        await self.send(self._session_update())

        async def _await_ack() -> None:
            while True:
                event = await self._next_event()
                if event.get("type") in ("session.updated", "session.created"):
                    return
                if event.get("type") == "error":
                    raise RealtimeError(_error_message(event, "Session configuration failed"))

        try:
            await asyncio.wait_for(_await_ack(), timeout)
        except asyncio.TimeoutError:
            raise RealtimeError("Session configuration timeout") from None
        self.session_configured = True
        logger.debug("Realtime session configured")

    def handle_event(self, event: Dict[str, Any]) -> None:
        """Accumulate answer text and input transcript from server events."""
        event_type = event.get("type", "")
        if event_type == "response.created":
            self._response_id = (event.get("response") or {}).get("id")
        elif event_type in _TEXT_DELTA_EVENTS:
            self._response_text += event.get("delta") or ""
        elif event_type in _TEXT_DONE_EVENTS:
            final = event.get("text") or event.get("transcript")
            if final:
                self._response_text = final
        elif event_type == "conversation.item.input_audio_transcription.completed":
            if event.get("transcript"):
                self._input_transcript = event["transcript"]
                logger.debug("Input transcribed: %.50s", self._input_transcript)
        elif event_type == "error":
            logger.error("Realtime error event: %s", _error_message(event, "unknown"))

    async def _collect_response(self, timeout: float) -> RealtimeResponse:
        async def _until_done() -> RealtimeResponse:
            while True:
                event = await self._next_event()
                self.handle_event(event)
                if event.get("type") == "response.done":
                    return RealtimeResponse(
                        text=self._response_text,
                        response_id=self._response_id or "unknown",
                        input_transcript=self._input_transcript or None,
                    )
                if event.get("type") == "error":
                    raise RealtimeError(_error_message(event, "Response error"))

        try:
            return await asyncio.wait_for(_until_done(), timeout)
        except asyncio.TimeoutError:
            raise RealtimeError("Response timeout") from None

    def _reset(self) -> None:
        self._response_text = ""
        self._input_transcript = ""
        self._response_id = None

    async def send_text_message(self, text: str, timeout: float = RESPONSE_TIMEOUT) -> RealtimeResponse:
        if not self.session_configured:
            await self.configure_session()
        self._reset()
        await self.send({
            "type": "conversation.item.create",
            "item": {
                "type": "message",
                "role": "user",
                "content": [{"type": "input_text", "text": text}],
            },
        })
        await self.send({"type": "response.create", "response": {"output_modalities": ["text"]}})
        return await self._collect_response(timeout)

    async def stream_audio(
        self, chunks: Iterable[AudioChunk], timeout: float = RESPONSE_TIMEOUT
    ) -> RealtimeResponse:
        if not self.session_configured:
            await self.configure_session()
        self._reset()
        count = 0
        for chunk in chunks:
            await self.send({"type": "input_audio_buffer.append", "audio": chunk.base64})
            count += 1
        logger.debug("Streamed %d audio chunks", count)
        await self.send({"type": "input_audio_buffer.commit"})
        await self.send({"type": "response.create", "response": {"output_modalities": ["text"]}})
        return await self._collect_response(timeout)

    async def close(self) -> None:
        await self._ws.close()


async def create_realtime_connection(
    config: SessionConfig,
    model: str = DEFAULT_REALTIME_MODEL,
    *,
    timeout: float = CONNECTION_TIMEOUT,
) -> RealtimeConnection:
    """Authenticate with an ephemeral token and open the socket."""
    token = await get_realtime_token(model)
    url = f"{REALTIME_API_URL}?model={model}"
    logger.debug("Connecting to %s", url)
    try:
        ws = await asyncio.wait_for(
            websockets.connect(
                url,
                subprotocols=["realtime", f"openai-insecure-api-key.{token.token}"],
                max_size=None,
            ),
            timeout,
        )
    except asyncio.TimeoutError:
        raise RealtimeError("Connection timeout") from None
    except (OSError, websockets.WebSocketException) as exc:
        raise RealtimeError(f"Connection error: {exc}") from exc
    return RealtimeConnection(ws, config)
