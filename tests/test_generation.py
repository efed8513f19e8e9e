"""Tests for answer generation: catalog, transport choice and prompt assembly."""

from unittest.mock import AsyncMock, patch

import pytest

from answereval.generation import (
    AnswerGenerator,
    Transport,
    build_prompt,
    generate_answer,
    realtime_model_for,
    select_transport,
    text_transport_for,
)
from answereval.models import QuestionInput, RealtimeAnswer


class TestTransport:
    @pytest.mark.parametrize("model, expected", [
        ("openai:gpt-4o-mini", Transport.HTTP),
        ("openai:gpt-realtime-2025-08-28", Transport.REALTIME),
        ("realtime:gpt-realtime", Transport.REALTIME),
        ("realtime:some-future-model", Transport.REALTIME),
        ("anthropic:claude-3-5-haiku-latest", Transport.HTTP),
    ])
    def test_text_transport(self, model, expected):
        assert text_transport_for(model) is expected

    def test_audio_always_realtime(self):
        assert select_transport(QuestionInput.audio("q.wav"), "openai:gpt-4o-mini") is Transport.REALTIME

    def test_text_follows_model(self):
        q = QuestionInput.text("hi")
        assert select_transport(q, "openai:gpt-4o-mini") is Transport.HTTP
        assert select_transport(q, "realtime:gpt-realtime") is Transport.REALTIME

    def test_image_follows_model(self):
        assert select_transport(QuestionInput.image("a.png"), "openai:gpt-4o-mini") is Transport.HTTP

    def test_realtime_model_for(self):
        assert realtime_model_for("realtime:gpt-realtime") == "gpt-realtime"
        assert realtime_model_for("openai:gpt-realtime-2025-08-28") == "gpt-realtime-2025-08-28"
        assert realtime_model_for("openai:gpt-4o-mini", default="gpt-realtime-mini") == "gpt-realtime-mini"


class TestBuildPrompt:
    def test_all_sections(self):
        prompt = build_prompt("You are helpful.", "Capital of France?", "Paris is in France.")
        assert prompt.index("You are helpful.") < prompt.index("--- Context ---")
        assert prompt.index("Paris is in France.") < prompt.index("--- Question ---")
        assert prompt.rstrip().endswith("--- Answer ---")

    def test_blank_context_omitted(self):
        assert "--- Context ---" not in build_prompt("sys", "Q", "   ")


@pytest.mark.asyncio
async def test_generate_answer_passes_sampling_params():
    mock = AsyncMock(return_value="Paris")
    with patch("answereval.generation.generate_text", mock):
        text = await generate_answer("google:gemini", "sys", "Q", "ctx", 0.3, 0.8, 20)
    assert text == "Paris"
    model, prompt = mock.await_args.args
    assert model == "google:gemini"
    assert "--- Question ---\nQ" in prompt
    assert mock.await_args.kwargs == {"temperature": 0.3, "top_p": 0.8, "top_k": 20}


@pytest.mark.asyncio
async def test_generator_realtime_maps_model():
    answer = RealtimeAnswer(answer="Paris", input_type="text")
    mock = AsyncMock(return_value=answer)
    with patch("answereval.generation.generate_answer_realtime", mock):
        result = await AnswerGenerator(files_dir="/data").generate_realtime(
            "realtime:gpt-realtime", "sys", "ctx", question_text="Q",
        )
    assert result is answer
    kwargs = mock.await_args.kwargs
    assert kwargs["model"] == "gpt-realtime"
    assert kwargs["files_dir"] == "/data"
    assert kwargs["question_text"] == "Q"
