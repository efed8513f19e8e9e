"""Tests for realtime audio loading and chunking."""

from __future__ import annotations

import base64
import struct
from array import array

import pytest

from answereval.errors import AudioFormatError
from answereval.realtime.audio import (
    CHUNK_SAMPLES,
    TARGET_SAMPLE_RATE,
    AudioData,
    chunk_audio,
    convert_to_mono,
    get_audio_stats,
    load_audio_file,
    parse_wav,
    resample,
)


def _pcm(samples) -> bytes:
    return struct.pack(f"<{len(samples)}h", *samples)


def _wav(samples, sample_rate=TARGET_SAMPLE_RATE, channels=1, bits=16, audio_format=1,
         extra_chunk=False) -> bytes:
    data = _pcm(samples)
    block_align = channels * bits // 8
    fmt = struct.pack(
        "<HHIIHH", audio_format, channels, sample_rate,
        sample_rate * block_align, block_align, bits,
    )
    chunks = b"fmt " + struct.pack("<I", len(fmt)) + fmt
    if extra_chunk:
        chunks += b"LIST" + struct.pack("<I", 3) + b"abc\x00"
    chunks += b"data" + struct.pack("<I", len(data)) + data
    return b"RIFF" + struct.pack("<I", 4 + len(chunks)) + b"WAVE" + chunks


def _samples(audio: AudioData) -> list:
    return list(struct.unpack(f"<{len(audio.pcm_data) // 2}h", audio.pcm_data))


class TestParseWav:
    def test_mono(self):
        audio = parse_wav(_wav([1, 2, 3]))
        assert audio.sample_rate == TARGET_SAMPLE_RATE
        assert audio.channels == 1
        assert _samples(audio) == [1, 2, 3]

    def test_skips_unknown_odd_sized_chunk(self):
        audio = parse_wav(_wav([5, 6], extra_chunk=True))
        assert _samples(audio) == [5, 6]

    def test_not_riff(self):
        with pytest.raises(AudioFormatError, match="Invalid WAV"):
            parse_wav(b"OggS" + b"\x00" * 40)

    def test_non_pcm_rejected(self):
        with pytest.raises(AudioFormatError, match="Only PCM"):
            parse_wav(_wav([0], audio_format=3))

    def test_8_bit_rejected(self):
        with pytest.raises(AudioFormatError, match="16-bit"):
            parse_wav(_wav([0], bits=8))

    def test_missing_data_chunk(self):
        wav = _wav([1, 2])
        truncated = wav[: wav.index(b"data")]
        with pytest.raises(AudioFormatError, match="No data chunk"):
            parse_wav(truncated)


def test_convert_to_mono_averages_channels():
    stereo = AudioData(pcm_data=_pcm([100, 200, -50, 50]), sample_rate=16000, channels=2)
    mono = convert_to_mono(stereo)
    assert mono.channels == 1
    assert _samples(mono) == [150, 0]


class TestResample:
    def test_same_rate_untouched(self):
        audio = AudioData(pcm_data=_pcm([1, 2]), sample_rate=TARGET_SAMPLE_RATE, channels=1)
        assert resample(audio) is audio

    def test_upsample_interpolates(self):
        audio = AudioData(pcm_data=_pcm([0, 100, 200]), sample_rate=12000, channels=1)
        out = resample(audio, 24000)
        assert out.sample_rate == 24000
        assert _samples(out) == [0, 50, 100, 150, 200, 200]

    def test_downsample_length(self):
        audio = AudioData(pcm_data=_pcm([0] * 480), sample_rate=48000, channels=1)
        assert len(resample(audio).pcm_data) == 240 * 2

    def test_empty(self):
        out = resample(AudioData(pcm_data=b"", sample_rate=16000, channels=1))
        assert out.pcm_data == b""


class TestLoadAudioFile:
    def test_wav_converted_to_target_format(self, tmp_path):
        (tmp_path / "q.wav").write_bytes(_wav([10, 20, 30, 40], sample_rate=12000, channels=2))
        audio = load_audio_file("q.wav", str(tmp_path))
        assert audio.sample_rate == TARGET_SAMPLE_RATE
        assert audio.channels == 1
        assert _samples(audio) == [15, 25, 35, 35]

    def test_raw_pcm_passthrough(self, tmp_path):
        (tmp_path / "q.pcm").write_bytes(_pcm([7, 8, 9]))
        audio = load_audio_file(str(tmp_path / "q.pcm"))
        assert _samples(audio) == [7, 8, 9]

    def test_unsupported_extension(self, tmp_path):
        with pytest.raises(AudioFormatError, match="Unsupported audio format: .mp3"):
            load_audio_file("q.mp3", str(tmp_path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(AudioFormatError, match="Cannot read audio file"):
            load_audio_file("nope.wav", str(tmp_path))


class TestChunking:
    def test_chunk_sizes_and_last_flag(self):
        samples = CHUNK_SAMPLES * 2 + 10
        audio = AudioData(pcm_data=_pcm([1] * samples), sample_rate=TARGET_SAMPLE_RATE, channels=1)
        chunks = list(chunk_audio(audio))
        assert [c.index for c in chunks] == [0, 1, 2]
        assert [c.is_last for c in chunks] == [False, False, True]
        assert len(base64.b64decode(chunks[0].base64)) == CHUNK_SAMPLES * 2
        assert len(base64.b64decode(chunks[2].base64)) == 20

    def test_reassembles(self):
        pcm = array("h", range(-500, 500)).tobytes()
        audio = AudioData(pcm_data=pcm, sample_rate=TARGET_SAMPLE_RATE, channels=1)
        joined = b"".join(base64.b64decode(c.base64) for c in chunk_audio(audio, 100))
        assert joined == pcm

    def test_stats(self):
        audio = AudioData(pcm_data=_pcm([0] * 24000), sample_rate=24000, channels=1)
        assert get_audio_stats(audio).startswith("1.00s, 24000Hz, 1ch, 48000 bytes, 6 chunks")
