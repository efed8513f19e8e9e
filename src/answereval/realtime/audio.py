"""Audio loading for the realtime transport.

The Realtime API takes 16-bit little-endian PCM, 24 kHz, mono. WAV files
(PCM 16-bit only) and raw ``.pcm``/``.raw`` files already in that format are
accepted; WAV input is downmixed and resampled as needed.
"""

from __future__ import annotations

import base64
import logging
import struct
import sys
from array import array
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from answereval.context import resolve_file_path
from answereval.errors import AudioFormatError

logger = logging.getLogger(__name__)

TARGET_SAMPLE_RATE = 24000
BYTES_PER_SAMPLE = 2
CHUNK_SAMPLES = 4096


@dataclass
class AudioData:
    pcm_data: bytes
    sample_rate: int
    channels: int

    @property
    def duration(self) -> float:
        frames = len(self.pcm_data) // (self.channels * BYTES_PER_SAMPLE)
        return frames / self.sample_rate if self.sample_rate else 0.0


@dataclass
class AudioChunk:
    base64: str
    index: int
    is_last: bool


def _samples(pcm: bytes) -> array:
    samples = array("h")
    samples.frombytes(pcm[: len(pcm) - len(pcm) % BYTES_PER_SAMPLE])
    if sys.byteorder == "big":
        samples.byteswap()
    return samples


def _to_bytes(samples: array) -> bytes:
    if sys.byteorder == "big":
        samples = array("h", samples)
        samples.byteswap()
    return samples.tobytes()


def parse_wav(data: bytes) -> AudioData:
    """Extract PCM from a RIFF/WAVE container."""
    if len(data) < 12 or data[0:4] != b"RIFF" or data[8:12] != b"WAVE":
        raise AudioFormatError("Invalid WAV file format")

    channels, sample_rate = 1, TARGET_SAMPLE_RATE
    offset = 12
    while offset + 8 <= len(data):
        chunk_id = data[offset:offset + 4]
        (chunk_size,) = struct.unpack_from("<I", data, offset + 4)
        body = offset + 8
        if chunk_id == b"fmt ":
            audio_format, channels, sample_rate = struct.unpack_from("<HHI", data, body)
            (bits_per_sample,) = struct.unpack_from("<H", data, body + 14)
            if audio_format != 1:
                raise AudioFormatError(
                    f"Unsupported audio format: {audio_format}. Only PCM (1) is supported."
                )
            if bits_per_sample != 16:
                raise AudioFormatError(
                    f"Unsupported bits per sample: {bits_per_sample}. Only 16-bit is supported."
                )
        elif chunk_id == b"data":
            return AudioData(
                pcm_data=bytes(data[body:body + chunk_size]),
                sample_rate=sample_rate,
                channels=channels,
            )
        # chunks are word-aligned
        offset = body + chunk_size + (chunk_size & 1)

    raise AudioFormatError("No data chunk found in WAV file")


def convert_to_mono(audio: AudioData) -> AudioData:
    if audio.channels == 1:
        return audio
    samples = _samples(audio.pcm_data)
    ch = audio.channels
    mono = array("h", (
        round(sum(samples[i:i + ch]) / ch)
        for i in range(0, len(samples) - len(samples) % ch, ch)
    ))
    return AudioData(pcm_data=_to_bytes(mono), sample_rate=audio.sample_rate, channels=1)


def resample(audio: AudioData, target_rate: int = TARGET_SAMPLE_RATE) -> AudioData:
    """Linear-interpolation resample of mono audio."""
    if audio.sample_rate == target_rate:
        return audio
    if audio.channels != 1:
        audio = convert_to_mono(audio)
    source = _samples(audio.pcm_data)
    if not source:
        return AudioData(pcm_data=b"", sample_rate=target_rate, channels=1)

    ratio = target_rate / audio.sample_rate
    target_count = int(len(source) * ratio)
    last = len(source) - 1
    out = array("h", bytes(target_count * BYTES_PER_SAMPLE))
    for i in range(target_count):
        pos = i / ratio
        lo = int(pos)
        hi = min(lo + 1, last)
        frac = pos - lo
        out[i] = round(source[lo] + frac * (source[hi] - source[lo]))
    return AudioData(pcm_data=_to_bytes(out), sample_rate=target_rate, channels=1)


def load_audio_file(audio_path: str, files_dir: Optional[str] = None) -> AudioData:
    """Load ``audio_path`` as 24 kHz mono PCM."""
    full_path = resolve_file_path(audio_path, files_dir)
    ext = Path(audio_path).suffix.lower()
    if ext not in (".wav", ".pcm", ".raw"):
        raise AudioFormatError(f"Unsupported audio format: {ext}. Supported: .wav, .pcm, .raw")
    try:
        data = full_path.read_bytes()
    except OSError as exc:
        raise AudioFormatError(f"Cannot read audio file {full_path}: {exc}") from exc

    if ext == ".wav":
        audio = parse_wav(data)
    else:
        audio = AudioData(pcm_data=data, sample_rate=TARGET_SAMPLE_RATE, channels=1)

    audio = resample(convert_to_mono(audio), TARGET_SAMPLE_RATE)
    logger.debug("Loaded audio %s: %s", audio_path, get_audio_stats(audio))
    return audio


def chunk_audio(audio: AudioData, chunk_samples: int = CHUNK_SAMPLES) -> Iterator[AudioChunk]:
    """Yield base64 chunks of ``chunk_samples`` samples each."""
    step = chunk_samples * BYTES_PER_SAMPLE
    total = len(audio.pcm_data)
    for index, start in enumerate(range(0, total, step)):
        chunk = audio.pcm_data[start:start + step]
        yield AudioChunk(
            base64=base64.b64encode(chunk).decode("ascii"),
            index=index,
            is_last=start + step >= total,
        )


def get_audio_stats(audio: AudioData) -> str:
    step = CHUNK_SAMPLES * BYTES_PER_SAMPLE
    chunks = -(-len(audio.pcm_data) // step)
    return (
        f"{audio.duration:.2f}s, {audio.sample_rate}Hz, {audio.channels}ch, "
        f"{len(audio.pcm_data)} bytes, {chunks} chunks"
    )
