"""Conversions from engine waveforms to the fixed s16le stereo PCM format."""

from __future__ import annotations

from collections.abc import Iterator

import numpy as np

from .engine import CHANNELS, SAMPLE_RATE, SAMPLE_WIDTH

_INT16_MIN = -32768
_INT16_MAX = 32767


def db_to_gain(volume_db: float) -> float:
    return float(10.0 ** (volume_db / 20.0))


def resample(wave: np.ndarray, src_rate: int, dst_rate: int = SAMPLE_RATE) -> np.ndarray:
    """Linear-interpolation resample of a mono waveform."""
    if src_rate == dst_rate or wave.size == 0:
        return wave
    duration = wave.size / src_rate
    n_out = max(1, int(round(duration * dst_rate)))
    src_t = np.arange(wave.size) / src_rate
    dst_t = np.arange(n_out) / dst_rate
    return np.interp(dst_t, src_t, wave)


def to_pcm(wave: np.ndarray, sample_rate: int, volume_db: float = 0.0) -> bytes:
    """Convert a mono waveform in int16 amplitude units to interleaved s16le stereo bytes."""
    wave = np.asarray(wave, dtype=np.float64)
    wave = resample(wave, sample_rate) * db_to_gain(volume_db)
    samples = np.clip(np.rint(wave), _INT16_MIN, _INT16_MAX).astype("<i2")
    return np.repeat(samples, CHANNELS).tobytes()


def split_frames(pcm: bytes, frames_per_chunk: int) -> Iterator[bytes]:
    """Split PCM into chunks of whole frames, preserving order."""
    step = frames_per_chunk * CHANNELS * SAMPLE_WIDTH
    for start in range(0, len(pcm), step):
        yield pcm[start:start + step]
