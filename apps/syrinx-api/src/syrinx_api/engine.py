"""Synthesis engine interface and per-request prosody."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass

# Output format of every engine, and the transcoder's input format.
SAMPLE_RATE = 48000
CHANNELS = 2
SAMPLE_WIDTH = 2  # signed 16-bit little-endian

SPEED_RANGE = (0.1, 4.0)
PITCH_RANGE = (-48.0, 48.0)  # half-tones
VOLUME_RANGE = (-120.0, 150.0)  # dB


@dataclass(frozen=True)
class Prosody:
    speed: float = 1.0
    pitch: float = 0.0
    volume: float = 0.0


class SynthesisEngine(ABC):
    """Base class for synthesis backends.

    One instance is bound to one voice model file. ``synthesize`` is blocking
    and is driven from a worker thread, one chunk at a time.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def is_loaded(self) -> bool: ...

    @abstractmethod
    def load(self) -> None:
        """Load the voice. Called once at startup; raise if the file is unusable."""
        ...

    @abstractmethod
    def synthesize(self, text: str, prosody: Prosody) -> Iterator[bytes]:
        """Yield raw PCM chunks (s16le, SAMPLE_RATE Hz, CHANNELS channels) in order."""
        ...
