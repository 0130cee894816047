"""Open JTalk backend driving one HTS voice file through pyopenjtalk.

The text frontend uses pyopenjtalk's bundled naist-jdic dictionary
(``OPEN_JTALK_DICT_DIR`` points it elsewhere). Audio is produced sentence by
sentence so the first chunk is ready long before a long text is finished.
"""

from __future__ import annotations

import re
import threading
import time
from collections.abc import Iterator
from pathlib import Path

from syrinx_common.logging import get_logger

from ..engine import SAMPLE_RATE, Prosody, SynthesisEngine
from ..pcm import split_frames, to_pcm

log = get_logger(__name__)

DICTIONARY = "naist-jdic"

# Split after sentence terminators and on line breaks
_SENTENCE_RE = re.compile(r"(?<=[。．！？!?])\s*|\n+")


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_RE.split(text) if s and s.strip()]


class OpenJTalkEngine(SynthesisEngine):
    """HTS voice synthesis with raw PCM output."""

    def __init__(self, model_path: str | Path, frames_per_chunk: int = SAMPLE_RATE // 10) -> None:
        self._model_path = Path(model_path)
        self._frames_per_chunk = frames_per_chunk
        self._hts = None
        # HTS_Engine keeps per-utterance state; one synthesis at a time per voice
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "openjtalk"

    @property
    def is_loaded(self) -> bool:
        return self._hts is not None

    def load(self) -> None:
        from pyopenjtalk.htsengine import HTSEngine

        start = time.monotonic()
        self._hts = HTSEngine(str(self._model_path).encode())
        log.info(
            "voice_loaded",
            model=self._model_path.name,
            dictionary=DICTIONARY,
            sample_rate=self._hts.get_sampling_frequency(),
            elapsed_seconds=round(time.monotonic() - start, 3),
        )

    def synthesize(self, text: str, prosody: Prosody) -> Iterator[bytes]:
        if self._hts is None:
            raise RuntimeError("Voice not loaded. Call load() first.")

        import pyopenjtalk

        for sentence in split_sentences(text):
            labels = pyopenjtalk.extract_fullcontext(sentence)
            if not labels:
                continue
            with self._lock:
                self._hts.set_speed(prosody.speed)
                self._hts.add_half_tone(prosody.pitch)
                wave = self._hts.synthesize(labels)
                rate = self._hts.get_sampling_frequency()
            yield from split_frames(to_pcm(wave, rate, prosody.volume), self._frames_per_chunk)
