"""Synthesis invoker: validated request in, lazy stream of PCM chunks out.

The engine is a blocking iterator. A producer task pulls it one chunk at a
time on a worker thread and hands chunks over through a bounded queue, so a
slow consumer pauses the engine instead of piling audio up in memory.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Iterator
from contextlib import suppress

import anyio

from syrinx_common.logging import get_logger

from .engine import PITCH_RANGE, SPEED_RANGE, VOLUME_RANGE, Prosody
from .errors import SynthesisError, ValidationError
from .registry import VoiceModel

log = get_logger(__name__)

MAX_TEXT_LENGTH = 1000

_END = object()


def validate(text: str, prosody: Prosody, max_text_length: int = MAX_TEXT_LENGTH) -> None:
    if not text or not text.strip():
        raise ValidationError("Text cannot be empty")
    if len(text) > max_text_length:
        raise ValidationError(f"Text too long. Maximum: {max_text_length} chars")

    for field, value, (low, high) in (
        ("speed", prosody.speed, SPEED_RANGE),
        ("pitch", prosody.pitch, PITCH_RANGE),
        ("volume", prosody.volume, VOLUME_RANGE),
    ):
        if math.isnan(value) or not low <= value <= high:
            raise ValidationError(f"{field} must be between {low:g} and {high:g}, got {value:g}")


class PcmStream:
    """Async iterator over the PCM chunks of one utterance.

    Iteration ends when the engine is done; an engine failure surfaces as
    SynthesisError at the position where it happened. ``produced`` counts the
    chunks taken from the engine so far.
    """

    def __init__(self, chunks: Iterator[bytes], prefetch: int = 4, voice: str = "") -> None:
        self._chunks = chunks
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, prefetch))
        self._producer: asyncio.Task | None = None
        self._pending: asyncio.Future | None = None
        self._done = False
        self._closed = False
        self.voice = voice
        self.produced = 0

    def __aiter__(self) -> PcmStream:
        return self

    async def __anext__(self) -> bytes:
        if self._done or self._closed:
            raise StopAsyncIteration
        if self._producer is None:
            self._producer = asyncio.create_task(self._produce())

        item = await self._queue.get()
        if item is _END:
            self._done = True
            raise StopAsyncIteration
        if isinstance(item, SynthesisError):
            self._done = True
            raise item
        return item

    async def _next_chunk(self) -> object:
        # The worker thread cannot be interrupted; keep a handle on it so
        # aclose() can wait for it before touching the iterator.
        self._pending = asyncio.ensure_future(anyio.to_thread.run_sync(next, self._chunks, _END))
        return await asyncio.shield(self._pending)

    async def _produce(self) -> None:
        try:
            while not self._closed:
                chunk = await self._next_chunk()
                if chunk is _END:
                    break
                if not chunk:
                    continue
                self.produced += 1
                await self._queue.put(bytes(chunk))
        except Exception as exc:
            log.error("synthesis_failed", voice=self.voice, chunks=self.produced, error=str(exc))
            await self._queue.put(SynthesisError(f"Synthesis failed for voice '{self.voice}': {exc}"))
            return
        log.debug("synthesis_complete", voice=self.voice, chunks=self.produced)
        await self._queue.put(_END)

    async def aclose(self) -> None:
        """Stop the producer and close the engine iterator. Safe to call twice.

        A chunk already being computed on the worker thread is allowed to
        finish first; a generator cannot be closed while it is running.
        """
        if self._closed:
            return
        self._closed = True
        if self._producer is not None and not self._producer.done():
            self._producer.cancel()
            with suppress(asyncio.CancelledError):
                await self._producer

        pending = self._pending
        if pending is not None:
            try:
                await pending
            except Exception as exc:
                log.debug("synthesis_abandoned", voice=self.voice, chunks=self.produced, error=str(exc))

        close = getattr(self._chunks, "close", None)
        if close is not None:
            await anyio.to_thread.run_sync(close)


def synthesize(
    voice: VoiceModel,
    text: str,
    prosody: Prosody | None = None,
    *,
    max_text_length: int = MAX_TEXT_LENGTH,
    prefetch: int = 4,
) -> PcmStream:
    """Validate, then return a lazy PCM stream for ``text`` spoken by ``voice``.

    Raises ValidationError before the engine is touched.
    """
    prosody = prosody or Prosody()
    validate(text, prosody, max_text_length)

    try:
        chunks = iter(voice.engine.synthesize(text, prosody))
    except Exception as exc:
        raise SynthesisError(f"Synthesis failed for voice '{voice.name}': {exc}") from exc

    log.info(
        "synthesis_requested",
        voice=voice.name,
        text_length=len(text),
        speed=prosody.speed,
        pitch=prosody.pitch,
        volume=prosody.volume,
    )
    return PcmStream(chunks, prefetch=prefetch, voice=voice.name)
