"""Request/response schemas for the synthesis service."""

from __future__ import annotations

from pydantic import BaseModel, Field

from .engine import PITCH_RANGE, SPEED_RANGE, VOLUME_RANGE, Prosody


class SynthesisRequest(BaseModel):
    voice: str = Field(..., description="Voice name (see GET /models)", examples=["tohoku"])
    text: str = Field(..., description="Text to read aloud, up to SYRINX_MAX_TEXT_LENGTH characters", examples=["こんにちは"])
    speed: float | None = Field(None, ge=SPEED_RANGE[0], le=SPEED_RANGE[1], description="Speech rate, default 1.0")
    pitch: float | None = Field(None, ge=PITCH_RANGE[0], le=PITCH_RANGE[1], description="Pitch shift in half-tones, default 0.0")
    volume: float | None = Field(None, ge=VOLUME_RANGE[0], le=VOLUME_RANGE[1], description="Volume in dB, default 0.0")

    def prosody(self) -> Prosody:
        defaults = Prosody()
        return Prosody(
            speed=defaults.speed if self.speed is None else self.speed,
            pitch=defaults.pitch if self.pitch is None else self.pitch,
            volume=defaults.volume if self.volume is None else self.volume,
        )


class ModelList(BaseModel):
    models: list[str]
