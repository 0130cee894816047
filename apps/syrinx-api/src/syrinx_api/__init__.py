"""Streaming text-to-speech service: Open JTalk voices re-encoded to ADTS AAC on the fly."""

__version__ = "0.1.0"
