"""Error taxonomy for the synthesis pipeline.

Each error carries the HTTP status used when it is raised before the response
has started. Once audio is streaming the status line is committed, so the same
errors abort the connection as StreamAborted.
"""

from __future__ import annotations


class SyrinxError(Exception):
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SyrinxError):
    """Bad or missing request fields; raised before any resource is acquired."""

    status_code = 400


class NotFoundError(SyrinxError):
    """Unknown voice name."""

    status_code = 400


class SpawnError(SyrinxError):
    """The transcoder executable cannot be located or launched."""

    status_code = 400


class RegistryError(SyrinxError):
    """The model directory cannot be read, or no registry is loaded."""

    status_code = 500


class SynthesisError(SyrinxError):
    """The engine failed while generating audio."""


class TranscodeError(SyrinxError):
    """The transcoder exited nonzero or one of its pipes failed."""


class ClientDisconnect(SyrinxError):
    """The client went away mid-stream. Not a server fault."""

    status_code = 499


class StreamAborted(Exception):
    """Raised out of the ASGI app to drop a connection whose 200 status is already sent.

    Deliberately not a SyrinxError: no JSON handler may catch it.
    """
