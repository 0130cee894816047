"""Stream relay: transcoder output → HTTP response body, one chunk at a time.

Each chunk is written (and the write awaited) before the next one is read,
so the client's socket speed throttles the transcoder, which throttles
synthesis. After the 200 status line is out no JSON error can be sent; a
failure is logged and re-raised so the server drops the connection, leaving
the client with a truncated stream.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import anyio
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from syrinx_common.logging import get_logger

from .errors import ClientDisconnect, StreamAborted, SynthesisError, TranscodeError
from .transcoder import TranscoderSession

log = get_logger(__name__)

AUDIO_MEDIA_TYPE = "audio/aac"


async def relay(
    session: TranscoderSession,
    write: Callable[[bytes], Awaitable[None]],
    *,
    timeout: float | None = None,
) -> int:
    """Copy every encoded chunk of ``session`` to ``write``; return bytes sent.

    The session is closed on every exit path. A failed write raises
    ClientDisconnect; upstream failures and the stream timeout propagate.
    """
    sent = 0
    try:
        with anyio.fail_after(timeout):
            async for chunk in session:
                try:
                    await write(chunk)
                except OSError as exc:
                    raise ClientDisconnect("Client disconnected") from exc
                sent += len(chunk)
    except ClientDisconnect:
        log.info("client_disconnected", pid=session.pid, bytes_sent=sent)
        raise
    except (TranscodeError, SynthesisError) as exc:
        log.error("stream_aborted", pid=session.pid, bytes_sent=sent, error=exc.message)
        raise
    except TimeoutError:
        log.error("stream_timeout", pid=session.pid, bytes_sent=sent, timeout_seconds=timeout)
        raise
    finally:
        await session.aclose()

    log.info("stream_complete", pid=session.pid, bytes_sent=sent)
    return sent


class AudioStreamResponse(StreamingResponse):
    """Chunked ``audio/aac`` response fed by a transcoder session.

    Headers (including Content-Type) go out once, before the first chunk. A
    client disconnect cancels the relay, which closes the session.
    """

    media_type = AUDIO_MEDIA_TYPE

    def __init__(self, session: TranscoderSession, *, timeout: float | None = None) -> None:
        super().__init__(session, media_type=self.media_type)
        self.session = session
        self.timeout = timeout

    async def stream_response(self, send: Send) -> None:
        async def write(chunk: bytes) -> None:
            await send({"type": "http.response.body", "body": chunk, "more_body": True})

        try:
            await send({"type": "http.response.start", "status": self.status_code, "headers": self.raw_headers})
            await relay(self.session, write, timeout=self.timeout)
        except (ClientDisconnect, OSError):
            return
        finally:
            await self.session.aclose()
        await send({"type": "http.response.body", "body": b"", "more_body": False})

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        error: Exception | None = None
        finished = False

        async with anyio.create_task_group() as tg:

            async def stream() -> None:
                nonlocal error, finished
                try:
                    await self.stream_response(send)
                except Exception as exc:
                    error = exc
                finally:
                    finished = True
                    tg.cancel_scope.cancel()

            tg.start_soon(stream)
            while True:
                message = await receive()
                if message["type"] == "http.disconnect":
                    break
            if not finished:
                log.info("client_disconnected", pid=self.session.pid)
            tg.cancel_scope.cancel()

        if error is not None:
            # past the status line; an exception is the only way to abort the connection
            raise StreamAborted(str(error)) from error
