"""Transcoder process manager: one ffmpeg child per request, PCM in, ADTS AAC out.

A session owns the child and its pipes for exactly one request. A forwarder
task copies PCM into stdin (awaiting ``drain()`` so a full pipe pauses the
producer) and always closes stdin when the PCM stream ends. Iterating the
session yields stdout as it arrives. ``aclose()`` tears everything down and is
the single cleanup path for success, failure and cancellation alike.
"""

from __future__ import annotations

import asyncio
import enum
import shutil
from collections import deque
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import suppress

import anyio

from syrinx_common.logging import get_logger

from .engine import CHANNELS, SAMPLE_RATE
from .errors import SpawnError, SyrinxError, TranscodeError

log = get_logger(__name__)

CommandBuilder = Callable[[str], Sequence[str]]


def ffmpeg_command(executable: str) -> list[str]:
    """Raw s16le PCM on stdin → ADTS-framed AAC on stdout."""
    return [
        executable,
        "-hide_banner",
        "-loglevel", "error",
        "-f", "s16le",
        "-ar", str(SAMPLE_RATE),
        "-ac", str(CHANNELS),
        "-i", "pipe:0",
        "-acodec", "aac",
        "-f", "adts",
        "pipe:1",
    ]


class SessionState(str, enum.Enum):
    STARTING = "starting"
    RUNNING = "running"
    DRAINING = "draining"
    CLOSED = "closed"
    ERRORED = "errored"


async def _aclose_stream(stream: object) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


async def _cancel(task: asyncio.Task | None) -> None:
    """Cancel ``task`` and wait for it; an exception it already died with is re-raised."""
    if task is None:
        return
    task.cancel()
    with suppress(asyncio.CancelledError):
        await task


class TranscoderSession:
    """One transcoder process bound to one request. Never reused."""

    def __init__(
        self,
        argv: Sequence[str],
        pcm: AsyncIterator[bytes],
        *,
        read_size: int = 4096,
        grace_period: float = 2.0,
        on_close: Callable[[TranscoderSession], None] | None = None,
    ) -> None:
        self.argv = list(argv)
        self.state = SessionState.STARTING
        self.bytes_in = 0
        self.bytes_out = 0
        self._pcm = pcm
        self._read_size = read_size
        self._grace_period = grace_period
        self._on_close = on_close
        self._process: asyncio.subprocess.Process | None = None
        self._forwarder: asyncio.Task | None = None
        self._stderr_reader: asyncio.Task | None = None
        self._stderr_tail: deque[str] = deque(maxlen=20)
        self._input_error: SyrinxError | None = None
        self._closed = False

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process else None

    async def start(self) -> None:
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            self.state = SessionState.ERRORED
            raise SpawnError(f"Failed to launch transcoder '{self.argv[0]}': {exc}") from exc

        self.state = SessionState.RUNNING
        self._forwarder = asyncio.create_task(self._forward_input())
        self._stderr_reader = asyncio.create_task(self._read_stderr())
        log.info("transcoder_started", pid=self.pid)

    async def _forward_input(self) -> None:
        stdin = self._process.stdin
        try:
            async for chunk in self._pcm:
                stdin.write(chunk)
                await stdin.drain()
                self.bytes_in += len(chunk)
        except SyrinxError as exc:
            self._input_error = exc
        except ConnectionError:
            # The child closed its end; the output side reports why.
            log.debug("transcoder_stdin_closed", pid=self.pid, bytes_in=self.bytes_in)
        finally:
            stdin.close()
            if self.state is SessionState.RUNNING:
                self.state = SessionState.DRAINING
            await _aclose_stream(self._pcm)

    async def _read_stderr(self) -> None:
        try:
            async for line in self._process.stderr:
                text = line.decode("utf-8", errors="replace").rstrip()
                if text:
                    self._stderr_tail.append(text)
                    log.debug("transcoder_stderr", pid=self.pid, line=text)
        except (ValueError, ConnectionError) as exc:
            log.warning("transcoder_stderr_unreadable", pid=self.pid, error=str(exc))

    def _fail(self, message: str) -> TranscodeError:
        self.state = SessionState.ERRORED
        if self._stderr_tail:
            message = f"{message}: {self._stderr_tail[-1]}"
        return TranscodeError(message)

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.chunks()

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield encoded chunks in output order until the transcoder finishes.

        Raises TranscodeError on a nonzero exit or a broken pipe, and re-raises
        a synthesis failure once the audio encoded before it has been yielded.
        """
        if self._process is None:
            raise RuntimeError("Session not started")

        stdout = self._process.stdout
        while True:
            try:
                data = await stdout.read(self._read_size)
            except OSError as exc:
                raise self._fail(f"Failed to read transcoder output ({exc})") from exc
            if not data:
                break
            self.bytes_out += len(data)
            yield data

        returncode = await self._process.wait()
        if returncode != 0:
            if self._stderr_reader is not None:
                await asyncio.wait({self._stderr_reader}, timeout=1.0)
            raise self._fail(f"Transcoder exited with status {returncode}")

        if self._forwarder is not None:
            await self._forwarder
        if self._input_error is not None:
            self.state = SessionState.ERRORED
            raise self._input_error

        self.state = SessionState.CLOSED
        log.info("transcoder_finished", pid=self.pid, bytes_in=self.bytes_in, bytes_out=self.bytes_out)

    async def aclose(self) -> None:
        """Stop forwarding, terminate the child and release its pipes. Idempotent."""
        if self._closed:
            return
        self._closed = True

        with anyio.CancelScope(shield=True):
            try:
                await self._stop_input()
            finally:
                try:
                    await self._reap()
                finally:
                    if self.state not in (SessionState.CLOSED, SessionState.ERRORED):
                        self.state = SessionState.CLOSED
                    if self._on_close is not None:
                        self._on_close(self)

    async def _stop_input(self) -> None:
        # Input-side failures must not keep the child alive; they are logged here.
        for task in (self._forwarder, self._stderr_reader):
            try:
                await _cancel(task)
            except Exception as exc:
                log.warning("transcoder_task_failed", pid=self.pid, error=repr(exc))
        if self._forwarder is None:
            try:
                await _aclose_stream(self._pcm)
            except Exception as exc:
                log.warning("pcm_close_failed", pid=self.pid, error=repr(exc))

    async def _reap(self) -> None:
        process = self._process
        if process is None:
            return
        if process.returncode is None:
            log.info("transcoder_terminating", pid=process.pid, state=self.state.value)
            with suppress(ProcessLookupError):
                process.terminate()
        try:
            await asyncio.wait_for(process.communicate(), self._grace_period)
        except asyncio.TimeoutError:
            log.warning("transcoder_kill", pid=process.pid)
            with suppress(ProcessLookupError):
                process.kill()
            await process.communicate()

    async def __aenter__(self) -> TranscoderSession:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


class Transcoder:
    """Spawns and tracks transcoder sessions.

    ``spawned`` counts processes launched; ``active`` holds sessions not yet
    closed so they can be torn down at shutdown.
    """

    def __init__(
        self,
        executable: str = "ffmpeg",
        build_command: CommandBuilder = ffmpeg_command,
        *,
        read_size: int = 4096,
        grace_period: float = 2.0,
    ) -> None:
        self.executable = executable
        self.build_command = build_command
        self.read_size = read_size
        self.grace_period = grace_period
        self.spawned = 0
        self._active: set[TranscoderSession] = set()

    @property
    def active(self) -> frozenset[TranscoderSession]:
        return frozenset(self._active)

    def resolve_executable(self) -> str:
        """Pre-flight check: the executable must resolve before anything is spawned."""
        path = shutil.which(self.executable)
        if path is None:
            raise SpawnError(f"Failed to locate transcoder executable '{self.executable}'")
        return path

    async def open(self, pcm: AsyncIterator[bytes]) -> TranscoderSession:
        """Spawn a session fed by ``pcm``. On SpawnError ``pcm`` is closed."""
        try:
            argv = self.build_command(self.resolve_executable())
            session = TranscoderSession(
                argv,
                pcm,
                read_size=self.read_size,
                grace_period=self.grace_period,
                on_close=self._active.discard,
            )
            await session.start()
        except SpawnError as exc:
            log.error("transcoder_spawn_failed", executable=self.executable, error=exc.message)
            await _aclose_stream(pcm)
            raise

        self.spawned += 1
        self._active.add(session)
        return session

    async def aclose(self) -> None:
        """Close every active session, e.g. at server shutdown."""
        for session in list(self._active):
            await session.aclose()
