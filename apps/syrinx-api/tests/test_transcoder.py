import asyncio
import shutil
from pathlib import Path

import pytest

from fakes import ADTS_HEADER, FakeEngine, TrackedPcm, fake_transcoder, pcm_from, wait_until_stalled
from syrinx_api.errors import SpawnError, SynthesisError, TranscodeError
from syrinx_api.registry import VoiceModel
from syrinx_api.synthesis import synthesize
from syrinx_api.transcoder import SessionState, Transcoder, ffmpeg_command


def test_ffmpeg_command_reads_s16le_stereo_48k_and_writes_adts():
    argv = ffmpeg_command("/usr/bin/ffmpeg")

    assert argv[0] == "/usr/bin/ffmpeg"
    joined = " ".join(argv)
    assert "-f s16le -ar 48000 -ac 2 -i pipe:0" in joined
    assert "-acodec aac -f adts pipe:1" in joined


@pytest.mark.asyncio
async def test_session_relays_every_chunk_in_order():
    transcoder = fake_transcoder()
    chunks = [bytes([i]) * 4096 for i in range(5)]

    session = await transcoder.open(pcm_from(chunks))
    output = b"".join([chunk async for chunk in session])

    assert output.startswith(ADTS_HEADER)
    assert output.replace(ADTS_HEADER, b"") == b"".join(chunks)
    assert session.state is SessionState.CLOSED
    assert session.returncode == 0
    assert transcoder.spawned == 1

    await session.aclose()
    assert not transcoder.active


@pytest.mark.asyncio
async def test_missing_executable_is_a_preflight_spawn_error():
    transcoder = Transcoder("definitely-not-a-transcoder-binary")
    pcm = TrackedPcm()

    with pytest.raises(SpawnError) as exc_info:
        await transcoder.open(pcm)

    assert "definitely-not-a-transcoder-binary" in exc_info.value.message
    assert transcoder.spawned == 0
    assert pcm.closed
    assert pcm.sent == 0


@pytest.mark.asyncio
async def test_nonzero_exit_is_a_transcode_error():
    transcoder = fake_transcoder("--exit", "3")
    session = await transcoder.open(pcm_from([b"\x01" * 4096]))

    with pytest.raises(TranscodeError) as exc_info:
        async for _ in session:
            pass

    assert "status 3" in exc_info.value.message
    assert "fake transcoder failure" in exc_info.value.message
    assert session.state is SessionState.ERRORED
    await session.aclose()
    assert session.state is SessionState.ERRORED


@pytest.mark.asyncio
async def test_synthesis_error_closes_input_and_is_raised_after_draining():
    transcoder = fake_transcoder()
    chunks = [b"\x01" * 4096, b"\x02" * 4096]
    session = await transcoder.open(pcm_from(chunks, error=SynthesisError("engine exploded")))

    received = []
    with pytest.raises(SynthesisError):
        async for chunk in session:
            received.append(chunk)

    assert b"".join(received).replace(ADTS_HEADER, b"") == b"".join(chunks)
    assert session.returncode == 0
    assert session.state is SessionState.ERRORED
    await session.aclose()


@pytest.mark.asyncio
async def test_aclose_terminates_a_running_child_and_stops_input():
    transcoder = fake_transcoder("--hang")
    pcm = TrackedPcm()
    session = await transcoder.open(pcm)
    await asyncio.sleep(0.2)
    assert session.returncode is None

    await session.aclose()

    assert session.returncode is not None
    assert session.state is SessionState.CLOSED
    assert pcm.closed
    assert not transcoder.active


@pytest.mark.asyncio
async def test_child_ignoring_sigterm_is_killed_after_grace_period():
    transcoder = fake_transcoder("--hang", "--ignore-term", grace_period=0.3)
    session = await transcoder.open(TrackedPcm())
    await asyncio.sleep(0.3)

    await session.aclose()

    assert session.returncode is not None


@pytest.mark.asyncio
async def test_context_manager_and_shutdown_close_sessions():
    transcoder = fake_transcoder("--hang")
    async with await transcoder.open(TrackedPcm()) as first:
        assert first.returncode is None
    assert first.returncode is not None

    second = await transcoder.open(TrackedPcm())
    third = await transcoder.open(TrackedPcm())
    assert len(transcoder.active) == 2

    await transcoder.aclose()

    assert second.returncode is not None
    assert third.returncode is not None
    assert transcoder.spawned == 3
    assert not transcoder.active


@pytest.mark.asyncio
async def test_stalled_reader_bounds_buffering_and_pauses_synthesis():
    engine = FakeEngine(endless=True)
    voice = VoiceModel(name="tohoku", path=Path("tohoku.htsvoice"), engine=engine)
    session = await fake_transcoder().open(synthesize(voice, "こんにちは", prefetch=2))

    stalled, produced = await wait_until_stalled(lambda: engine.produced)
    assert stalled
    # pipe and transport buffers hold a few hundred KiB at most
    assert produced * engine.chunk_size < 2 * 1024 * 1024

    output = session.chunks()
    async for _ in output:
        if session.bytes_out > 512 * 1024:
            break
    await output.aclose()
    await asyncio.sleep(0.2)
    assert engine.produced > produced

    await session.aclose()
    assert session.returncode is not None
    assert engine.closed


@pytest.mark.asyncio
async def test_aclose_while_the_engine_is_computing_a_chunk_reaps_the_child():
    engine = FakeEngine(endless=True, delay=0.6)
    voice = VoiceModel(name="tohoku", path=Path("tohoku.htsvoice"), engine=engine)
    transcoder = fake_transcoder()
    session = await transcoder.open(synthesize(voice, "こんにちは"))
    await asyncio.sleep(0.2)

    await session.aclose()

    assert session.returncode is not None
    assert session.state is SessionState.CLOSED
    assert not transcoder.active
    assert engine.closed


@pytest.mark.asyncio
async def test_aclose_survives_a_pcm_stream_that_fails_to_close():
    class StubbornPcm(TrackedPcm):
        async def aclose(self) -> None:
            raise ValueError("generator already executing")

    transcoder = fake_transcoder()
    session = await transcoder.open(StubbornPcm())
    await asyncio.sleep(0.2)

    await session.aclose()

    assert session.returncode is not None
    assert not transcoder.active


@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg not installed")
@pytest.mark.asyncio
async def test_real_ffmpeg_emits_adts_frames():
    engine = FakeEngine(chunks=10, chunk_size=4 * 4800)
    voice = VoiceModel(name="tohoku", path=Path("tohoku.htsvoice"), engine=engine)
    session = await Transcoder("ffmpeg").open(synthesize(voice, "こんにちは"))

    output = b"".join([chunk async for chunk in session])
    await session.aclose()

    assert output[0] == 0xFF and output[1] & 0xF0 == 0xF0
    assert session.returncode == 0
