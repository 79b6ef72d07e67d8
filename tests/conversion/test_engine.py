from __future__ import annotations

import asyncio
import io
import shutil
import wave

import pytest

from conftest import FakeEngine
from file_convert.conversion.engine import EngineHandle, FFmpegEngine
from file_convert.conversion.errors import EngineExecutionFailed, EngineInitializationFailed


class _Factory:
    def __init__(self, *, failures: int = 0) -> None:
        self.calls = 0
        self.failures = failures
        self.engines: list[FakeEngine] = []

    async def __call__(self) -> FakeEngine:
        self.calls += 1
        await asyncio.sleep(0.01)
        if self.calls <= self.failures:
            raise OSError("wasm runtime missing")
        engine = FakeEngine()
        self.engines.append(engine)
        return engine


@pytest.mark.asyncio
async def test_concurrent_first_use_initializes_once() -> None:
    factory = _Factory()
    handle = EngineHandle(factory)

    engines = await asyncio.gather(*(handle.acquire() for _ in range(5)))

    assert factory.calls == 1
    assert handle.initializations == 1
    assert all(engine is engines[0] for engine in engines)
    assert handle.ready


@pytest.mark.asyncio
async def test_engine_is_reused_after_initialization() -> None:
    factory = _Factory()
    handle = EngineHandle(factory)

    first = await handle.acquire()
    second = await handle.acquire()

    assert first is second
    assert factory.calls == 1


@pytest.mark.asyncio
async def test_failed_initialization_is_shared_and_retryable() -> None:
    factory = _Factory(failures=1)
    handle = EngineHandle(factory)

    results = await asyncio.gather(handle.acquire(), handle.acquire(), return_exceptions=True)

    assert factory.calls == 1
    assert all(isinstance(r, EngineInitializationFailed) for r in results)
    assert not handle.ready

    engine = await handle.acquire()

    assert factory.calls == 2
    assert handle.ready
    assert handle.engine is engine


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_initialization() -> None:
    factory = _Factory()
    handle = EngineHandle(factory)

    waiter = asyncio.ensure_future(handle.acquire())
    await asyncio.sleep(0)
    waiter.cancel()
    engine = await handle.acquire()

    assert factory.calls == 1
    assert handle.engine is engine


def test_engine_survives_across_event_loops() -> None:
    factory = _Factory()
    handle = EngineHandle(factory)

    first = asyncio.run(handle.acquire())
    second = asyncio.run(handle.acquire())

    assert first is second
    assert factory.calls == 1


def test_shutdown_closes_engine() -> None:
    handle = EngineHandle(_Factory())
    engine = asyncio.run(handle.acquire())

    handle.shutdown()

    assert engine.closed
    assert not handle.ready


@pytest.mark.asyncio
async def test_ffmpeg_engine_missing_binary() -> None:
    with pytest.raises(EngineInitializationFailed):
        await FFmpegEngine.create(binary="definitely-not-ffmpeg-binary")


def test_ffmpeg_engine_workspace_confinement(tmp_path) -> None:
    engine = FFmpegEngine("ffmpeg", tmp_path)

    engine.write_file("job/input.wav", b"RIFF")

    assert engine.read_file("job/input.wav") == b"RIFF"
    with pytest.raises(EngineExecutionFailed):
        engine.write_file("../escape.wav", b"")
    with pytest.raises(EngineExecutionFailed):
        engine.read_file("job/missing.ogg")

    engine.remove("job")
    assert not (tmp_path / "job").exists()


@pytest.mark.asyncio
@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg not installed")
async def test_ffmpeg_engine_rejects_malformed_input() -> None:
    engine = await FFmpegEngine.create()
    try:
        engine.write_file("bad/input.mp3", b"not really audio")
        with pytest.raises(EngineExecutionFailed):
            await engine.transcode("bad/input.mp3", "bad/out/input.wav", acodec="pcm_s16le")
    finally:
        engine.close()


def _wav_bytes() -> bytes:
    out = io.BytesIO()
    with wave.open(out, "wb") as w:
        w.setnchannels(1)
        w.setsampwidth(2)
        w.setframerate(8000)
        w.writeframes(b"\x00\x01" * 800)
    return out.getvalue()


@pytest.mark.asyncio
@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg not installed")
async def test_ffmpeg_engine_transcodes_in_workspace() -> None:
    engine = await FFmpegEngine.create()
    try:
        engine.write_file("job/tone.wav", _wav_bytes())
        await engine.transcode("job/tone.wav", "job/out/tone.wav", acodec="pcm_s16le", ar=16000)
        data = engine.read_file("job/out/tone.wav")
    finally:
        engine.close()

    with wave.open(io.BytesIO(data)) as w:
        assert w.getframerate() == 16000
    assert not engine.workspace.exists()
