from __future__ import annotations

import asyncio
import io
from pathlib import Path

import pytest
from PIL import Image

from file_convert.conversion.errors import EngineExecutionFailed
from file_convert.conversion.models import ConversionTarget, ConvertedPayload, SourceFile


def make_image(fmt: str = "PNG", size: tuple[int, int] = (37, 21), mode: str = "RGB") -> bytes:
    color = (200, 40, 90, 128) if mode == "RGBA" else (200, 40, 90)
    image = Image.new(mode, size, color[: len(mode)])
    out = io.BytesIO()
    image.save(out, format=fmt)
    return out.getvalue()


class RecordingListener:
    def __init__(self) -> None:
        self.targets: list[tuple[ConversionTarget, ...]] = []
        self.progress: list[str] = []
        self.artifacts: list = []
        self.failures: list[tuple] = []

    def on_legal_targets(self, targets):
        self.targets.append(targets)

    def on_progress(self, message):
        self.progress.append(message)

    def on_artifact_ready(self, artifact):
        self.artifacts.append(artifact)

    def on_failure(self, kind, message):
        self.failures.append((kind, message))


class FakeAdapter:
    """Adapter double that records calls and returns fixed bytes."""

    def __init__(self, *, error: BaseException | None = None, gate: asyncio.Event | None = None) -> None:
        self.calls: list[tuple[SourceFile, ConversionTarget]] = []
        self.error = error
        self.gate = gate

    async def convert(self, source, target, *, progress=None):
        self.calls.append((source, target))
        if progress is not None:
            progress("Working...")
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return ConvertedPayload.for_target(b"converted:" + source.data, source, target)


class FakeEngine:
    """In-memory stand-in for the ffmpeg engine workspace."""

    def __init__(self, *, fail_transcode: bool = False) -> None:
        self.files: dict[str, bytes] = {}
        self.transcodes: list[tuple[str, str, dict]] = []
        self.fail_transcode = fail_transcode
        self.closed = False

    def write_file(self, name: str, data: bytes) -> None:
        self.files[name] = data

    def read_file(self, name: str) -> bytes:
        if name not in self.files:
            raise EngineExecutionFailed(f"no output at {name}")
        return self.files[name]

    def remove(self, name: str) -> None:
        for key in [k for k in self.files if k == name or k.startswith(name + "/")]:
            del self.files[key]

    async def transcode(self, input_name: str, output_name: str, **codec) -> None:
        await asyncio.sleep(0)
        self.transcodes.append((input_name, output_name, codec))
        if self.fail_transcode:
            raise EngineExecutionFailed("ffmpeg failed: Invalid data found when processing input")
        ext = Path(output_name).suffix.encode()
        self.files[output_name] = b"AUDIO" + ext + self.files[input_name]

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()
