"""
Transcoding engine lifecycle.

`EngineHandle` owns the single, lazily created engine instance for the
process. Initialization is single-flight: concurrent first users await the
same task, and a failed initialization is forgotten so the next call retries.
`FFmpegEngine` is the engine itself: an ffmpeg binary plus a private
workspace directory that inputs are written into and outputs read back from.
"""

import asyncio
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Awaitable, Callable

import ffmpeg

from ..config import ENGINE_WORKSPACE_DIR, FFMPEG_BINARY
from .errors import ConversionError, EngineExecutionFailed, EngineInitializationFailed
from .interfaces import TranscodingEngine

logger = logging.getLogger(__name__)

EngineFactory = Callable[[], Awaitable[TranscodingEngine]]


class EngineHandle:
    def __init__(self, factory: EngineFactory) -> None:
        self._factory = factory
        self._engine: TranscodingEngine | None = None
        self._pending: asyncio.Task | None = None
        self.initializations = 0

    @property
    def ready(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> TranscodingEngine | None:
        return self._engine

    async def acquire(self) -> TranscodingEngine:
        if self._engine is not None:
            return self._engine
        loop = asyncio.get_running_loop()
        if self._pending is not None and (self._pending.get_loop() is not loop or self._pending.cancelled()):
            # Left behind by an event loop that no longer runs
            self._pending = None
        if self._pending is None:
            self._pending = loop.create_task(self._initialize())
        return await asyncio.shield(self._pending)

    async def _initialize(self) -> TranscodingEngine:
        self.initializations += 1
        logger.info("initializing transcoding engine (attempt %d)", self.initializations)
        try:
            engine = await self._factory()
        except ConversionError:
            self._pending = None
            raise
        except Exception as e:
            self._pending = None
            raise EngineInitializationFailed(f"engine factory failed: {e}") from e
        self._engine = engine
        self._pending = None
        logger.info("transcoding engine ready")
        return engine

    def shutdown(self) -> None:
        """Dispose the engine at process teardown; never between jobs."""
        engine, self._engine = self._engine, None
        if engine is not None:
            engine.close()


class FFmpegEngine:
    def __init__(self, binary: str, workspace: Path) -> None:
        self.binary = binary
        self.workspace = workspace

    @classmethod
    async def create(cls, binary: str = FFMPEG_BINARY, workspace_root: str | None = ENGINE_WORKSPACE_DIR) -> "FFmpegEngine":
        resolved = shutil.which(binary)
        if resolved is None:
            raise EngineInitializationFailed(f"ffmpeg binary {binary!r} not found on PATH")
        try:
            proc = await asyncio.create_subprocess_exec(
                resolved,
                "-version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout_bytes, stderr_bytes = await proc.communicate()
        except OSError as e:
            raise EngineInitializationFailed(f"could not start {resolved}: {e}") from e
        if proc.returncode != 0:
            stderr_text = stderr_bytes.decode("utf-8", errors="replace").strip()
            raise EngineInitializationFailed(f"{resolved} -version exited with {proc.returncode}: {stderr_text}")
        banner = stdout_bytes.decode("utf-8", errors="replace").splitlines()
        logger.info("using %s", banner[0] if banner else resolved)
        workspace = Path(tempfile.mkdtemp(prefix="file-convert-ffmpeg-", dir=workspace_root))
        return cls(resolved, workspace)

    def _path(self, name: str) -> Path:
        path = (self.workspace / name).resolve()
        if self.workspace.resolve() not in path.parents:
            raise EngineExecutionFailed(f"path {name!r} escapes the engine workspace")
        return path

    def write_file(self, name: str, data: bytes) -> None:
        path = self._path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def read_file(self, name: str) -> bytes:
        path = self._path(name)
        if not path.exists():
            raise EngineExecutionFailed(f"engine produced no output at {name!r}")
        return path.read_bytes()

    def remove(self, name: str) -> None:
        path = self._path(name)
        if path.is_dir():
            shutil.rmtree(path, ignore_errors=True)
        else:
            path.unlink(missing_ok=True)

    async def transcode(self, input_name: str, output_name: str, **codec: object) -> None:
        input_path = self._path(input_name)
        output_path = self._path(output_name)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        stream = ffmpeg.output(ffmpeg.input(str(input_path)), str(output_path), **codec)

        def _run() -> None:
            ffmpeg.run(stream, cmd=self.binary, quiet=True, overwrite_output=True)

        try:
            await asyncio.to_thread(_run)
        except ffmpeg.Error as e:
            stderr_text = (e.stderr or b"").decode("utf-8", errors="replace").strip()
            tail = stderr_text.splitlines()[-1] if stderr_text else "no diagnostics"
            raise EngineExecutionFailed(f"ffmpeg failed on {input_name}: {tail}") from e

    def close(self) -> None:
        shutil.rmtree(self.workspace, ignore_errors=True)


_DEFAULT_HANDLE: EngineHandle | None = None


def default_engine_handle() -> EngineHandle:
    """Process-wide handle shared by every orchestrator."""
    global _DEFAULT_HANDLE
    if _DEFAULT_HANDLE is None:
        _DEFAULT_HANDLE = EngineHandle(FFmpegEngine.create)
    return _DEFAULT_HANDLE
