from typing import Callable, Protocol

from .errors import ConversionErrorKind
from .models import ConversionTarget, ConvertedPayload, SourceFile
from .publisher import Artifact

ProgressCallback = Callable[[str], None]


class EngineAdapter(Protocol):
    async def convert(
        self,
        source: SourceFile,
        target: ConversionTarget,
        *,
        progress: ProgressCallback | None = None,
    ) -> ConvertedPayload:
        """Convert the source into the target format.

        Must not mutate the source and must raise a ConversionError subclass on failure.
        """


class TextExtractor(Protocol):
    def extract_text(self, data: bytes, file_name: str) -> str:
        """Return the raw text of a document synchronously.
        This is a blocking call; callers should offload to threads if needed.
        """


class TranscodingEngine(Protocol):
    def write_file(self, name: str, data: bytes) -> None:
        ...

    def read_file(self, name: str) -> bytes:
        ...

    def remove(self, name: str) -> None:
        ...

    async def transcode(self, input_name: str, output_name: str, **codec: object) -> None:
        ...

    def close(self) -> None:
        ...


class OrchestratorListener(Protocol):
    def on_legal_targets(self, targets: tuple[ConversionTarget, ...]) -> None:
        ...

    def on_progress(self, message: str) -> None:
        ...

    def on_artifact_ready(self, artifact: Artifact) -> None:
        ...

    def on_failure(self, kind: ConversionErrorKind, message: str) -> None:
        ...

