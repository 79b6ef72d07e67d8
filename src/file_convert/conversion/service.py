import logging
from dataclasses import dataclass, field
from typing import Callable, Mapping

from .classifier import classify
from .errors import (
    ConversionError,
    ConversionErrorKind,
    ConversionInProgressError,
    IllegalTargetSelected,
    UnknownConversionError,
    UnsupportedFormat,
    classify_error,
)
from .interfaces import EngineAdapter, OrchestratorListener
from .models import Classification, ConversionTarget, FormatFamily, SourceFile
from .publisher import Artifact, ArtifactPublisher

logger = logging.getLogger(__name__)


class JobState:
    IDLE = "idle"
    FILE_LOADED = "file_loaded"
    TARGET_CHOSEN = "target_chosen"
    CONVERTING = "converting"
    READY = "ready"
    FAILED = "failed"


@dataclass
class ConversionJob:
    source: SourceFile
    classification: Classification
    state: str = JobState.FILE_LOADED
    target: ConversionTarget | None = None
    artifact: Artifact | None = None
    error: ConversionError | None = None
    progress_messages: list[str] = field(default_factory=list)

    @property
    def family(self) -> FormatFamily:
        return self.classification.family


class NullListener:
    def on_legal_targets(self, targets: tuple[ConversionTarget, ...]) -> None:
        pass

    def on_progress(self, message: str) -> None:
        pass

    def on_artifact_ready(self, artifact: Artifact) -> None:
        pass

    def on_failure(self, kind: ConversionErrorKind, message: str) -> None:
        pass


class ConversionOrchestrator:
    """Owns the single active conversion job and drives it through its states.

    idle -> file_loaded -> target_chosen -> converting -> ready | failed

    Front-ends call `select_file`, `select_target` and `reset`; results are
    reported through the listener. At most one conversion runs at a time and
    a ready artifact is released exactly once, when the job is replaced or
    the session ends.
    """

    def __init__(
        self,
        adapters: Mapping[FormatFamily, EngineAdapter],
        publisher: ArtifactPublisher,
        *,
        classifier: Callable[[SourceFile], Classification] = classify,
        listener: OrchestratorListener | None = None,
    ) -> None:
        self._adapters = dict(adapters)
        self._publisher = publisher
        self._classifier = classifier
        self._listener: OrchestratorListener = listener or NullListener()
        self._job: ConversionJob | None = None
        self._last_error: ConversionError | None = None

    @property
    def state(self) -> str:
        return self._job.state if self._job is not None else JobState.IDLE

    @property
    def job(self) -> ConversionJob | None:
        return self._job

    @property
    def legal_targets(self) -> tuple[ConversionTarget, ...]:
        return self._job.classification.legal_targets if self._job is not None else ()

    @property
    def artifact(self) -> Artifact | None:
        return self._job.artifact if self._job is not None else None

    @property
    def last_error(self) -> ConversionError | None:
        return self._last_error

    @property
    def publisher(self) -> ArtifactPublisher:
        return self._publisher

    def set_listener(self, listener: OrchestratorListener | None) -> None:
        self._listener = listener or NullListener()

    def select_file(self, source: SourceFile) -> tuple[ConversionTarget, ...]:
        self._ensure_not_converting("select a new file")
        self._discard_job()

        classification = self._classifier(source)
        targets = classification.legal_targets
        self._listener.on_legal_targets(targets)
        if not classification.supported:
            error = UnsupportedFormat(f"no conversions for {source.safe_name!r} (declared {source.media_type!r})")
            self._last_error = error
            self._listener.on_failure(error.kind, error.user_message)
            # Failure surfaced; nothing to keep
            logger.debug("state: idle -> failed(unsupported) -> idle")
            return ()

        self._job = ConversionJob(source=source, classification=classification)
        logger.debug("state: idle -> file_loaded (%s, %s)", source.safe_name, classification.family.value)
        return targets

    async def select_target(self, target: ConversionTarget | str) -> Artifact:
        self._ensure_not_converting("select a target")
        job = self._job
        if job is None or job.state not in (JobState.FILE_LOADED, JobState.READY, JobState.FAILED):
            raise IllegalTargetSelected("no file is loaded")
        chosen = ConversionTarget.parse(target)
        if chosen not in job.classification.legal_targets:
            raise IllegalTargetSelected(f"{chosen.label} is not a legal target for {job.source.safe_name!r}")

        self._release_artifact(job)
        adapter = self._adapters.get(job.family)
        if adapter is None:
            raise IllegalTargetSelected(f"no adapter registered for {job.family.value}")

        job.target = chosen
        job.error = None
        job.progress_messages.clear()
        job.state = JobState.TARGET_CHOSEN
        self._last_error = None
        job.state = JobState.CONVERTING
        logger.info("converting %s to %s", job.source.safe_name, chosen.label)
        self._progress(job, "Converting, please wait...")

        try:
            payload = await adapter.convert(job.source, chosen, progress=lambda m: self._progress(job, m))
            artifact = self._publisher.publish(payload.data, payload.mime_type, payload.file_name)
        except Exception as e:
            error = classify_error(e)
            if error is not e:
                logger.exception("unclassified adapter error for %s", job.source.safe_name)
            else:
                logger.error("conversion of %s failed: %s", job.source.safe_name, error.message)
            job.error = error
            job.state = JobState.FAILED
            self._last_error = error
            self._listener.on_failure(error.kind, error.user_message)
            if error is e:
                raise
            raise error from e
        except BaseException:
            # Cancelled or interrupted; the job must not stay converting
            logger.warning("conversion of %s interrupted", job.source.safe_name)
            job.error = UnknownConversionError("conversion interrupted")
            job.state = JobState.FAILED
            self._last_error = job.error
            raise

        if self._job is not job:
            # Session closed mid-conversion; nobody will download this
            self._publisher.release(artifact)
            return artifact
        job.artifact = artifact
        job.state = JobState.READY
        logger.info("converted %s -> %s (%d bytes)", job.source.safe_name, artifact.file_name, artifact.size)
        self._listener.on_artifact_ready(artifact)
        return artifact

    def reset(self) -> None:
        self._ensure_not_converting("reset")
        self._discard_job()
        self._last_error = None

    def close(self) -> None:
        """Session teardown; releases a held artifact."""
        if self.state == JobState.CONVERTING:
            logger.warning("closing session while a conversion is still running")
        self._discard_job()

    def _progress(self, job: ConversionJob, message: str) -> None:
        job.progress_messages.append(message)
        self._listener.on_progress(message)

    def _ensure_not_converting(self, action: str) -> None:
        if self.state == JobState.CONVERTING:
            raise ConversionInProgressError(f"cannot {action} while a conversion is running")

    def _release_artifact(self, job: ConversionJob) -> None:
        if job.artifact is not None:
            self._publisher.release(job.artifact)
            job.artifact = None

    def _discard_job(self) -> None:
        if self._job is not None:
            self._release_artifact(self._job)
            logger.debug("state: %s -> idle", self._job.state)
        self._job = None


def build_default_orchestrator(*, listener: OrchestratorListener | None = None) -> ConversionOrchestrator:
    """Wire the production adapters around the process-wide transcoding engine."""
    from .adapters import DocumentAdapter, RasterAdapter, TranscodingAdapter

    adapters: dict[FormatFamily, EngineAdapter] = {
        FormatFamily.RASTER: RasterAdapter(),
        FormatFamily.DOCUMENT: DocumentAdapter(),
        FormatFamily.AUDIO: TranscodingAdapter(),
    }
    return ConversionOrchestrator(adapters, ArtifactPublisher(), listener=listener)
