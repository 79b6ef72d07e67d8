import logging
import threading
import uuid
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class ArtifactRevoked(RuntimeError):
    pass


class ArtifactHandle:
    """Revocable reference to an artifact's bytes.

    Once revoked the payload reference is dropped and reads fail.
    """

    def __init__(self, data: bytes) -> None:
        self.id = uuid.uuid4().hex
        self._data: bytes | None = data

    @property
    def revoked(self) -> bool:
        return self._data is None

    def read(self) -> bytes:
        if self._data is None:
            raise ArtifactRevoked(f"artifact {self.id} has been released")
        return self._data

    def _revoke(self) -> None:
        self._data = None


@dataclass(frozen=True)
class Artifact:
    mime_type: str
    file_name: str
    size: int
    handle: ArtifactHandle

    @property
    def id(self) -> str:
        return self.handle.id

    @property
    def data(self) -> bytes:
        return self.handle.read()

    @property
    def released(self) -> bool:
        return self.handle.revoked


class ArtifactPublisher:
    """Owns every published artifact until it is released exactly once."""

    def __init__(self) -> None:
        self._live: dict[str, Artifact] = {}
        self._lock = threading.Lock()
        self.releases = 0

    @property
    def live_count(self) -> int:
        return len(self._live)

    def publish(self, data: bytes, mime_type: str, file_name: str) -> Artifact:
        artifact = Artifact(mime_type=mime_type, file_name=file_name, size=len(data), handle=ArtifactHandle(bytes(data)))
        with self._lock:
            self._live[artifact.id] = artifact
        logger.debug("published artifact %s (%s, %d bytes)", artifact.id, mime_type, artifact.size)
        return artifact

    def resolve(self, handle_id: str) -> Artifact:
        with self._lock:
            return self._live[handle_id]

    def release(self, artifact: Artifact) -> bool:
        with self._lock:
            if self._live.pop(artifact.id, None) is None:
                logger.debug("artifact %s already released", artifact.id)
                return False
            artifact.handle._revoke()
            self.releases += 1
        logger.debug("released artifact %s", artifact.id)
        return True

    def close(self) -> None:
        with self._lock:
            remaining = list(self._live.values())
        for artifact in remaining:
            self.release(artifact)
