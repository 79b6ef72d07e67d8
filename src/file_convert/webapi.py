import logging
import os
import time
import uuid
from urllib.parse import quote

from fastapi import FastAPI, File, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from starlette.background import BackgroundTask

try:
    from file_convert.config import MAX_SESSIONS, MAX_UPLOAD_MB, SESSION_IDLE_SEC, VERSION, configure_logging
    from file_convert.conversion import (
        ConversionError,
        ConversionInProgressError,
        ConversionOrchestrator,
        IllegalTargetSelected,
        JobState,
        SourceFile,
        build_default_orchestrator,
    )
    from file_convert.conversion.engine import default_engine_handle
except ImportError:
    # Allow running as a script: `python src/file_convert/webapi.py`
    import sys as _sys
    from pathlib import Path as _Path
    _sys.path.append(str(_Path(__file__).resolve().parents[1]))  # add ./src to sys.path
    from file_convert.config import MAX_SESSIONS, MAX_UPLOAD_MB, SESSION_IDLE_SEC, VERSION, configure_logging
    from file_convert.conversion import (
        ConversionError,
        ConversionInProgressError,
        ConversionOrchestrator,
        IllegalTargetSelected,
        JobState,
        SourceFile,
        build_default_orchestrator,
    )
    from file_convert.conversion.engine import default_engine_handle

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Local File Converter",
    version=VERSION,
    description=(
        "Local REST binding of the conversion orchestrator: upload a file, "
        "pick one of its legal target formats and download the result."
    ),
)

SESSIONS: dict[str, ConversionOrchestrator] = {}
# session id -> time.monotonic() of the last request
LAST_SEEN: dict[str, float] = {}


class ConvertRequest(BaseModel):
    target: str


def _session(session_id: str) -> ConversionOrchestrator:
    orchestrator = SESSIONS.get(session_id)
    if orchestrator is None:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "session not found"})
    LAST_SEEN[session_id] = time.monotonic()
    return orchestrator


def _close_session(session_id: str) -> None:
    orchestrator = SESSIONS.pop(session_id)
    LAST_SEEN.pop(session_id, None)
    orchestrator.close()


def _evict_sessions(now: float) -> None:
    """Close idle sessions, then the least recently used ones while at capacity.

    Sessions with a running conversion are never evicted.
    """
    evictable = sorted(
        (sid for sid, o in SESSIONS.items() if o.state != JobState.CONVERTING),
        key=lambda sid: LAST_SEEN.get(sid, 0.0),
    )
    for sid in evictable:
        idle = now - LAST_SEEN.get(sid, 0.0)
        if idle < SESSION_IDLE_SEC and len(SESSIONS) < MAX_SESSIONS:
            break
        logger.info("evicting session %s (idle %.0fs)", sid, idle)
        _close_session(sid)


def _content_disposition(file_name: str) -> str:
    # Latin-1 header values only; the UTF-8 name travels in filename*
    fallback = file_name.encode("ascii", "replace").decode("ascii").replace("?", "_")
    fallback = fallback.replace('"', "_").replace("\\", "_")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(file_name, safe='')}"


def _failure_body(error: ConversionError) -> dict[str, object]:
    return {"code": error.kind.value, "message": error.user_message, "retryable": error.retryable}


def _session_body(session_id: str, orchestrator: ConversionOrchestrator) -> dict[str, object]:
    job = orchestrator.job
    artifact = orchestrator.artifact
    error = orchestrator.last_error
    return {
        "id": session_id,
        "state": orchestrator.state,
        "file_name": job.source.safe_name if job else None,
        "family": job.family.value if job else None,
        "legal_targets": [t.label for t in orchestrator.legal_targets],
        "target": job.target.label if job and job.target else None,
        "progress": list(job.progress_messages) if job else [],
        "failure": _failure_body(error) if error else None,
        "artifact": {
            "file_name": artifact.file_name,
            "mime_type": artifact.mime_type,
            "size_bytes": artifact.size,
            "released": artifact.released,
            "links": {"download": f"/sessions/{session_id}/artifact"},
        } if artifact else None,
    }


@app.get("/health")
def health() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "ok"}


@app.on_event("shutdown")
async def _shutdown() -> None:
    for orchestrator in SESSIONS.values():
        orchestrator.close()
    SESSIONS.clear()
    LAST_SEEN.clear()
    default_engine_handle().shutdown()
    logger.info("conversion sessions closed")


@app.post("/sessions", status_code=status.HTTP_201_CREATED)
def create_session() -> JSONResponse:
    now = time.monotonic()
    _evict_sessions(now)
    if len(SESSIONS) >= MAX_SESSIONS:
        raise HTTPException(status_code=503, detail={"code": "too_many_sessions", "message": "all sessions are busy converting"})
    session_id = str(uuid.uuid4())
    SESSIONS[session_id] = build_default_orchestrator()
    LAST_SEEN[session_id] = now
    logger.info("created session %s", session_id)
    headers = {"Location": f"/sessions/{session_id}"}
    body = _session_body(session_id, SESSIONS[session_id])
    return JSONResponse(status_code=status.HTTP_201_CREATED, content=body, headers=headers)


@app.get("/sessions/{session_id}")
def get_session(session_id: str) -> dict[str, object]:
    return _session_body(session_id, _session(session_id))


@app.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(session_id: str) -> Response:
    _session(session_id)
    _close_session(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/sessions/{session_id}/file")
async def upload_file(session_id: str, file: UploadFile = File(...)) -> JSONResponse:
    """Load a file into the session and return its legal target formats.

    Accepts multipart/form-data with a single required part named "file".
    Returns 415 with the failure when no conversion exists for the file.
    """
    orchestrator = _session(session_id)
    max_bytes = MAX_UPLOAD_MB * 1024 * 1024
    data = await file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise HTTPException(status_code=413, detail={"code": "payload_too_large", "message": f"upload exceeds {MAX_UPLOAD_MB} MB"})

    source = SourceFile(data=data, media_type=file.content_type, name=file.filename or "upload")
    try:
        targets = orchestrator.select_file(source)
    except ConversionInProgressError as e:
        raise HTTPException(status_code=409, detail={"code": "conversion_in_progress", "message": str(e)})
    body = _session_body(session_id, orchestrator)
    if not targets:
        return JSONResponse(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, content=body)
    return JSONResponse(content=body)


@app.post("/sessions/{session_id}/convert")
async def convert(session_id: str, request: ConvertRequest) -> JSONResponse:
    orchestrator = _session(session_id)
    try:
        await orchestrator.select_target(request.target)
    except ConversionInProgressError as e:
        raise HTTPException(status_code=409, detail={"code": "conversion_in_progress", "message": str(e)})
    except IllegalTargetSelected as e:
        raise HTTPException(status_code=400, detail={"code": e.kind.value, "message": e.message})
    except ConversionError:
        return JSONResponse(status_code=422, content=_session_body(session_id, orchestrator))
    return JSONResponse(content=_session_body(session_id, orchestrator))


@app.get("/sessions/{session_id}/artifact")
def download_artifact(session_id: str) -> Response:
    """Return the converted file; the artifact is released once handed over."""
    orchestrator = _session(session_id)
    artifact = orchestrator.artifact
    if artifact is None or artifact.released:
        raise HTTPException(status_code=404, detail={"code": "not_ready", "message": "no artifact available"})
    headers = {"Content-Disposition": _content_disposition(artifact.file_name)}
    release = BackgroundTask(orchestrator.publisher.release, artifact)
    return Response(content=artifact.data, media_type=artifact.mime_type, headers=headers, background=release)


@app.post("/sessions/{session_id}/reset")
def reset_session(session_id: str) -> dict[str, object]:
    orchestrator = _session(session_id)
    try:
        orchestrator.reset()
    except ConversionInProgressError as e:
        raise HTTPException(status_code=409, detail={"code": "conversion_in_progress", "message": str(e)})
    return _session_body(session_id, orchestrator)


def run() -> None:
    """Run a development ASGI server using uvicorn.

    Exposes the app at host:port (default 127.0.0.1:8080). Set PORT env var to override.
    """
    import uvicorn

    configure_logging()
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8080"))
    # Enable reload in dev unless explicitly disabled
    reload = os.getenv("RELOAD", "true").lower() in {"1", "true", "yes", "on"}

    uvicorn.run("file_convert.webapi:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    run()
