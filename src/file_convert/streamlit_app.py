import asyncio

import streamlit as st

from file_convert.config import configure_logging
from file_convert.conversion import (
    Artifact,
    ConversionError,
    ConversionErrorKind,
    ConversionOrchestrator,
    ConversionTarget,
    SourceFile,
    build_default_orchestrator,
)
from file_convert.conversion.classifier import supported_extensions


class SessionListener:
    """Mirror orchestrator events into Streamlit session state and widgets."""

    def __init__(self) -> None:
        self.status_box = None

    def on_legal_targets(self, targets: tuple[ConversionTarget, ...]) -> None:
        st.session_state["targets"] = [t.value for t in targets]

    def on_progress(self, message: str) -> None:
        if self.status_box is not None:
            self.status_box.update(label=message)
            self.status_box.write(message)

    def on_artifact_ready(self, artifact: Artifact) -> None:
        st.session_state.pop("error", None)

    def on_failure(self, kind: ConversionErrorKind, message: str) -> None:
        st.session_state["error"] = message
        if kind is ConversionErrorKind.UNSUPPORTED_FORMAT:
            st.session_state["targets"] = []


def _orchestrator() -> tuple[ConversionOrchestrator, SessionListener]:
    if "orchestrator" not in st.session_state:
        listener = SessionListener()
        st.session_state["listener"] = listener
        st.session_state["orchestrator"] = build_default_orchestrator(listener=listener)
    return st.session_state["orchestrator"], st.session_state["listener"]


def _reset_state(orchestrator: ConversionOrchestrator) -> None:
    orchestrator.reset()
    for key in ["file_id", "targets", "error"]:
        if key in st.session_state:
            del st.session_state[key]
    # Bump the uploader key to clear any previously uploaded file widget state
    st.session_state["upload_key"] = st.session_state.get("upload_key", 0) + 1


def _load_file(orchestrator: ConversionOrchestrator, uploaded) -> None:
    st.session_state.pop("error", None)
    source = SourceFile(data=uploaded.getvalue(), media_type=uploaded.type, name=uploaded.name)
    orchestrator.select_file(source)
    st.session_state["file_id"] = uploaded.file_id


def _convert(orchestrator: ConversionOrchestrator, listener: SessionListener, target: str) -> None:
    with st.status("Converting, please wait...", expanded=True) as status_box:
        listener.status_box = status_box
        try:
            asyncio.run(orchestrator.select_target(target))
        except ConversionError:
            status_box.update(label="Conversion failed", state="error")
        else:
            status_box.update(label="Conversion complete", state="complete")
        finally:
            listener.status_box = None


def main() -> None:
    configure_logging()
    st.set_page_config(page_title="Local File Converter", page_icon="🔁", layout="centered")
    st.title("🔁 Local File Converter")
    st.caption("Images, Word documents and audio are converted on this machine.")

    orchestrator, listener = _orchestrator()

    if st.button("Restart", type="secondary"):
        _reset_state(orchestrator)
        st.rerun()

    if "upload_key" not in st.session_state:
        st.session_state["upload_key"] = 0
    uploaded = st.file_uploader(
        "Upload an image, DOCX or audio file",
        type=supported_extensions(),
        key=f"uploader-{st.session_state['upload_key']}",
    )

    if uploaded is not None and st.session_state.get("file_id") != uploaded.file_id:
        _load_file(orchestrator, uploaded)

    targets = st.session_state.get("targets") or []
    if uploaded is not None and targets:
        if uploaded.type and uploaded.type.startswith("image/"):
            st.image(uploaded.getvalue())
        elif uploaded.type and uploaded.type.startswith("audio/"):
            st.audio(uploaded.getvalue())
        else:
            st.write(f"File: {uploaded.name}")

        st.subheader("Convert to")
        cols = st.columns(len(targets))
        for col, value in zip(cols, targets):
            with col:
                if st.button(value.upper(), key=f"target-{value}", use_container_width=True):
                    _convert(orchestrator, listener, value)

    artifact = orchestrator.artifact
    if artifact is not None and not artifact.released:
        st.success("Conversion complete!")
        st.download_button(
            label=f"Download {artifact.file_name}",
            data=artifact.data,
            file_name=artifact.file_name,
            mime=artifact.mime_type,
        )

    if err := st.session_state.get("error"):
        st.error(err)


if __name__ == "__main__":
    main()
