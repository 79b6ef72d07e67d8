import logging
import os

# Global configuration defaults
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "100"))
FFMPEG_BINARY = os.getenv("FFMPEG_BINARY", "ffmpeg")
# Unset means the system temp directory
ENGINE_WORKSPACE_DIR = os.getenv("ENGINE_WORKSPACE_DIR") or None
PDF_FONT_SIZE = float(os.getenv("PDF_FONT_SIZE", "12"))
PDF_MARGIN = float(os.getenv("PDF_MARGIN", "50"))
JPEG_QUALITY = int(os.getenv("JPEG_QUALITY", "95"))
# Web API session limits; idle sessions are closed when a new one is created
MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", "32"))
SESSION_IDLE_SEC = float(os.getenv("SESSION_IDLE_SEC", "3600"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
VERSION = os.getenv("FILE_CONVERT_VERSION", "0.1.0")


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for the server and UI entry points."""
    logging.basicConfig(
        level=level or LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
