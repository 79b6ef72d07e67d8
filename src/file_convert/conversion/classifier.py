"""
Format classification.

Maps a file's declared media type (falling back to its extension) onto a
format family and the ordered list of formats it may be converted to.
"""

import logging

from .models import Classification, ConversionTarget, FormatFamily, SourceFile

logger = logging.getLogger(__name__)

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# Output formats each family's adapter can produce, in display order
FAMILY_OUTPUTS: dict[FormatFamily, tuple[ConversionTarget, ...]] = {
    FormatFamily.RASTER: (ConversionTarget.JPEG, ConversionTarget.PNG, ConversionTarget.WEBP, ConversionTarget.GIF),
    FormatFamily.DOCUMENT: (ConversionTarget.PDF,),
    FormatFamily.AUDIO: (ConversionTarget.MP3, ConversionTarget.WAV, ConversionTarget.OGG),
}

# declared type -> (family, source format label, format it must never convert to)
_SOURCE_FORMATS: dict[str, tuple[FormatFamily, str, ConversionTarget | None]] = {
    "image/jpeg": (FormatFamily.RASTER, "JPEG", ConversionTarget.JPEG),
    "image/png": (FormatFamily.RASTER, "PNG", ConversionTarget.PNG),
    "image/webp": (FormatFamily.RASTER, "WEBP", ConversionTarget.WEBP),
    "image/gif": (FormatFamily.RASTER, "GIF", ConversionTarget.GIF),
    DOCX_MIME: (FormatFamily.DOCUMENT, "DOCX", None),
    "audio/mpeg": (FormatFamily.AUDIO, "MP3", ConversionTarget.MP3),
    "audio/wav": (FormatFamily.AUDIO, "WAV", ConversionTarget.WAV),
    "audio/ogg": (FormatFamily.AUDIO, "OGG", ConversionTarget.OGG),
}

# Non-standard labels some clients send
_MIME_ALIASES: dict[str, str] = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "audio/mp3": "audio/mpeg",
    "audio/x-wav": "audio/wav",
    "audio/wave": "audio/wav",
    "audio/vnd.wave": "audio/wav",
}

_EXTENSIONS: dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "docx": DOCX_MIME,
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
}


def _build_registry() -> dict[str, Classification]:
    registry: dict[str, Classification] = {}
    for mime, (family, label, own_format) in _SOURCE_FORMATS.items():
        targets = tuple(t for t in FAMILY_OUTPUTS[family] if t is not own_format)
        registry[mime] = Classification(family=family, legal_targets=targets, source_format=label)
    return registry


REGISTRY: dict[str, Classification] = _build_registry()

UNSUPPORTED = Classification(family=FormatFamily.UNSUPPORTED, legal_targets=())


def _normalize_mime(media_type: str | None) -> str:
    if not media_type:
        return ""
    mime = media_type.split(";", 1)[0].strip().lower()
    return _MIME_ALIASES.get(mime, mime)


def classify(source: SourceFile) -> Classification:
    mime = _normalize_mime(source.media_type)
    if mime in REGISTRY:
        return REGISTRY[mime]
    fallback = _EXTENSIONS.get(source.extension)
    if fallback is not None:
        logger.debug("classified %s by extension .%s (declared %r)", source.safe_name, source.extension, source.media_type)
        return REGISTRY[fallback]
    logger.info("unsupported file %s (declared %r)", source.safe_name, source.media_type)
    return UNSUPPORTED


def supported_media_types() -> list[str]:
    return sorted(REGISTRY)


def supported_extensions() -> list[str]:
    return sorted(_EXTENSIONS)
