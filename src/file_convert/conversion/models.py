from dataclasses import dataclass
from enum import Enum

from .errors import IllegalTargetSelected


class FormatFamily(Enum):
    RASTER = "raster"
    DOCUMENT = "document"
    AUDIO = "audio"
    UNSUPPORTED = "unsupported"


class ConversionTarget(str, Enum):
    """Output formats an adapter can produce. The value is the file extension."""

    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    GIF = "gif"
    PDF = "pdf"
    MP3 = "mp3"
    WAV = "wav"
    OGG = "ogg"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return self.name

    @property
    def mime_type(self) -> str:
        if self is ConversionTarget.PDF:
            return "application/pdf"
        if self is ConversionTarget.MP3:
            # audio/mp3 is not registered; audio/mpeg round-trips through the classifier
            return "audio/mpeg"
        if self in (ConversionTarget.WAV, ConversionTarget.OGG):
            return f"audio/{self.value}"
        return f"image/{self.value}"

    @classmethod
    def parse(cls, value: "ConversionTarget | str") -> "ConversionTarget":
        if isinstance(value, ConversionTarget):
            return value
        key = str(value).strip().lower().lstrip(".")
        if key == "jpg":
            key = "jpeg"
        try:
            return cls(key)
        except ValueError:
            raise IllegalTargetSelected(f"unknown conversion target {value!r}") from None


@dataclass(frozen=True)
class SourceFile:
    data: bytes
    media_type: str | None
    name: str

    @property
    def extension(self) -> str:
        """Lower-cased extension without the dot; empty when the name has none."""
        name = self.safe_name
        if "." not in name:
            return ""
        return name.rsplit(".", 1)[-1].lower()

    @property
    def stem(self) -> str:
        stem = self.safe_name.rsplit(".", 1)[0] if "." in self.safe_name else self.safe_name
        return stem or "converted"

    @property
    def safe_name(self) -> str:
        # Browsers may send full Windows paths; keep the last component only
        name = (self.name or "").replace("\\", "/").rsplit("/", 1)[-1].strip()
        return name or "upload"


@dataclass(frozen=True)
class Classification:
    family: FormatFamily
    legal_targets: tuple[ConversionTarget, ...]
    source_format: str | None = None

    @property
    def supported(self) -> bool:
        return bool(self.legal_targets)


@dataclass(frozen=True)
class ConvertedPayload:
    """Raw adapter output, before the publisher turns it into an Artifact."""

    data: bytes
    mime_type: str
    file_name: str

    @classmethod
    def for_target(cls, data: bytes, source: SourceFile, target: ConversionTarget) -> "ConvertedPayload":
        return cls(data=data, mime_type=target.mime_type, file_name=f"{source.stem}.{target.extension}")
