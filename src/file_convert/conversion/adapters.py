import asyncio
import io
import logging
import uuid

import pymupdf
from PIL import Image, UnidentifiedImageError

from ..config import JPEG_QUALITY, PDF_FONT_SIZE, PDF_MARGIN
from .engine import EngineHandle, default_engine_handle
from .errors import ConversionError, DecodeFailed, EncodeFailed
from .interfaces import ProgressCallback, TextExtractor
from .models import ConversionTarget, ConvertedPayload, SourceFile

logger = logging.getLogger(__name__)


def _report(progress: ProgressCallback | None, message: str) -> None:
    if progress is not None:
        progress(message)


class RasterAdapter:
    """Re-encode an image into another raster format at its native size."""

    _PIL_FORMATS = {
        ConversionTarget.JPEG: "JPEG",
        ConversionTarget.PNG: "PNG",
        ConversionTarget.WEBP: "WEBP",
        ConversionTarget.GIF: "GIF",
    }

    def __init__(self, *, jpeg_quality: int = JPEG_QUALITY) -> None:
        self._jpeg_quality = jpeg_quality

    async def convert(
        self,
        source: SourceFile,
        target: ConversionTarget,
        *,
        progress: ProgressCallback | None = None,
    ) -> ConvertedPayload:
        if target not in self._PIL_FORMATS:
            raise EncodeFailed(f"raster adapter cannot produce {target.label}")
        _report(progress, "Converting image...")
        data = await asyncio.to_thread(self._convert, source.data, target)
        return ConvertedPayload.for_target(data, source, target)

    def _convert(self, data: bytes, target: ConversionTarget) -> bytes:
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise DecodeFailed(f"could not decode image: {e}") from e

        try:
            out = io.BytesIO()
            if target is ConversionTarget.JPEG:
                self._flatten(image).save(out, format="JPEG", quality=self._jpeg_quality)
            elif target is ConversionTarget.WEBP:
                self._without_cmyk(image).save(out, format="WEBP", lossless=True)
            else:
                self._without_cmyk(image).save(out, format=self._PIL_FORMATS[target])
            return out.getvalue()
        except (OSError, ValueError, KeyError) as e:
            raise EncodeFailed(f"could not encode {target.label}: {e}") from e

    @staticmethod
    def _flatten(image: Image.Image) -> Image.Image:
        # JPEG has no alpha channel and no palette
        if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
            rgba = image.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.getchannel("A"))
            return background
        if image.mode not in ("RGB", "L", "CMYK"):
            return image.convert("RGB")
        return image

    @staticmethod
    def _without_cmyk(image: Image.Image) -> Image.Image:
        return image.convert("RGB") if image.mode == "CMYK" else image


class DoclingTextExtractor(TextExtractor):
    def extract_text(self, data: bytes, file_name: str) -> str:
        from docling.datamodel.base_models import DocumentStream
        from docling.document_converter import DocumentConverter

        # docling picks the backend from the suffix
        name = file_name if file_name.lower().endswith(".docx") else f"{file_name}.docx"
        converter = DocumentConverter()
        result = converter.convert(DocumentStream(name=name, stream=io.BytesIO(data)))
        doc = result.document
        for m in ("export_to_text", "export_to_markdown"):
            fn = getattr(doc, m, None)
            if callable(fn):
                return fn()
        raise RuntimeError("Doc object lacks a text export method")


class DocumentAdapter:
    """Extract the raw text of a document and lay it out on a single PDF page.

    Layout, images and styles are discarded. Text that does not fit the page
    is dropped with a warning.
    """

    PAGE_WIDTH = 595.0
    PAGE_HEIGHT = 842.0
    FONT_NAME = "helv"
    LINE_HEIGHT_FACTOR = 1.2

    def __init__(
        self,
        extractor: TextExtractor | None = None,
        *,
        font_size: float = PDF_FONT_SIZE,
        margin: float = PDF_MARGIN,
    ) -> None:
        self._extractor = extractor or DoclingTextExtractor()
        self.font_size = font_size
        self.margin = margin

    async def convert(
        self,
        source: SourceFile,
        target: ConversionTarget,
        *,
        progress: ProgressCallback | None = None,
    ) -> ConvertedPayload:
        if target is not ConversionTarget.PDF:
            raise EncodeFailed(f"document adapter cannot produce {target.label}")
        _report(progress, "Extracting text...")
        try:
            text = await asyncio.to_thread(self._extractor.extract_text, source.data, source.safe_name)
        except ConversionError:
            raise
        except Exception as e:
            raise DecodeFailed(f"text extraction failed: {e}") from e
        _report(progress, "Building PDF...")
        data = await asyncio.to_thread(self.render_pdf, text)
        return ConvertedPayload.for_target(data, source, target)

    def wrap(self, text: str) -> list[str]:
        """Split text into lines no wider than the writable width."""
        max_width = self.PAGE_WIDTH - 2 * self.margin
        lines: list[str] = []
        for paragraph in text.replace("\r\n", "\n").replace("\t", "    ").split("\n"):
            current = ""
            for word in paragraph.split(" "):
                candidate = f"{current} {word}" if current else word
                if pymupdf.get_text_length(candidate, fontname=self.FONT_NAME, fontsize=self.font_size) <= max_width:
                    current = candidate
                    continue
                if current:
                    lines.append(current)
                current = word
                # Break words that are wider than a whole line
                while pymupdf.get_text_length(current, fontname=self.FONT_NAME, fontsize=self.font_size) > max_width and len(current) > 1:
                    cut = len(current) - 1
                    while cut > 1 and pymupdf.get_text_length(current[:cut], fontname=self.FONT_NAME, fontsize=self.font_size) > max_width:
                        cut -= 1
                    lines.append(current[:cut])
                    current = current[cut:]
            lines.append(current)
        return lines

    def render_pdf(self, text: str) -> bytes:
        line_height = self.font_size * self.LINE_HEIGHT_FACTOR
        lines = self.wrap(text)
        try:
            doc = pymupdf.open()
            page = doc.new_page(width=self.PAGE_WIDTH, height=self.PAGE_HEIGHT)
            y = 4 * self.font_size
            written = 0
            for line in lines:
                if y > self.PAGE_HEIGHT - self.margin:
                    break
                if line:
                    page.insert_text((self.margin, y), line, fontname=self.FONT_NAME, fontsize=self.font_size)
                y += line_height
                written += 1
            data = doc.tobytes()
            doc.close()
        except (RuntimeError, ValueError) as e:
            raise EncodeFailed(f"could not build PDF: {e}") from e
        if written < len(lines):
            logger.warning("document text overflows the page: %d of %d lines dropped", len(lines) - written, len(lines))
        return data


class TranscodingAdapter:
    """Transcode audio through the shared engine, loading it on first use."""

    _CODECS: dict[ConversionTarget, dict[str, object]] = {
        ConversionTarget.MP3: {"acodec": "libmp3lame", "audio_bitrate": "320k"},
        ConversionTarget.WAV: {"acodec": "pcm_s16le"},
        ConversionTarget.OGG: {"acodec": "libvorbis", "audio_bitrate": "320k"},
    }

    def __init__(self, handle: EngineHandle | None = None) -> None:
        self._handle = handle or default_engine_handle()

    async def convert(
        self,
        source: SourceFile,
        target: ConversionTarget,
        *,
        progress: ProgressCallback | None = None,
    ) -> ConvertedPayload:
        if target not in self._CODECS:
            raise EncodeFailed(f"transcoding adapter cannot produce {target.label}")
        if not self._handle.ready:
            _report(progress, "Loading audio converter...")
        engine = await self._handle.acquire()

        _report(progress, "Converting audio...")
        scratch = uuid.uuid4().hex
        input_name = f"{scratch}/{source.safe_name}"
        output_name = f"{scratch}/out/{source.stem}.{target.extension}"
        try:
            engine.write_file(input_name, source.data)
            await engine.transcode(input_name, output_name, **self._CODECS[target])
            data = engine.read_file(output_name)
        finally:
            engine.remove(scratch)
        return ConvertedPayload.for_target(data, source, target)
