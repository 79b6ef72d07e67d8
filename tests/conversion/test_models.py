from __future__ import annotations

import pytest

from file_convert.conversion.errors import IllegalTargetSelected
from file_convert.conversion.models import ConversionTarget, ConvertedPayload, SourceFile


def test_source_file_name_helpers() -> None:
    source = SourceFile(data=b"x", media_type=None, name="C:\\Users\\me\\My Song.MP3")

    assert source.safe_name == "My Song.MP3"
    assert source.extension == "mp3"
    assert source.stem == "My Song"


def test_source_file_without_extension() -> None:
    source = SourceFile(data=b"", media_type=None, name="README")

    assert source.extension == ""
    assert source.stem == "README"


def test_empty_name_falls_back() -> None:
    assert SourceFile(data=b"", media_type=None, name="").safe_name == "upload"


@pytest.mark.parametrize(
    ("target", "mime"),
    [
        (ConversionTarget.GIF, "image/gif"),
        (ConversionTarget.JPEG, "image/jpeg"),
        (ConversionTarget.PDF, "application/pdf"),
        (ConversionTarget.WAV, "audio/wav"),
        (ConversionTarget.OGG, "audio/ogg"),
        (ConversionTarget.MP3, "audio/mpeg"),
    ],
)
def test_target_mime_types(target, mime) -> None:
    assert target.mime_type == mime


def test_parse_accepts_labels_and_extensions() -> None:
    assert ConversionTarget.parse("GIF") is ConversionTarget.GIF
    assert ConversionTarget.parse(".jpg") is ConversionTarget.JPEG
    assert ConversionTarget.parse(ConversionTarget.WAV) is ConversionTarget.WAV


def test_parse_rejects_unknown_target() -> None:
    with pytest.raises(IllegalTargetSelected):
        ConversionTarget.parse("bmp")


def test_payload_naming_is_deterministic() -> None:
    source = SourceFile(data=b"", media_type="image/png", name="holiday.png")

    payload = ConvertedPayload.for_target(b"gif", source, ConversionTarget.GIF)

    assert payload.file_name == "holiday.gif"
    assert payload.mime_type == "image/gif"
