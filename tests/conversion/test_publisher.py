from __future__ import annotations

import pytest

from file_convert.conversion.publisher import ArtifactPublisher, ArtifactRevoked


def test_publish_creates_named_live_artifact() -> None:
    publisher = ArtifactPublisher()

    artifact = publisher.publish(b"GIF89a", "image/gif", "holiday.gif")

    assert artifact.data == b"GIF89a"
    assert artifact.size == 6
    assert artifact.mime_type == "image/gif"
    assert artifact.file_name == "holiday.gif"
    assert publisher.resolve(artifact.id) is artifact
    assert publisher.live_count == 1


def test_release_revokes_exactly_once() -> None:
    publisher = ArtifactPublisher()
    artifact = publisher.publish(b"data", "application/pdf", "report.pdf")

    assert publisher.release(artifact) is True
    assert publisher.release(artifact) is False

    assert publisher.releases == 1
    assert artifact.released
    assert publisher.live_count == 0
    with pytest.raises(ArtifactRevoked):
        _ = artifact.data
    with pytest.raises(KeyError):
        publisher.resolve(artifact.id)


def test_close_releases_everything_still_live() -> None:
    publisher = ArtifactPublisher()
    first = publisher.publish(b"1", "audio/wav", "a.wav")
    second = publisher.publish(b"2", "audio/ogg", "b.ogg")
    publisher.release(first)

    publisher.close()

    assert second.released
    assert publisher.releases == 2
