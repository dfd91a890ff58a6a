"""
Tests for the Archive Exporter

Tests for storyreel_services/export.py
"""

import zipfile
from io import BytesIO

import pytest

from storyreel_core_schemas import Asset, GenerationStatus, Paragraph, Scene
from storyreel_services import ArchiveExporter, ExportError

S = GenerationStatus


def finished_paragraph(n: int) -> Paragraph:
    return Paragraph(
        id=f"p{n}",
        text=f"Paragraph {n}.",
        audio_status=S.SUCCESS,
        audio=Asset(mime_type="audio/wav", data=f"wav{n}".encode()),
        scenes=[
            Scene(
                id=f"p{n}s1",
                start_image_status=S.SUCCESS,
                start_image=Asset(mime_type="image/png", data=b"start"),
                end_image_status=S.SUCCESS,
                end_image=Asset(mime_type="image/jpeg", data=b"end"),
                video_status=S.SUCCESS,
                video=Asset(mime_type="video/mp4", data=b"video"),
            )
        ],
    )


class TestMembers:
    """Tests for archive layout."""

    def test_complete_story(self):
        names = [name for name, _ in ArchiveExporter().members([finished_paragraph(1), finished_paragraph(2)])]

        assert names == [
            "paragraph_01/text.txt",
            "paragraph_01/audio.wav",
            "paragraph_01/scene_01_start.png",
            "paragraph_01/scene_01_end.jpg",
            "paragraph_01/scene_01_video.mp4",
            "paragraph_02/text.txt",
            "paragraph_02/audio.wav",
            "paragraph_02/scene_01_start.png",
            "paragraph_02/scene_01_end.jpg",
            "paragraph_02/scene_01_video.mp4",
        ]

    def test_missing_assets_left_out(self):
        paragraph = Paragraph(
            id="p1",
            text="Only text.",
            audio_status=S.ERROR,
            audio_error="quota",
            scenes=[Scene(id="s1", video_status=S.SKIPPED)],
        )

        members = ArchiveExporter().members([paragraph])

        assert members == [("paragraph_01/text.txt", b"Only text.")]

    def test_text_is_utf8(self):
        members = ArchiveExporter().members([Paragraph(text="Café at dusk")])

        assert members[0][1] == "Café at dusk".encode("utf-8")


class TestBuild:
    """Tests for archive bytes and files."""

    def test_archive_contents(self):
        data = ArchiveExporter().build([finished_paragraph(1)])

        with zipfile.ZipFile(BytesIO(data)) as z:
            assert z.read("paragraph_01/text.txt") == b"Paragraph 1."
            assert z.read("paragraph_01/scene_01_video.mp4") == b"video"
            assert len(z.namelist()) == 5

    def test_export_is_repeatable(self, temp_dir):
        exporter = ArchiveExporter()
        paragraphs = [finished_paragraph(1)]

        first = exporter.export(paragraphs, temp_dir / "first.zip")
        second = exporter.export(paragraphs, temp_dir / "nested" / "second.zip")

        with zipfile.ZipFile(first) as a, zipfile.ZipFile(second) as b:
            assert a.namelist() == b.namelist()

    def test_unwritable_path(self, temp_dir):
        blocker = temp_dir / "file"
        blocker.write_text("not a directory")

        with pytest.raises(ExportError) as exc_info:
            ArchiveExporter().export([finished_paragraph(1)], blocker / "story.zip")

        assert exc_info.value.code == "EXPORT_ERROR"
