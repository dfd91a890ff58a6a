"""ZIP archive export of a story's text and generated assets."""

import logging
import zipfile
from io import BytesIO
from pathlib import Path

from storyreel_core_schemas import Paragraph

from .exceptions import ExportError

logger = logging.getLogger(__name__)


def _index(n: int) -> str:
    return f"{n:02d}"


class ArchiveExporter:
    """Packs paragraphs into a ZIP archive.

    Layout::

        paragraph_01/text.txt
        paragraph_01/audio.wav
        paragraph_01/scene_01_start.png
        paragraph_01/scene_01_end.png
        paragraph_01/scene_01_video.mp4

    Assets that are not present are left out; the archive reflects
    whatever has been generated so far.
    """

    def members(self, paragraphs: list[Paragraph]) -> list[tuple[str, bytes]]:
        """List (archive path, content) pairs in archive order."""
        entries: list[tuple[str, bytes]] = []
        for p_num, paragraph in enumerate(paragraphs, start=1):
            folder = f"paragraph_{_index(p_num)}"
            entries.append((f"{folder}/text.txt", paragraph.text.encode("utf-8")))
            if paragraph.audio is not None:
                entries.append((f"{folder}/audio.{paragraph.audio.extension}", paragraph.audio.data))

            for s_num, scene in enumerate(paragraph.scenes, start=1):
                prefix = f"{folder}/scene_{_index(s_num)}"
                for name, asset in (("start", scene.start_image), ("end", scene.end_image), ("video", scene.video)):
                    if asset is not None:
                        entries.append((f"{prefix}_{name}.{asset.extension}", asset.data))
        return entries

    def build(self, paragraphs: list[Paragraph]) -> bytes:
        """Build the archive in memory.

        Raises:
            ExportError: If the archive cannot be written
        """
        buf = BytesIO()
        try:
            with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as z:
                for name, content in self.members(paragraphs):
                    z.writestr(name, content)
        except (OSError, zipfile.BadZipFile, ValueError) as e:
            raise ExportError(f"Failed to build archive: {e}") from e
        return buf.getvalue()

    def export(self, paragraphs: list[Paragraph], path: Path) -> Path:
        """Write the archive to ``path``.

        Returns:
            The path written

        Raises:
            ExportError: If the archive cannot be written
        """
        path = Path(path)
        data = self.build(paragraphs)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise ExportError(f"Failed to write archive to {path}: {e}") from e
        logger.info("Exported %d paragraphs to %s (%d bytes)", len(paragraphs), path, len(data))
        return path
