"""Project management service."""

import logging
import shutil
from pathlib import Path
from typing import Callable, Optional

import pydantic

from storyreel_core_schemas import (
    Credentials,
    GenerationSettings,
    GenerationStatus,
    Paragraph,
    Project,
    ProjectStatus,
    SegmentationMethod,
)
from storyreel_providers import ProviderRegistry
from storyreel_storage import ProjectManager

from .exceptions import NotFoundError, ValidationError
from .segmentation import SegmentationResult, SegmentationService
from .storyboard import StoryboardService

logger = logging.getLogger(__name__)


def status_counts(paragraphs: list[Paragraph]) -> dict[str, dict[str, int]]:
    """Per-status counts for each asset kind."""
    counts = {
        kind: {status.value: 0 for status in GenerationStatus}
        for kind in ("audio", "start", "end", "video")
    }
    for paragraph in paragraphs:
        counts["audio"][paragraph.audio_status.value] += 1
        for scene in paragraph.scenes:
            counts["start"][scene.start_image_status.value] += 1
            counts["end"][scene.end_image_status.value] += 1
            counts["video"][scene.video_status.value] += 1
    return counts


def _format_validation_error(error: pydantic.ValidationError) -> tuple[str, Optional[str]]:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    return first.get("msg", str(error)), field


class ProjectService:
    """Service for project management operations."""

    def __init__(self, base_path: Optional[Path] = None, registry: Optional[ProviderRegistry] = None):
        """Initialize service.

        Args:
            base_path: Base path for projects. If None, uses current directory.
            registry: Provider registry for segmentation and prompt writing
        """
        self.base_path = Path(base_path) if base_path else Path.cwd()
        self.registry = registry or ProviderRegistry()
        self._manager: Optional[ProjectManager] = None

    @property
    def manager(self) -> ProjectManager:
        """Get the project manager, loading if necessary."""
        if self._manager is None:
            self._manager = self.load()
        return self._manager

    def exists(self, path: Optional[Path] = None) -> bool:
        """Check if a project exists at the given path."""
        target = path or self.base_path
        return ProjectManager.exists(target)

    def create(
        self,
        name: str,
        source_text: str = "",
        path: Optional[Path] = None,
        settings: Optional[GenerationSettings] = None,
        project_id: Optional[str] = None,
    ) -> Project:
        """Create a new project.

        Args:
            name: Project name
            source_text: Raw story text
            path: Directory for project (defaults to base_path)
            settings: Initial generation settings (defaults are used if omitted)
            project_id: Project ID (generated if omitted)

        Returns:
            Created project

        Raises:
            ValidationError: If the name is empty or the directory is not empty
        """
        if not name.strip():
            raise ValidationError("Project name is required", field="name")

        target = path or self.base_path
        if target.exists() and any(f for f in target.iterdir() if not f.name.startswith('.')):
            raise ValidationError(
                f"Directory {target} already exists and is not empty",
                field="path",
            )

        self._manager = ProjectManager.create(target, name.strip(), source_text, project_id=project_id)
        self._manager.save_settings(settings or GenerationSettings())
        logger.info("Created project %s at %s", self._manager.project.id, target)
        return self._manager.project

    def load(self, path: Optional[Path] = None) -> ProjectManager:
        """Load an existing project.

        Args:
            path: Project directory (defaults to base_path)

        Returns:
            ProjectManager instance

        Raises:
            NotFoundError: If no project exists at path
        """
        target = path or self.base_path

        if not ProjectManager.exists(target):
            raise NotFoundError("Project", str(target))

        manager = ProjectManager.load(target)
        self._manager = manager
        return manager

    def get(self, path: Optional[Path] = None) -> Project:
        """Get project data."""
        if self._manager is None or (path and path != self.base_path):
            self.load(path)
        return self.manager.project

    def save(self) -> None:
        """Save current project state."""
        self.manager.save()

    def get_settings(self, credentials: Optional[Credentials] = None) -> GenerationSettings:
        """Load the project's generation settings.

        Raises:
            ValidationError: If the stored settings are invalid
        """
        try:
            return self.manager.load_settings(credentials)
        except pydantic.ValidationError as e:
            message, field = _format_validation_error(e)
            raise ValidationError(f"Invalid stored settings: {message}", field=field) from e

    def update_settings(self, credentials: Optional[Credentials] = None, **changes) -> GenerationSettings:
        """Change generation settings.

        Keys set to None are left unchanged. Scene changes take effect at
        the next commit.

        Returns:
            The new settings

        Raises:
            ValidationError: If a value is out of range or unknown
        """
        current = self.get_settings(credentials)
        data = current.model_dump(exclude={"credentials"})
        data.update({k: v for k, v in changes.items() if v is not None})
        try:
            settings = GenerationSettings(**data, credentials=current.credentials)
        except pydantic.ValidationError as e:
            message, field = _format_validation_error(e)
            raise ValidationError(message, field=field) from e

        self.manager.save_settings(settings)
        return settings

    async def segment(
        self,
        method: Optional[SegmentationMethod] = None,
        text: Optional[str] = None,
        credentials: Optional[Credentials] = None,
    ) -> SegmentationResult:
        """Split the story into paragraph segments.

        Args:
            method: Segmentation method (defaults to the configured one)
            text: Replacement story text; the stored text is used if omitted
            credentials: Credentials for remote segmentation

        Returns:
            SegmentationResult

        Raises:
            ValidationError: If there is no story text
        """
        project = self.manager.project
        settings = self.get_settings(credentials)
        if text is not None:
            project.source_text = text

        result = await SegmentationService(self.registry).segment(
            project.source_text,
            method or settings.segmentation_method,
            settings.credentials,
        )
        project.segments = result.paragraphs
        if project.status == ProjectStatus.DRAFT:
            project.status = ProjectStatus.SEGMENTED
        self.manager.save()
        return result

    def needs_commit(self, scene_count: int) -> bool:
        """True if the paragraph tree no longer matches the segments or scene count."""
        project = self.manager.project
        if not project.paragraphs:
            return True
        if [p.text for p in project.paragraphs] != [s.strip() for s in project.segments if s.strip()]:
            return True
        return any(len(p.scenes) != scene_count for p in project.paragraphs)

    def commit(self, scene_count: Optional[int] = None) -> Project:
        """Rebuild the paragraph tree from the current segments.

        Raises:
            ValidationError: If the project has not been segmented
        """
        project = self.manager.project
        if not project.segments:
            raise ValidationError("Project has no segments. Run segmentation first.", field="segments")

        count = scene_count or self.get_settings().scene_count
        project.paragraphs = StoryboardService(self.registry).commit(project.segments, count, project.paragraphs)
        project.scene_count = count
        project.status = ProjectStatus.SEGMENTED
        self.manager.save()
        logger.info("Committed %d paragraphs with %d scenes each", len(project.paragraphs), count)
        return project

    async def storyboard(
        self,
        overwrite: bool = False,
        credentials: Optional[Credentials] = None,
        on_paragraph_complete: Optional[Callable[[Paragraph], None]] = None,
    ) -> Project:
        """Commit if needed, then write start/end prompts for every scene.

        Returns:
            Updated project

        Raises:
            ValidationError: If the project has not been segmented
        """
        settings = self.get_settings(credentials)
        if self.needs_commit(settings.scene_count):
            self.commit(settings.scene_count)

        project = self.manager.project
        project.paragraphs = await StoryboardService(self.registry).generate_prompts(
            project.paragraphs,
            settings,
            overwrite=overwrite,
            on_paragraph_complete=on_paragraph_complete,
        )
        project.status = ProjectStatus.STORYBOARDED
        self.manager.save()
        return project

    def get_status(self) -> dict:
        """Get detailed project status.

        Returns:
            Status dict with per-kind asset counts
        """
        project = self.manager.project
        return {
            "project_id": project.id,
            "project_name": project.name,
            "status": project.status.value,
            "segments": len(project.segments),
            "paragraphs": len(project.paragraphs),
            "scenes": sum(len(p.scenes) for p in project.paragraphs),
            "assets": status_counts(project.paragraphs),
        }

    def delete(self, path: Optional[Path] = None) -> bool:
        """Delete a project.

        Returns:
            True if deleted
        """
        target = path or self.base_path
        if target.exists():
            shutil.rmtree(target)
            self._manager = None
            return True
        return False
