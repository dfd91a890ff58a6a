"""Storage backends for StoryReel projects."""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from storyreel_core_schemas import (
    SLOT_FIELDS,
    Asset,
    AssetSlot,
    Credentials,
    GenerationSettings,
    GenerationStatus,
    Paragraph,
    Project,
    extension_for,
)

logger = logging.getLogger(__name__)

SCENE_SLOTS = (AssetSlot.START, AssetSlot.END, AssetSlot.VIDEO)


def iter_assets(paragraphs: list[Paragraph]):
    """Yield (paragraph, scene_or_None, slot, asset) for every attached asset."""
    for paragraph in paragraphs:
        if paragraph.audio is not None:
            yield paragraph, None, AssetSlot.AUDIO, paragraph.audio
        for scene in paragraph.scenes:
            for slot in SCENE_SLOTS:
                asset = getattr(scene, SLOT_FIELDS[slot][1])
                if asset is not None:
                    yield paragraph, scene, slot, asset


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    def save_project(self, project: Project) -> None:
        """Save project data and its assets."""
        ...

    @abstractmethod
    def load_project(self) -> Project:
        """Load project data and its assets."""
        ...

    @abstractmethod
    def project_exists(self) -> bool:
        """Check if project exists."""
        ...

    @abstractmethod
    def save_settings(self, settings: GenerationSettings) -> None:
        """Persist generation settings (never credentials)."""
        ...

    @abstractmethod
    def load_settings(self, credentials: Optional[Credentials] = None) -> GenerationSettings:
        """Load generation settings, attaching the given credentials."""
        ...


class JSONStorage(StorageBackend):
    """File-based JSON storage backend.

    Layout::

        project.json
        settings.json
        assets/<paragraph_id>/audio.<ext>
        assets/<paragraph_id>/<scene_id>_<slot>.<ext>
    """

    PROJECT_FILE = "project.json"
    SETTINGS_FILE = "settings.json"
    ASSETS_DIR = "assets"

    def __init__(self, base_path: Path):
        """Initialize storage with base project path.

        Args:
            base_path: Root directory for the project
        """
        self.base_path = Path(base_path)
        self.project_file = self.base_path / self.PROJECT_FILE
        self.settings_file = self.base_path / self.SETTINGS_FILE
        self.assets_path = self.base_path / self.ASSETS_DIR
        # Asset objects already on disk, by relative path.
        self._written: dict[str, Asset] = {}

    def initialize(self) -> None:
        """Create directory structure for a new project."""
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.assets_path.mkdir(exist_ok=True)

    def project_exists(self) -> bool:
        """Check if project file exists."""
        return self.project_file.exists()

    def _write_json(self, path: Path, data: Any) -> None:
        # Write atomically
        temp_file = path.with_suffix(".tmp")
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)
        temp_file.replace(path)

    def asset_relative_path(
        self,
        paragraph_id: str,
        scene_id: Optional[str],
        slot: AssetSlot,
        mime_type: str,
    ) -> str:
        """Relative path of the file backing an asset slot."""
        stem = slot.value if scene_id is None else f"{scene_id}_{slot.value}"
        return f"{self.ASSETS_DIR}/{paragraph_id}/{stem}.{extension_for(mime_type)}"

    def get_absolute_asset_path(self, relative_path: str) -> Path:
        """Convert relative asset path to absolute."""
        return self.base_path / relative_path

    def save_project(self, project: Project) -> None:
        """Save project JSON, writing any asset payloads not yet on disk."""
        project.updated_at = datetime.now()

        expected: set[str] = set()
        for paragraph, scene, slot, asset in iter_assets(project.paragraphs):
            rel = self.asset_relative_path(paragraph.id, scene.id if scene else None, slot, asset.mime_type)
            expected.add(rel)
            if self._written.get(rel) is asset:
                continue
            path = self.get_absolute_asset_path(rel)
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as f:
                f.write(asset.data)
            self._written[rel] = asset

        self._write_json(self.project_file, project.model_dump(mode="json"))
        self._prune_assets(expected)

    def _prune_assets(self, expected: set[str]) -> None:
        """Delete asset files no longer referenced by the project."""
        if not self.assets_path.exists():
            return
        for path in list(self.assets_path.rglob("*")):
            if not path.is_file():
                continue
            rel = path.relative_to(self.base_path).as_posix()
            if rel not in expected:
                path.unlink()
                self._written.pop(rel, None)
        for directory in sorted(self.assets_path.iterdir(), reverse=True):
            if directory.is_dir() and not any(directory.iterdir()):
                directory.rmdir()

    def load_project(self) -> Project:
        """Load project from JSON file, reading asset payloads back in."""
        if not self.project_exists():
            raise FileNotFoundError(f"Project not found at {self.project_file}")

        with open(self.project_file, "r", encoding="utf-8") as f:
            data = json.load(f)

        for paragraph in data.get("paragraphs", []):
            self._attach_payload(paragraph, paragraph["id"], None, AssetSlot.AUDIO)
            for scene in paragraph.get("scenes", []):
                for slot in SCENE_SLOTS:
                    self._attach_payload(scene, paragraph["id"], scene["id"], slot)

        return Project.model_validate(data)

    def _attach_payload(
        self,
        node: dict,
        paragraph_id: str,
        scene_id: Optional[str],
        slot: AssetSlot,
    ) -> None:
        status_field, asset_field, error_field = SLOT_FIELDS[slot]
        asset = node.get(asset_field)
        if not asset:
            return

        rel = self.asset_relative_path(paragraph_id, scene_id, slot, asset["mime_type"])
        path = self.get_absolute_asset_path(rel)
        if not path.exists():
            logger.warning("Asset file missing, resetting %s: %s", asset_field, rel)
            node[asset_field] = None
            node[status_field] = GenerationStatus.IDLE.value
            node[error_field] = None
            return

        asset["data"] = path.read_bytes()

    def loaded_asset(self, relative_path: str, asset: Asset) -> None:
        """Record that ``asset`` is already stored at ``relative_path``."""
        self._written[relative_path] = asset

    def save_settings(self, settings: GenerationSettings) -> None:
        """Save generation settings without credentials."""
        self.base_path.mkdir(parents=True, exist_ok=True)
        self._write_json(self.settings_file, settings.model_dump(mode="json", exclude={"credentials"}))

    def load_settings(self, credentials: Optional[Credentials] = None) -> GenerationSettings:
        """Load settings, falling back to defaults if none were saved."""
        data: dict[str, Any] = {}
        if self.settings_file.exists():
            with open(self.settings_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        data.pop("credentials", None)
        return GenerationSettings(**data, credentials=credentials or Credentials())


class ProjectManager:
    """High-level project management interface."""

    def __init__(self, storage: JSONStorage):
        """Initialize with a storage backend."""
        self.storage = storage
        self._project: Optional[Project] = None

    @classmethod
    def create(
        cls,
        path: Path,
        name: str,
        source_text: str = "",
        project_id: Optional[str] = None,
    ) -> "ProjectManager":
        """Create a new project.

        Args:
            path: Directory for the project
            name: Project name
            source_text: Raw story text
            project_id: Project ID (generated if omitted)

        Returns:
            ProjectManager instance
        """
        storage = JSONStorage(path)
        storage.initialize()

        manager = cls(storage)
        manager._project = Project(name=name, source_text=source_text)
        if project_id:
            manager._project.id = project_id
        manager.save()
        return manager

    @classmethod
    def load(cls, path: Path) -> "ProjectManager":
        """Load an existing project.

        Args:
            path: Directory containing the project

        Returns:
            ProjectManager instance
        """
        storage = JSONStorage(path)
        manager = cls(storage)
        manager._project = storage.load_project()
        for paragraph, scene, slot, asset in iter_assets(manager._project.paragraphs):
            rel = storage.asset_relative_path(paragraph.id, scene.id if scene else None, slot, asset.mime_type)
            storage.loaded_asset(rel, asset)
        return manager

    @classmethod
    def exists(cls, path: Path) -> bool:
        """Check if a project exists at path."""
        return JSONStorage(path).project_exists()

    @property
    def path(self) -> Path:
        return self.storage.base_path

    @property
    def project(self) -> Project:
        """Get the current project."""
        if self._project is None:
            raise RuntimeError("No project loaded")
        return self._project

    def save(self) -> None:
        """Save the current project."""
        if self._project is None:
            raise RuntimeError("No project to save")
        self.storage.save_project(self._project)

    def load_settings(self, credentials: Optional[Credentials] = None) -> GenerationSettings:
        """Load the project's settings, with credentials from the environment by default."""
        return self.storage.load_settings(credentials if credentials is not None else Credentials.from_env())

    def save_settings(self, settings: GenerationSettings) -> None:
        self.storage.save_settings(settings)
