"""Storage backends for StoryReel."""

from storyreel_storage.storage import JSONStorage, ProjectManager, StorageBackend, iter_assets

__all__ = ["JSONStorage", "ProjectManager", "StorageBackend", "iter_assets"]
