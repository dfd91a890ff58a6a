"""StoryReel Services - Shared business logic for CLI and API.

Primary Services:
- ProjectService: Project creation, segmentation, commit and storyboard
- GenerationService: Asset generation for a stored project
- GenerationOrchestrator: Dependency-ordered, resumable generation passes
- ArchiveExporter: ZIP export of paragraphs and assets
- JobService: Background job management
"""

from .exceptions import (
    ExportError,
    NotFoundError,
    RunInProgressError,
    ServiceError,
    ValidationError,
)
from .export import ArchiveExporter
from .generation import GenerationService
from .job import Job, JobService, JobStatus, get_job_service
from .orchestrator import GenerationOrchestrator, PassResult, TaskResult, progress_percent
from .project import ProjectService, status_counts
from .segmentation import SegmentationResult, SegmentationService, split_paragraphs
from .state import AssetStateStore
from .storyboard import StoryboardService, commit_paragraphs, fallback_prompts

__all__ = [
    # Services
    "ArchiveExporter",
    "GenerationOrchestrator",
    "GenerationService",
    "JobService",
    "ProjectService",
    "SegmentationService",
    "StoryboardService",
    "get_job_service",
    # State and results
    "AssetStateStore",
    "Job",
    "JobStatus",
    "PassResult",
    "SegmentationResult",
    "TaskResult",
    # Helpers
    "commit_paragraphs",
    "fallback_prompts",
    "progress_percent",
    "split_paragraphs",
    "status_counts",
    # Exceptions
    "ExportError",
    "NotFoundError",
    "RunInProgressError",
    "ServiceError",
    "ValidationError",
]
