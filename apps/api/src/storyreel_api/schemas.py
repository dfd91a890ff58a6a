"""API request/response schemas."""

from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from storyreel_core_schemas import (
    AspectRatio,
    AssetSlot,
    AudioProvider,
    ImageProvider,
    Paragraph,
    Project,
    ProjectStatus,
    SegmentationMethod,
    VideoProvider,
)
from storyreel_services import Job

T = TypeVar("T")


# Pagination
class PaginationMeta(BaseModel):
    """Pagination metadata."""

    total: int
    limit: int
    offset: int
    has_more: bool


class PaginatedResponse(BaseModel, Generic[T]):
    """Paginated response wrapper."""

    data: list[T]
    pagination: PaginationMeta


# Error responses
class ErrorDetail(BaseModel):
    """Error detail."""

    code: str
    message: str
    field: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error response."""

    error: ErrorDetail


# Job responses
class JobResponse(BaseModel):
    """Job response for async operations."""

    job_id: str
    type: str
    status: str
    created_at: datetime
    metadata: dict = Field(default_factory=dict)


class JobStatusResponse(BaseModel):
    """Job status response."""

    id: str
    type: str
    project_id: Optional[str] = None
    status: str
    progress: int = 0
    total: int = 0
    percent: int = 0
    result: Optional[Any] = None
    error: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    metadata: dict = Field(default_factory=dict)


# Settings
class SettingsUpdate(BaseModel):
    """Generation settings changes. Unset fields keep their current value."""

    scene_count: Optional[int] = Field(None, ge=1, le=20)
    aspect_ratio: Optional[AspectRatio] = None
    style: Optional[str] = None
    voice: Optional[str] = None
    generate_audio: Optional[bool] = None
    generate_video: Optional[bool] = None
    segmentation_method: Optional[SegmentationMethod] = None
    image_provider: Optional[ImageProvider] = None
    audio_provider: Optional[AudioProvider] = None
    video_provider: Optional[VideoProvider] = None


class SettingsResponse(BaseModel):
    """Generation settings (credentials are never returned)."""

    scene_count: int
    aspect_ratio: AspectRatio
    style: str
    voice: str
    generate_audio: bool
    generate_video: bool
    segmentation_method: SegmentationMethod
    image_provider: ImageProvider
    audio_provider: AudioProvider
    video_provider: VideoProvider


# Project requests/responses
class CreateProjectRequest(BaseModel):
    """Create project request."""

    name: str = Field(..., min_length=1, max_length=100)
    story_text: str = Field(..., min_length=1)
    settings: Optional[SettingsUpdate] = None


class ProjectResponse(BaseModel):
    """Project summary."""

    id: str
    name: str
    status: ProjectStatus
    created_at: datetime
    updated_at: datetime
    segment_count: int
    paragraph_count: int
    scene_count: int


class ProjectDetailResponse(ProjectResponse):
    """Project with its full paragraph tree. Asset payloads are served separately."""

    source_text: str
    segments: list[str]
    paragraphs: list[Paragraph]


class ProjectStatusResponse(BaseModel):
    """Project status response."""

    project_id: str
    project_name: str
    status: str
    segments: int
    paragraphs: int
    scenes: int
    assets: dict[str, dict[str, int]]


class SegmentRequest(BaseModel):
    """Segment story request."""

    method: Optional[SegmentationMethod] = None
    text: Optional[str] = Field(None, min_length=1)


class SegmentResponse(BaseModel):
    """Segmentation result."""

    paragraphs: list[str]
    method: SegmentationMethod
    used_fallback: bool
    fallback_reason: Optional[str] = None


class StoryboardRequest(BaseModel):
    """Storyboard request."""

    overwrite: bool = False


class GenerateRequest(BaseModel):
    """Generation pass request."""

    concurrency: int = Field(1, ge=1, le=8, description="Paragraphs processed at once")


class RegenerateRequest(BaseModel):
    """Single-asset regeneration request."""

    paragraph_id: str
    scene_id: Optional[str] = None
    slot: AssetSlot


def project_to_response(project: Project) -> ProjectResponse:
    """Convert Project model to response."""
    return ProjectResponse(
        id=project.id,
        name=project.name,
        status=project.status,
        created_at=project.created_at,
        updated_at=project.updated_at,
        segment_count=len(project.segments),
        paragraph_count=len(project.paragraphs),
        scene_count=sum(len(p.scenes) for p in project.paragraphs),
    )


def project_to_detail(project: Project) -> ProjectDetailResponse:
    """Convert Project model to a detailed response."""
    return ProjectDetailResponse(
        **project_to_response(project).model_dump(),
        source_text=project.source_text,
        segments=project.segments,
        paragraphs=project.paragraphs,
    )


def job_to_response(job: Job) -> JobStatusResponse:
    """Convert Job to response."""
    return JobStatusResponse(
        id=job.id,
        type=job.type,
        project_id=job.project_id,
        status=job.status.value,
        progress=job.progress,
        total=job.total,
        percent=job.percent,
        result=job.result,
        error=job.error,
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
        metadata=job.metadata,
    )


def job_to_accepted(job: Job) -> JobResponse:
    """Convert a just-started Job to a 202 response body."""
    return JobResponse(
        job_id=job.id,
        type=job.type,
        status=job.status.value,
        created_at=job.created_at,
        metadata=job.metadata,
    )
