"""Project routes."""

import logging
import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status

from storyreel_core_schemas import GenerationSettings, ProjectStatus, slugify
from storyreel_providers import ProviderRegistry
from storyreel_services import ProjectService, ValidationError
from storyreel_api.deps import (
    get_idle_project_service,
    get_project_service,
    get_registry,
    get_settings,
    verify_token,
)
from storyreel_api.schemas import (
    CreateProjectRequest,
    ErrorResponse,
    PaginatedResponse,
    PaginationMeta,
    ProjectDetailResponse,
    ProjectResponse,
    ProjectStatusResponse,
    SegmentRequest,
    SegmentResponse,
    SettingsResponse,
    SettingsUpdate,
    StoryboardRequest,
    project_to_detail,
    project_to_response,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["Projects"])


def _settings_response(settings: GenerationSettings) -> SettingsResponse:
    return SettingsResponse(**settings.model_dump(exclude={"credentials"}))


@router.get(
    "",
    response_model=PaginatedResponse[ProjectResponse],
    responses={401: {"model": ErrorResponse}},
)
async def list_projects(
    token: Annotated[Optional[str], Depends(verify_token)],
    status_filter: Optional[ProjectStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    """List all projects."""
    projects_dir = get_settings().projects_dir

    if not projects_dir.exists():
        return PaginatedResponse(
            data=[],
            pagination=PaginationMeta(total=0, limit=limit, offset=offset, has_more=False),
        )

    projects = []
    for path in projects_dir.iterdir():
        if path.is_dir() and (path / "project.json").exists():
            try:
                project = ProjectService(path).get()
            except (OSError, ValueError) as e:
                logger.warning("Skipping unreadable project at %s: %s", path, e)
                continue
            if status_filter is None or project.status == status_filter:
                projects.append(project_to_response(project))

    projects.sort(key=lambda p: p.updated_at, reverse=True)

    total = len(projects)
    return PaginatedResponse(
        data=projects[offset:offset + limit],
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + limit < total,
        ),
    )


@router.post(
    "",
    response_model=ProjectDetailResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def create_project(
    request: CreateProjectRequest,
    token: Annotated[Optional[str], Depends(verify_token)],
    registry: ProviderRegistry = Depends(get_registry),
):
    """Create a new project from story text."""
    projects_dir = get_settings().projects_dir
    projects_dir.mkdir(parents=True, exist_ok=True)

    project_id = slugify(request.name) or uuid.uuid4().hex[:8]
    project_path = projects_dir / project_id
    if project_path.exists():
        raise ValidationError(f"Project '{project_id}' already exists", field="name")

    settings = GenerationSettings()
    if request.settings:
        try:
            settings = GenerationSettings(**request.settings.model_dump(exclude_none=True))
        except ValueError as e:
            raise ValidationError(str(e), field="settings") from e

    service = ProjectService(project_path, registry=registry)
    project = service.create(
        request.name,
        source_text=request.story_text,
        settings=settings,
        project_id=project_id,
    )
    return project_to_detail(project)


@router.get(
    "/{project_id}",
    response_model=ProjectDetailResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_project(
    token: Annotated[Optional[str], Depends(verify_token)],
    service: ProjectService = Depends(get_project_service),
):
    """Get project details including the paragraph tree and asset statuses."""
    return project_to_detail(service.manager.project)


@router.get(
    "/{project_id}/status",
    response_model=ProjectStatusResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_project_status(
    token: Annotated[Optional[str], Depends(verify_token)],
    service: ProjectService = Depends(get_project_service),
):
    """Get per-kind asset status counts."""
    return ProjectStatusResponse(**service.get_status())


@router.get(
    "/{project_id}/settings",
    response_model=SettingsResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_project_settings(
    token: Annotated[Optional[str], Depends(verify_token)],
    service: ProjectService = Depends(get_project_service),
):
    """Get generation settings."""
    return _settings_response(service.get_settings())


@router.put(
    "/{project_id}/settings",
    response_model=SettingsResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def update_project_settings(
    request: SettingsUpdate,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: ProjectService = Depends(get_idle_project_service),
):
    """Update generation settings. A new scene count applies at the next storyboard."""
    settings = service.update_settings(**request.model_dump(exclude_none=True))
    return _settings_response(settings)


@router.post(
    "/{project_id}/segment",
    response_model=SegmentResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def segment_project(
    token: Annotated[Optional[str], Depends(verify_token)],
    request: SegmentRequest = SegmentRequest(),
    service: ProjectService = Depends(get_idle_project_service),
):
    """Split the story into paragraphs.

    Remote segmentation failures fall back to splitting on blank lines.
    """
    result = await service.segment(method=request.method, text=request.text)
    return SegmentResponse(
        paragraphs=result.paragraphs,
        method=result.method,
        used_fallback=result.used_fallback,
        fallback_reason=result.fallback_reason,
    )


@router.post(
    "/{project_id}/storyboard",
    response_model=ProjectDetailResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def storyboard_project(
    token: Annotated[Optional[str], Depends(verify_token)],
    request: StoryboardRequest = StoryboardRequest(),
    service: ProjectService = Depends(get_idle_project_service),
):
    """Commit scenes (if the segments or scene count changed) and write frame prompts."""
    project = await service.storyboard(overwrite=request.overwrite)
    return project_to_detail(project)
