"""Generation and export routes."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Response, status

from storyreel_providers import ProviderRegistry
from storyreel_services import (
    ArchiveExporter,
    GenerationService,
    JobService,
    ProjectService,
    ValidationError,
)
from storyreel_api.deps import get_jobs, get_project_service, get_registry, verify_token
from storyreel_api.schemas import (
    ErrorResponse,
    GenerateRequest,
    JobResponse,
    RegenerateRequest,
    job_to_accepted,
)

router = APIRouter(prefix="/projects/{project_id}", tags=["Generation"])


def _require_paragraphs(service: ProjectService) -> None:
    if not service.manager.project.paragraphs:
        raise ValidationError("Project has no paragraphs. Run storyboard first.", field="paragraphs")


@router.post(
    "/generate",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def generate_assets(
    project_id: str,
    token: Annotated[Optional[str], Depends(verify_token)],
    request: GenerateRequest = GenerateRequest(),
    service: ProjectService = Depends(get_project_service),
    registry: ProviderRegistry = Depends(get_registry),
    jobs: JobService = Depends(get_jobs),
):
    """Start a generation pass.

    Generates every narration, frame and video that has not succeeded yet.
    Returns 409 if the project already has a running job.
    """
    _require_paragraphs(service)
    jobs.ensure_idle(project_id)
    generation = GenerationService(
        service.manager,
        settings=service.get_settings(),
        registry=registry,
        paragraph_concurrency=request.concurrency,
    )
    job = jobs.create_job(
        "generate",
        project_id=project_id,
        metadata={"concurrency": request.concurrency},
    )

    def on_progress(completed: int, total: int, percent: int) -> None:
        jobs.update_progress(job.id, completed, total, percent)

    jobs.start_job(job, generation.generate(on_progress=on_progress))
    return job_to_accepted(job)


@router.post(
    "/regenerate",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def regenerate_asset(
    project_id: str,
    request: RegenerateRequest,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: ProjectService = Depends(get_project_service),
    registry: ProviderRegistry = Depends(get_registry),
    jobs: JobService = Depends(get_jobs),
):
    """Regenerate one asset.

    Regenerating a start or end frame also regenerates the scene's video.
    """
    _require_paragraphs(service)
    generation = GenerationService(service.manager, settings=service.get_settings(), registry=registry)
    generation.orchestrator.check_node(request.paragraph_id, request.scene_id, request.slot)

    job = jobs.create_job(
        "regenerate",
        project_id=project_id,
        metadata={
            "paragraph_id": request.paragraph_id,
            "scene_id": request.scene_id,
            "slot": request.slot.value,
        },
    )

    def on_progress(completed: int, total: int, percent: int) -> None:
        jobs.update_progress(job.id, completed, total, percent)

    jobs.start_job(
        job,
        generation.regenerate(request.paragraph_id, request.scene_id, request.slot, on_progress=on_progress),
    )
    return job_to_accepted(job)


@router.get(
    "/export",
    response_class=Response,
    responses={
        200: {"content": {"application/zip": {}}},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def export_project(
    project_id: str,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: ProjectService = Depends(get_project_service),
):
    """Download the story text and every generated asset as a ZIP archive."""
    data = ArchiveExporter().build(service.manager.project.paragraphs)
    return Response(
        content=data,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{project_id}.zip"'},
    )
