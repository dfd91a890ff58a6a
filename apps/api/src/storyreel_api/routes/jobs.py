"""Job routes."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from storyreel_services import JobService, JobStatus
from storyreel_api.deps import get_jobs, verify_token
from storyreel_api.schemas import (
    ErrorResponse,
    JobStatusResponse,
    PaginatedResponse,
    PaginationMeta,
    job_to_response,
)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.get(
    "",
    response_model=PaginatedResponse[JobStatusResponse],
    responses={401: {"model": ErrorResponse}},
)
async def list_jobs(
    token: Annotated[Optional[str], Depends(verify_token)],
    status_filter: Optional[JobStatus] = Query(None, alias="status"),
    job_type: Optional[str] = Query(None, alias="type"),
    project_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    jobs: JobService = Depends(get_jobs),
):
    """List all jobs."""
    page, total = jobs.list_jobs(
        status=status_filter,
        job_type=job_type,
        project_id=project_id,
        limit=limit,
        offset=offset,
    )

    return PaginatedResponse(
        data=[job_to_response(j) for j in page],
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + limit < total,
        ),
    )


@router.get(
    "/{job_id}",
    response_model=JobStatusResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_job(
    job_id: str,
    token: Annotated[Optional[str], Depends(verify_token)],
    jobs: JobService = Depends(get_jobs),
):
    """Get job status."""
    job = jobs.get_job(job_id)

    if not job:
        raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found")

    return job_to_response(job)


@router.delete(
    "/{job_id}",
    response_model=JobStatusResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def cancel_job(
    job_id: str,
    token: Annotated[Optional[str], Depends(verify_token)],
    jobs: JobService = Depends(get_jobs),
):
    """Cancel a running job."""
    job = jobs.get_job(job_id)

    if not job:
        raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found")

    if not job.status.is_active:
        raise HTTPException(
            status_code=409,
            detail=f"Job cannot be cancelled (status: {job.status.value})",
        )

    jobs.cancel_job(job_id)
    return job_to_response(job)
