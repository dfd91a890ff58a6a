"""StoryReel API application."""

from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storyreel_services import (
    ExportError,
    NotFoundError,
    RunInProgressError,
    ServiceError,
    ValidationError,
)
from .deps import settings
from .routes import (
    assets_router,
    generation_router,
    jobs_router,
    projects_router,
)


def _error(status_code: int, exc: ServiceError, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                **extra,
            }
        },
    )


def create_app(
    projects_dir: Optional[Path] = None,
    require_auth: bool = False,
    api_keys: Optional[set[str]] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        projects_dir: Directory for storing projects
        require_auth: Whether to require authentication
        api_keys: Set of valid API keys

    Returns:
        FastAPI application
    """
    if projects_dir:
        settings.projects_dir = projects_dir
    settings.require_auth = require_auth
    if api_keys:
        settings.api_keys = api_keys

    settings.projects_dir.mkdir(parents=True, exist_ok=True)

    app = FastAPI(
        title="StoryReel API",
        description="""
Turn a story into narrated scenes, start/end frames and transition videos.

## Workflow

1. Create a project from story text (`POST /projects`)
2. Adjust generation settings (`PUT /projects/{id}/settings`)
3. Split the story into paragraphs (`POST /projects/{id}/segment`)
4. Commit scenes and write frame prompts (`POST /projects/{id}/storyboard`)
5. Generate narration, frames and videos (`POST /projects/{id}/generate`)
6. Download assets or the whole archive (`GET /projects/{id}/export`)

## Asset Dependencies

- A scene's video needs both its start and end frames; otherwise it is skipped
- Regenerating a frame also regenerates the scene's video
- Assets that already succeeded are never regenerated by a generation pass

## Async Operations

Generation returns `202 Accepted` with a job resource.
Poll the job status endpoint (`GET /jobs/{id}`) for completion.
Only one generation job can run per project at a time.
""",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(404, exc)

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return _error(400, exc, field=exc.field)

    @app.exception_handler(RunInProgressError)
    async def run_in_progress_handler(request: Request, exc: RunInProgressError):
        return _error(409, exc)

    @app.exception_handler(ExportError)
    async def export_error_handler(request: Request, exc: ExportError):
        return _error(500, exc)

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        return _error(500, exc)

    app.include_router(projects_router)
    app.include_router(generation_router)
    app.include_router(assets_router)
    app.include_router(jobs_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


# Default app instance for uvicorn
app = create_app()
