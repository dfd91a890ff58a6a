"""API dependencies."""

from pathlib import Path
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status

from storyreel_providers import ProviderRegistry
from storyreel_services import JobService, ProjectService, get_job_service


# Configuration
class Settings:
    """API settings."""

    projects_dir: Path = Path("./projects")
    api_keys: set[str] = set()  # Empty = no auth required
    require_auth: bool = False


settings = Settings()


def get_settings() -> Settings:
    """Get API settings."""
    return settings


# Authentication
async def verify_token(
    authorization: Annotated[Optional[str], Header()] = None,
    settings: Settings = Depends(get_settings),
) -> Optional[str]:
    """Verify bearer token if auth is required.

    Returns:
        The token if valid, None if auth not required
    """
    if not settings.require_auth:
        return None

    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = parts[1]
    if settings.api_keys and token not in settings.api_keys:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return token


_registry: Optional[ProviderRegistry] = None


def get_registry() -> ProviderRegistry:
    """Get the provider registry shared by all requests."""
    global _registry
    if _registry is None:
        _registry = ProviderRegistry()
    return _registry


# Project loading
def get_project_path(project_id: str) -> Path:
    """Get project path from ID.

    Validates that the path stays within the projects directory
    to prevent path traversal attacks.

    Raises:
        HTTPException: If project_id would escape projects_dir
    """
    projects_dir = settings.projects_dir.resolve()
    project_path = (projects_dir / project_id).resolve()

    try:
        project_path.relative_to(projects_dir)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid project ID",
        )

    return project_path


def get_project_service(
    project_id: str,
    registry: ProviderRegistry = Depends(get_registry),
) -> ProjectService:
    """Get a project service with the project loaded.

    Raises:
        NotFoundError: If the project does not exist
    """
    service = ProjectService(get_project_path(project_id), registry=registry)
    service.load()
    return service


def get_jobs() -> JobService:
    """Get the job service."""
    return get_job_service()


def get_idle_project_service(
    project_id: str,
    registry: ProviderRegistry = Depends(get_registry),
    jobs: JobService = Depends(get_jobs),
) -> ProjectService:
    """Get a project service for a request that rewrites the project.

    Raises:
        RunInProgressError: If a job is generating assets for the project
        NotFoundError: If the project does not exist
    """
    jobs.ensure_idle(project_id)
    return get_project_service(project_id, registry=registry)
