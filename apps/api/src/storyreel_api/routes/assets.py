"""Asset routes."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Response

from storyreel_core_schemas import SLOT_FIELDS, AssetSlot
from storyreel_services import AssetStateStore, NotFoundError, ProjectService, ValidationError
from storyreel_api.deps import get_project_service, verify_token
from storyreel_api.schemas import ErrorResponse

router = APIRouter(prefix="/projects/{project_id}/assets", tags=["Assets"])


@router.get(
    "/{paragraph_id}/{slot}",
    response_class=Response,
    responses={
        200: {"content": {"image/png": {}, "audio/wav": {}, "video/mp4": {}}},
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def get_asset(
    paragraph_id: str,
    slot: AssetSlot,
    token: Annotated[Optional[str], Depends(verify_token)],
    scene_id: Optional[str] = Query(None, description="Scene ID (required for start, end and video)"),
    service: ProjectService = Depends(get_project_service),
):
    """Download one generated asset.

    Audio is addressed by paragraph; frames and videos also need ``scene_id``.
    """
    store = AssetStateStore(service.manager.project.paragraphs)

    if slot == AssetSlot.AUDIO:
        node = store.get_paragraph(paragraph_id)
    elif scene_id is None:
        raise ValidationError(f"scene_id is required for the {slot.value} asset", field="scene_id")
    else:
        node = store.get_scene(paragraph_id, scene_id)

    asset = getattr(node, SLOT_FIELDS[slot][1])
    if asset is None:
        raise NotFoundError("Asset", f"{paragraph_id}/{scene_id + '/' if scene_id else ''}{slot.value}")

    return Response(content=asset.data, media_type=asset.mime_type)
