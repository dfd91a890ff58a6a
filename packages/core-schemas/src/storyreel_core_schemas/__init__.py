"""Core domain models for StoryReel."""

from storyreel_core_schemas.models import (
    # Enums
    AspectRatio,
    AssetSlot,
    AudioProvider,
    GenerationStatus,
    ImageProvider,
    ProjectStatus,
    SegmentationMethod,
    VideoProvider,
    # Domain Models
    Asset,
    Credentials,
    GenerationSettings,
    Paragraph,
    Project,
    Scene,
    ScenePrompt,
    # Constants
    SLOT_FIELDS,
    STYLES,
    VOICES,
    # Utilities
    check_payload_invariant,
    extension_for,
    mime_for_extension,
    new_id,
    slugify,
)
from storyreel_core_schemas.exceptions import (
    ProviderError,
    ProviderErrorKind,
    ProviderTimeoutError,
    SegmentationError,
)

__all__ = [
    # Enums
    "AspectRatio",
    "AssetSlot",
    "AudioProvider",
    "GenerationStatus",
    "ImageProvider",
    "ProjectStatus",
    "SegmentationMethod",
    "VideoProvider",
    # Domain Models
    "Asset",
    "Credentials",
    "GenerationSettings",
    "Paragraph",
    "Project",
    "Scene",
    "ScenePrompt",
    # Constants
    "SLOT_FIELDS",
    "STYLES",
    "VOICES",
    # Utilities
    "check_payload_invariant",
    "extension_for",
    "mime_for_extension",
    "new_id",
    "slugify",
    # Exceptions
    "ProviderError",
    "ProviderErrorKind",
    "ProviderTimeoutError",
    "SegmentationError",
]
