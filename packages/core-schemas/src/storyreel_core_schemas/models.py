"""Core data models for StoryReel."""

import os
import re
import uuid
from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def slugify(text: str) -> str:
    """Convert text to a URL-friendly slug."""
    text = text.lower().strip()
    text = re.sub(r'[^\w\s-]', '', text)
    text = re.sub(r'[\s_-]+', '-', text)
    return text.strip('-')[:40]


def new_id(prefix: str) -> str:
    """Generate a short unique node id."""
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


class GenerationStatus(str, Enum):
    """Status of a single generated asset."""

    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationStatus.SUCCESS, GenerationStatus.ERROR, GenerationStatus.SKIPPED)


class ProjectStatus(str, Enum):
    """Project status."""

    DRAFT = "draft"
    SEGMENTED = "segmented"
    STORYBOARDED = "storyboarded"
    GENERATING = "generating"
    COMPLETED = "completed"


class AspectRatio(str, Enum):
    """Supported output aspect ratios."""

    SQUARE = "1:1"
    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"
    STANDARD = "4:3"
    STANDARD_PORTRAIT = "3:4"

    @property
    def ratio(self) -> float:
        width, height = self.value.split(":")
        return int(width) / int(height)

    @property
    def is_portrait(self) -> bool:
        return self.ratio < 1


class ImageProvider(str, Enum):
    """Image generation backend."""

    GEMINI_FLASH = "gemini-2.5-flash-image"
    IMAGEN_3 = "imagen-3.0-generate-001"
    IMAGEN_4 = "imagen-4.0-generate-001"
    LEONARDO = "leonardo-ai"


class AudioProvider(str, Enum):
    """Narration backend."""

    GEMINI_TTS = "gemini-tts"
    ELEVENLABS = "elevenlabs"


class VideoProvider(str, Enum):
    """Transition video backend."""

    VEO = "veo"
    KLING = "kling"
    HAILUO = "hailuo"
    SORA = "sora"


class SegmentationMethod(str, Enum):
    """How story text is split into paragraphs."""

    SIMPLE = "simple"
    GEMINI = "gemini"
    GPT4 = "gpt4"


class AssetSlot(str, Enum):
    """Addressable asset positions in the story tree."""

    AUDIO = "audio"
    START = "start"
    END = "end"
    VIDEO = "video"


STYLES = [
    "Cinematic",
    "Realistic",
    "Anime",
    "3D Render",
    "Pixar",
    "Illustration",
    "Oil Painting",
    "Watercolor",
    "Cyberpunk",
    "Sketch",
    "Fantasy",
    "Drawing",
    "Line Art",
    "Vintage",
]

VOICES = ["Fenrir", "Kore", "Puck", "Charon", "Zephyr"]

MIME_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "video/mp4": "mp4",
    "video/webm": "webm",
}


def extension_for(mime_type: str) -> str:
    """File extension (without dot) for a mime type."""
    if mime_type in MIME_EXTENSIONS:
        return MIME_EXTENSIONS[mime_type]
    subtype = mime_type.split("/")[-1].split(";")[0]
    return subtype or "bin"


def mime_for_extension(extension: str) -> str:
    """Inverse of extension_for for the known types."""
    extension = extension.lstrip(".").lower()
    for mime, ext in MIME_EXTENSIONS.items():
        if ext == extension:
            return mime
    return "application/octet-stream"


# === Core Models ===


class Asset(BaseModel):
    """A generated binary artifact.

    Assets are immutable: regeneration attaches a new Asset rather than
    mutating an existing one. The payload is kept out of JSON dumps; the
    storage layer writes it to its own file.
    """

    model_config = ConfigDict(frozen=True)

    mime_type: str
    data: bytes = Field(exclude=True, repr=False)

    @property
    def extension(self) -> str:
        return extension_for(self.mime_type)

    @property
    def size(self) -> int:
        return len(self.data)


class ScenePrompt(BaseModel):
    """Start/end frame descriptions for one scene."""

    start: str = Field(description="Visual description of the opening frame")
    end: str = Field(description="Visual description of the closing frame")


class Scene(BaseModel):
    """One visual beat of a paragraph: a start frame, an end frame and a transition video."""

    id: str = Field(default_factory=lambda: new_id("scene"))
    start_prompt: str = ""
    end_prompt: str = ""
    start_image_status: GenerationStatus = GenerationStatus.IDLE
    end_image_status: GenerationStatus = GenerationStatus.IDLE
    video_status: GenerationStatus = GenerationStatus.IDLE
    start_image: Optional[Asset] = None
    end_image: Optional[Asset] = None
    video: Optional[Asset] = None
    start_image_error: Optional[str] = None
    end_image_error: Optional[str] = None
    video_error: Optional[str] = None

    @property
    def error_msg(self) -> Optional[str]:
        """First error recorded on this scene, if any."""
        return self.start_image_error or self.end_image_error or self.video_error


class Paragraph(BaseModel):
    """One narrative unit of the story; narration audio is generated per paragraph."""

    id: str = Field(default_factory=lambda: new_id("para"))
    text: str
    scenes: list[Scene] = Field(default_factory=list)
    audio_status: GenerationStatus = GenerationStatus.IDLE
    audio: Optional[Asset] = None
    audio_error: Optional[str] = None

    def get_scene(self, scene_id: str) -> Optional[Scene]:
        """Get a scene by ID."""
        for scene in self.scenes:
            if scene.id == scene_id:
                return scene
        return None


# Which status/asset/error fields back each slot.
SLOT_FIELDS: dict[AssetSlot, tuple[str, str, str]] = {
    AssetSlot.AUDIO: ("audio_status", "audio", "audio_error"),
    AssetSlot.START: ("start_image_status", "start_image", "start_image_error"),
    AssetSlot.END: ("end_image_status", "end_image", "end_image_error"),
    AssetSlot.VIDEO: ("video_status", "video", "video_error"),
}


def check_payload_invariant(node: BaseModel) -> None:
    """Raise ValueError if a payload is present without success, or vice versa."""
    for status_field, asset_field, _ in SLOT_FIELDS.values():
        if not hasattr(node, status_field):
            continue
        status = getattr(node, status_field)
        asset = getattr(node, asset_field)
        if (status == GenerationStatus.SUCCESS) != (asset is not None):
            raise ValueError(
                f"{type(node).__name__} {getattr(node, 'id', '?')}: "
                f"{asset_field} must be present iff {status_field} is success "
                f"(status={status.value}, asset={'set' if asset is not None else 'missing'})"
            )


class Credentials(BaseModel):
    """Per-provider API credentials. Never persisted by the storage layer."""

    google: Optional[str] = None
    leonardo: Optional[str] = None
    elevenlabs: Optional[str] = None
    kling: Optional[str] = None
    hailuo: Optional[str] = None
    openai: Optional[str] = None

    ENV_VARS: ClassVar[dict[str, str]] = {
        "google": "GOOGLE_API_KEY",
        "leonardo": "LEONARDO_API_KEY",
        "elevenlabs": "ELEVENLABS_API_KEY",
        "kling": "KLING_API_KEY",
        "hailuo": "HAILUO_API_KEY",
        "openai": "OPENAI_API_KEY",
    }

    @classmethod
    def from_env(cls) -> "Credentials":
        """Read credentials from the environment."""
        return cls(**{
            name: os.environ.get(var) or None
            for name, var in cls.ENV_VARS.items()
        })

    def merged(self, other: "Credentials") -> "Credentials":
        """Return credentials where values set on ``other`` take precedence."""
        values = self.model_dump()
        values.update({k: v for k, v in other.model_dump().items() if v})
        return Credentials(**values)

    def configured(self) -> list[str]:
        """Names of the credential slots that have a value."""
        return [name for name, value in self.model_dump().items() if value]


class GenerationSettings(BaseModel):
    """Read-only configuration for a generation pass."""

    model_config = ConfigDict(frozen=True)

    scene_count: int = Field(default=3, ge=1, le=20)
    aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE
    style: str = "Cinematic"
    voice: str = "Fenrir"
    generate_audio: bool = True
    generate_video: bool = True
    segmentation_method: SegmentationMethod = SegmentationMethod.GEMINI
    image_provider: ImageProvider = ImageProvider.GEMINI_FLASH
    audio_provider: AudioProvider = AudioProvider.GEMINI_TTS
    video_provider: VideoProvider = VideoProvider.VEO
    credentials: Credentials = Field(default_factory=Credentials)

    @field_validator("style")
    @classmethod
    def _known_style(cls, value: str) -> str:
        for style in STYLES:
            if style.lower() == value.strip().lower():
                return style
        raise ValueError(f"Unknown style '{value}'. Choose from: {', '.join(STYLES)}")

    @field_validator("voice")
    @classmethod
    def _non_empty_voice(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("voice must not be empty")
        return value


class Project(BaseModel):
    """Root project container."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    name: str
    source_text: str = ""
    segments: list[str] = Field(default_factory=list)
    scene_count: Optional[int] = None
    paragraphs: list[Paragraph] = Field(default_factory=list)
    status: ProjectStatus = ProjectStatus.DRAFT
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def get_paragraph(self, paragraph_id: str) -> Optional[Paragraph]:
        """Get a paragraph by ID."""
        for paragraph in self.paragraphs:
            if paragraph.id == paragraph_id:
                return paragraph
        return None
