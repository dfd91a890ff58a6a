"""Scene commit and storyboard prompt generation."""

import logging
from typing import Callable, Literal, Optional

from storyreel_core_schemas import (
    GenerationSettings,
    GenerationStatus,
    Paragraph,
    ProviderError,
    Scene,
    ScenePrompt,
)
from storyreel_providers import ProviderRegistry

from .exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def fallback_prompts(paragraph_text: str, count: int) -> list[ScenePrompt]:
    """Deterministic prompts used when the prompt writer is unavailable."""
    return [
        ScenePrompt(start=f"Scene from: {paragraph_text[:20]}...", end="Camera zooms out.")
        for _ in range(count)
    ]


def commit_paragraphs(
    segments: list[str],
    scene_count: int,
    previous: Optional[list[Paragraph]] = None,
) -> list[Paragraph]:
    """Build a fresh paragraph tree with ``scene_count`` idle scenes per paragraph.

    A paragraph whose text matches one in ``previous`` keeps its id and its
    narration, since audio does not depend on the scene layout. Scenes are
    never carried over.

    Raises:
        ValidationError: If there are no segments or scene_count < 1
    """
    if scene_count < 1:
        raise ValidationError("Scene count must be at least 1", field="scene_count")
    texts = [s.strip() for s in segments if s and s.strip()]
    if not texts:
        raise ValidationError("No paragraphs to commit", field="segments")

    previous_by_text: dict[str, Paragraph] = {}
    for paragraph in previous or []:
        previous_by_text.setdefault(paragraph.text, paragraph)

    paragraphs = []
    for text in texts:
        scenes = [Scene() for _ in range(scene_count)]
        existing = previous_by_text.pop(text, None)
        if existing is None:
            paragraphs.append(Paragraph(text=text, scenes=scenes))
            continue

        audio_status = existing.audio_status
        if audio_status == GenerationStatus.PENDING:
            audio_status = GenerationStatus.IDLE
        paragraphs.append(Paragraph(
            id=existing.id,
            text=text,
            scenes=scenes,
            audio_status=audio_status,
            audio=existing.audio,
            audio_error=existing.audio_error,
        ))

    return paragraphs


class StoryboardService:
    """Fills scenes with start/end frame prompts."""

    def __init__(self, registry: Optional[ProviderRegistry] = None):
        self.registry = registry or ProviderRegistry()

    def commit(
        self,
        segments: list[str],
        scene_count: int,
        previous: Optional[list[Paragraph]] = None,
    ) -> list[Paragraph]:
        """Build the paragraph tree for generation. See ``commit_paragraphs``."""
        return commit_paragraphs(segments, scene_count, previous)

    async def generate_prompts(
        self,
        paragraphs: list[Paragraph],
        settings: GenerationSettings,
        overwrite: bool = False,
        on_paragraph_complete: Optional[Callable[[Paragraph], None]] = None,
    ) -> list[Paragraph]:
        """Write prompts for every scene that lacks them.

        Args:
            paragraphs: Paragraph tree in story order
            settings: Supplies the style and the Google credential
            overwrite: Replace prompts that are already set
            on_paragraph_complete: Called with each updated paragraph

        Returns:
            New paragraph list; paragraphs needing no prompts are returned as-is
        """
        writer = self.registry.prompt_writer()
        credential = settings.credentials.google
        result = []

        for paragraph in paragraphs:
            needs_prompts = overwrite or any(not s.start_prompt or not s.end_prompt for s in paragraph.scenes)
            if not paragraph.scenes or not needs_prompts:
                result.append(paragraph)
                continue

            count = len(paragraph.scenes)
            try:
                prompts = await writer.generate_scene_prompts(paragraph.text, count, settings.style, credential)
            except ProviderError as e:
                logger.warning("Prompt generation failed for %s, using placeholders: %s", paragraph.id, e)
                prompts = []

            # The writer may return more or fewer scenes than asked for.
            prompts = (list(prompts) + fallback_prompts(paragraph.text, count))[:count]

            scenes = []
            for scene, prompt in zip(paragraph.scenes, prompts):
                update = {}
                if overwrite or not scene.start_prompt:
                    update["start_prompt"] = prompt.start
                if overwrite or not scene.end_prompt:
                    update["end_prompt"] = prompt.end
                scenes.append(scene.model_copy(update=update) if update else scene)

            updated = paragraph.model_copy(update={"scenes": scenes})
            result.append(updated)
            if on_paragraph_complete:
                on_paragraph_complete(updated)

        return result

    async def rewrite_prompt(
        self,
        paragraph: Paragraph,
        scene_id: str,
        which: Literal["start", "end"],
        settings: GenerationSettings,
    ) -> str:
        """Ask the prompt writer for a new start or end prompt.

        Returns the current prompt unchanged if the writer fails.

        Raises:
            NotFoundError: If the scene is not in the paragraph
        """
        scene = paragraph.get_scene(scene_id)
        if scene is None:
            raise NotFoundError("Scene", f"{paragraph.id}/{scene_id}")

        current = scene.start_prompt if which == "start" else scene.end_prompt
        writer = self.registry.prompt_writer()
        try:
            return await writer.rewrite_prompt(
                paragraph.text, current, which, settings.style, settings.credentials.google,
            )
        except ProviderError as e:
            logger.warning("Prompt rewrite failed for %s/%s: %s", paragraph.id, scene_id, e)
            return current
