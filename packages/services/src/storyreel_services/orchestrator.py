"""Generation orchestrator: drives every paragraph and scene to a terminal status."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from storyreel_core_schemas import (
    SLOT_FIELDS,
    Asset,
    AssetSlot,
    GenerationSettings,
    GenerationStatus,
    ProviderError,
    Scene,
)
from storyreel_providers import ProviderRegistry, ProviderSet

from .exceptions import RunInProgressError, ValidationError
from .state import AssetStateStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, int], None]


def progress_percent(completed: int, total: int) -> int:
    """Completion percentage, rounded half up, held below 100 until every task has settled."""
    if total <= 0 or completed >= total:
        return 100
    percent = (200 * completed + total) // (2 * total)
    return min(percent, 99)


def video_prompt(scene: Scene, fallback: str) -> str:
    """Prompt sent with a scene's transition video."""
    return scene.start_prompt or fallback


@dataclass
class TaskResult:
    """Outcome of one settled task."""

    paragraph_id: str
    scene_id: Optional[str]
    slot: AssetSlot
    status: GenerationStatus
    error: Optional[str] = None

    @property
    def node_id(self) -> str:
        if self.scene_id is None:
            return f"{self.paragraph_id}/{self.slot.value}"
        return f"{self.paragraph_id}/{self.scene_id}/{self.slot.value}"


@dataclass
class PassResult:
    """Result of one orchestrator pass."""

    tasks: list[TaskResult]
    total: int
    baseline: int

    @property
    def completed(self) -> int:
        return self.baseline + len(self.tasks)

    @property
    def percent(self) -> int:
        return progress_percent(self.completed, self.total)

    @property
    def generated_count(self) -> int:
        return sum(1 for t in self.tasks if t.status == GenerationStatus.SUCCESS)

    @property
    def error_count(self) -> int:
        return sum(1 for t in self.tasks if t.status == GenerationStatus.ERROR)

    @property
    def skipped_count(self) -> int:
        return sum(1 for t in self.tasks if t.status == GenerationStatus.SKIPPED)

    @property
    def reused_count(self) -> int:
        return self.baseline

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "total": self.total,
            "completed": self.completed,
            "percent": self.percent,
            "generated_count": self.generated_count,
            "error_count": self.error_count,
            "skipped_count": self.skipped_count,
            "reused_count": self.reused_count,
            "errors": [
                {"node": t.node_id, "message": t.error}
                for t in self.tasks if t.status == GenerationStatus.ERROR
            ],
        }


@dataclass
class _PassState:
    total: int
    baseline: int
    done_videos: set[str]
    on_progress: Optional[ProgressCallback] = None
    on_task_complete: Optional[Callable[[TaskResult], None]] = None
    tasks: list[TaskResult] = field(default_factory=list)

    @property
    def completed(self) -> int:
        return self.baseline + len(self.tasks)

    def report(self) -> None:
        if self.on_progress:
            self.on_progress(self.completed, self.total, progress_percent(self.completed, self.total))

    def settle(self, result: TaskResult) -> None:
        self.tasks.append(result)
        if self.on_task_complete:
            self.on_task_complete(result)
        self.report()


class GenerationOrchestrator:
    """Walks the paragraph tree and generates every missing asset.

    Each pass re-derives its work from the current statuses: anything
    already ``success`` is left alone, so re-running after a partial
    failure only retries what failed. Paragraphs are processed in story
    order; within a paragraph, audio comes first, then each scene's start
    image, end image and video. A video is attempted only once both of its
    images are ``success``; otherwise it is marked ``skipped``.
    """

    def __init__(
        self,
        store: AssetStateStore,
        settings: GenerationSettings,
        providers: Optional[ProviderSet] = None,
        registry: Optional[ProviderRegistry] = None,
        paragraph_concurrency: int = 1,
    ):
        """Initialize the orchestrator.

        Args:
            store: Asset state to read and update
            settings: Read-only settings for every pass
            providers: Pre-resolved adapters; resolved from settings if omitted
            registry: Registry used to resolve adapters when providers is omitted
            paragraph_concurrency: Number of paragraphs processed at once
        """
        if paragraph_concurrency < 1:
            raise ValueError("paragraph_concurrency must be at least 1")
        self.store = store
        self.settings = settings
        self.providers = providers or (registry or ProviderRegistry()).resolve(settings)
        self.paragraph_concurrency = paragraph_concurrency
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def plan(self) -> tuple[int, int]:
        """Count the tasks of a pass over the current tree.

        Returns:
            Tuple of (total, baseline) where baseline is the number of
            tasks already complete before the pass starts
        """
        total, baseline, _ = self._plan()
        return total, baseline

    def _plan(self) -> tuple[int, int, set[str]]:
        audio_on = self.settings.generate_audio
        video_on = self.settings.generate_video
        total = 0
        baseline = 0
        done_videos: set[str] = set()

        for paragraph in self.store.paragraphs:
            if audio_on:
                total += 1
                baseline += paragraph.audio_status == GenerationStatus.SUCCESS
            for scene in paragraph.scenes:
                total += 2
                baseline += scene.start_image_status == GenerationStatus.SUCCESS
                baseline += scene.end_image_status == GenerationStatus.SUCCESS
                if video_on:
                    total += 1
                    if (
                        scene.video_status == GenerationStatus.SUCCESS
                        and scene.start_image_status == GenerationStatus.SUCCESS
                        and scene.end_image_status == GenerationStatus.SUCCESS
                    ):
                        baseline += 1
                        done_videos.add(scene.id)

        return total, baseline, done_videos

    async def run(
        self,
        on_progress: Optional[ProgressCallback] = None,
        on_task_complete: Optional[Callable[[TaskResult], None]] = None,
    ) -> PassResult:
        """Run one pass over the whole tree.

        Args:
            on_progress: Called with (completed, total, percent) at the start
                and after every task settles
            on_task_complete: Called with each settled task

        Returns:
            PassResult with per-task outcomes

        Raises:
            RunInProgressError: If a pass is already running
        """
        if self._running:
            raise RunInProgressError()
        self._running = True
        try:
            return await self._run_pass(on_progress, on_task_complete)
        finally:
            self._running = False

    async def regenerate(
        self,
        paragraph_id: str,
        scene_id: Optional[str],
        slot: AssetSlot,
        on_progress: Optional[ProgressCallback] = None,
        on_task_complete: Optional[Callable[[TaskResult], None]] = None,
    ) -> PassResult:
        """Reset one asset and run a pass.

        Resetting a start or end image also resets the scene's video.

        Raises:
            RunInProgressError: If a pass is already running (nothing is reset)
            NotFoundError: If the node does not exist
            ValidationError: If the slot does not match the node
        """
        if self._running:
            raise RunInProgressError()
        self.reset(paragraph_id, scene_id, slot)
        return await self.run(on_progress=on_progress, on_task_complete=on_task_complete)

    async def regenerate_audio(
        self,
        paragraph_id: str,
        on_progress: Optional[ProgressCallback] = None,
        on_task_complete: Optional[Callable[[TaskResult], None]] = None,
    ) -> PassResult:
        """Reset a paragraph's narration and run a pass."""
        return await self.regenerate(
            paragraph_id, None, AssetSlot.AUDIO,
            on_progress=on_progress, on_task_complete=on_task_complete,
        )

    def check_node(self, paragraph_id: str, scene_id: Optional[str], slot: AssetSlot) -> None:
        """Check that a slot can be addressed on a node.

        Raises:
            NotFoundError: If the paragraph or scene does not exist
            ValidationError: If the slot does not belong to that kind of node
        """
        if slot == AssetSlot.AUDIO:
            if scene_id is not None:
                raise ValidationError("Audio belongs to a paragraph, not a scene", field="scene_id")
            self.store.get_paragraph(paragraph_id)
            return
        if scene_id is None:
            raise ValidationError(f"A scene is required for the {slot.value} asset", field="scene_id")
        self.store.get_scene(paragraph_id, scene_id)

    def reset(self, paragraph_id: str, scene_id: Optional[str], slot: AssetSlot) -> None:
        """Return an asset (and anything depending on it) to ``idle``."""
        self.check_node(paragraph_id, scene_id, slot)

        if slot == AssetSlot.AUDIO:
            self._set(paragraph_id, None, slot, GenerationStatus.IDLE)
            return

        # Video first, so it is never success while a frame is not.
        self._set(paragraph_id, scene_id, AssetSlot.VIDEO, GenerationStatus.IDLE)
        if slot in (AssetSlot.START, AssetSlot.END):
            self._set(paragraph_id, scene_id, slot, GenerationStatus.IDLE)

    def _set(
        self,
        paragraph_id: str,
        scene_id: Optional[str],
        slot: AssetSlot,
        status: GenerationStatus,
        asset: Optional[Asset] = None,
        error: Optional[str] = None,
    ) -> None:
        status_field, asset_field, error_field = SLOT_FIELDS[slot]
        self.store.apply_update(
            paragraph_id,
            scene_id,
            **{status_field: status, asset_field: asset, error_field: error},
        )

    async def _run_pass(
        self,
        on_progress: Optional[ProgressCallback],
        on_task_complete: Optional[Callable[[TaskResult], None]],
    ) -> PassResult:
        total, baseline, done_videos = self._plan()
        state = _PassState(
            total=total,
            baseline=baseline,
            done_videos=done_videos,
            on_progress=on_progress,
            on_task_complete=on_task_complete,
        )
        logger.info(
            "Starting generation pass: %d tasks, %d already complete",
            total, baseline,
        )
        state.report()

        semaphore = asyncio.Semaphore(self.paragraph_concurrency)

        async def bounded(paragraph_id: str) -> None:
            async with semaphore:
                await self._process_paragraph(paragraph_id, state)

        await asyncio.gather(*(bounded(p.id) for p in self.store.paragraphs))

        result = PassResult(tasks=state.tasks, total=total, baseline=baseline)
        logger.info(
            "Generation pass finished: %d generated, %d errors, %d skipped",
            result.generated_count, result.error_count, result.skipped_count,
        )
        return result

    async def _process_paragraph(self, paragraph_id: str, state: _PassState) -> None:
        paragraph = self.store.get_paragraph(paragraph_id)

        if not self.settings.generate_audio:
            if paragraph.audio_status != GenerationStatus.SKIPPED:
                self._set(paragraph_id, None, AssetSlot.AUDIO, GenerationStatus.SKIPPED)
        elif paragraph.audio_status != GenerationStatus.SUCCESS:
            await self._run_task(
                state, paragraph_id, None, AssetSlot.AUDIO,
                lambda: self.providers.audio.generate_audio(
                    paragraph.text, self.settings.voice, self.providers.audio_credential,
                ),
            )

        for scene in paragraph.scenes:
            await self._process_scene(paragraph_id, scene.id, paragraph.text, state)

    async def _process_scene(self, paragraph_id: str, scene_id: str, text: str, state: _PassState) -> None:
        providers = self.providers
        settings = self.settings
        scene = self.store.get_scene(paragraph_id, scene_id)

        # A stored video whose frames are being redone is stale.
        if scene.video_status == GenerationStatus.SUCCESS and scene_id not in state.done_videos:
            self._set(paragraph_id, scene_id, AssetSlot.VIDEO, GenerationStatus.IDLE)

        for slot, status, prompt in (
            (AssetSlot.START, scene.start_image_status, scene.start_prompt),
            (AssetSlot.END, scene.end_image_status, scene.end_prompt),
        ):
            if status == GenerationStatus.SUCCESS:
                continue
            await self._run_task(
                state, paragraph_id, scene_id, slot,
                lambda prompt=prompt: providers.image.generate_image(
                    prompt or text, settings.aspect_ratio, settings.style, providers.image_credential,
                ),
            )

        if not settings.generate_video:
            if scene.video_status != GenerationStatus.SKIPPED:
                self._set(paragraph_id, scene_id, AssetSlot.VIDEO, GenerationStatus.SKIPPED)
            return

        if scene_id in state.done_videos:
            return

        scene = self.store.get_scene(paragraph_id, scene_id)
        if scene.start_image is None or scene.end_image is None:
            self._set(paragraph_id, scene_id, AssetSlot.VIDEO, GenerationStatus.SKIPPED)
            logger.info("Skipping video for %s/%s: frames missing", paragraph_id, scene_id)
            state.settle(TaskResult(paragraph_id, scene_id, AssetSlot.VIDEO, GenerationStatus.SKIPPED))
            return

        start, end = scene.start_image, scene.end_image
        await self._run_task(
            state, paragraph_id, scene_id, AssetSlot.VIDEO,
            lambda: providers.video.generate_video(
                start, end, video_prompt(scene, text), providers.video_credential,
            ),
        )

    async def _run_task(
        self,
        state: _PassState,
        paragraph_id: str,
        scene_id: Optional[str],
        slot: AssetSlot,
        call: Callable[[], Awaitable[Asset]],
    ) -> None:
        self._set(paragraph_id, scene_id, slot, GenerationStatus.PENDING)
        node = f"{paragraph_id}/{scene_id}/{slot.value}" if scene_id else f"{paragraph_id}/{slot.value}"

        try:
            asset = await call()
            if not isinstance(asset, Asset):
                raise ProviderError(f"Adapter returned {type(asset).__name__} instead of an Asset")
        except asyncio.CancelledError:
            self._set(paragraph_id, scene_id, slot, GenerationStatus.IDLE)
            raise
        except ProviderError as e:
            logger.warning("Generation failed for %s: %s", node, e)
            self._set(paragraph_id, scene_id, slot, GenerationStatus.ERROR, error=str(e))
            state.settle(TaskResult(paragraph_id, scene_id, slot, GenerationStatus.ERROR, str(e)))
            return
        except Exception as e:
            logger.exception("Unexpected error generating %s", node)
            message = f"Unexpected error: {e}"
            self._set(paragraph_id, scene_id, slot, GenerationStatus.ERROR, error=message)
            state.settle(TaskResult(paragraph_id, scene_id, slot, GenerationStatus.ERROR, message))
            return

        self._set(paragraph_id, scene_id, slot, GenerationStatus.SUCCESS, asset=asset)
        logger.info("Generated %s (%d bytes)", node, asset.size)
        state.settle(TaskResult(paragraph_id, scene_id, slot, GenerationStatus.SUCCESS))
