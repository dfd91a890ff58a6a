"""Generation service: runs the orchestrator against a stored project."""

import logging
from typing import Callable, Optional

from storyreel_core_schemas import AssetSlot, GenerationSettings, ProjectStatus
from storyreel_providers import ProviderRegistry, ProviderSet
from storyreel_storage import ProjectManager

from .exceptions import RunInProgressError, ValidationError
from .orchestrator import GenerationOrchestrator, PassResult, ProgressCallback, TaskResult
from .state import AssetStateStore

logger = logging.getLogger(__name__)


class GenerationService:
    """Wires a project's paragraphs, the orchestrator and storage together.

    Every state change made by the orchestrator is copied back onto the
    project and, with ``autosave`` on, written to disk, so an interrupted
    run resumes from the last settled task.
    """

    def __init__(
        self,
        manager: ProjectManager,
        settings: Optional[GenerationSettings] = None,
        registry: Optional[ProviderRegistry] = None,
        providers: Optional[ProviderSet] = None,
        paragraph_concurrency: int = 1,
        autosave: bool = True,
    ):
        """Initialize service with a project manager.

        Args:
            manager: Loaded project
            settings: Generation settings (loaded from the project if omitted)
            registry: Provider registry used to resolve adapters
            providers: Pre-resolved adapters, bypassing the registry
            paragraph_concurrency: Paragraphs processed at once
            autosave: Save the project after every state change
        """
        self.manager = manager
        self.settings = settings or manager.load_settings()
        self.autosave = autosave
        self.store = AssetStateStore(manager.project.paragraphs)
        self.orchestrator = GenerationOrchestrator(
            self.store,
            self.settings,
            providers=providers,
            registry=registry,
            paragraph_concurrency=paragraph_concurrency,
        )
        self._unsubscribe = self.store.subscribe(self._on_state_change)

    def _on_state_change(self, paragraph_id: str, scene_id: Optional[str]) -> None:
        self.manager.project.paragraphs = self.store.paragraphs
        if not self.autosave:
            return
        # The in-memory tree stays authoritative; the next save retries the write.
        try:
            self.manager.save()
        except OSError:
            logger.exception("Autosave failed after update to %s/%s", paragraph_id, scene_id or "-")

    def close(self) -> None:
        """Stop syncing state changes to the project."""
        self._unsubscribe()

    @property
    def is_running(self) -> bool:
        return self.orchestrator.is_running

    def _check_ready(self) -> None:
        if self.orchestrator.is_running:
            raise RunInProgressError()
        if not self.store.paragraphs:
            raise ValidationError("Project has no paragraphs. Run storyboard first.", field="paragraphs")

    async def _run(self, run) -> PassResult:
        project = self.manager.project
        project.status = ProjectStatus.GENERATING
        self.manager.save()

        try:
            result = await run()
        finally:
            if project.status == ProjectStatus.GENERATING:
                project.status = ProjectStatus.STORYBOARDED
            self.manager.save()

        if result.error_count == 0 and result.completed == result.total:
            project.status = ProjectStatus.COMPLETED
            self.manager.save()
        return result

    async def generate(
        self,
        on_progress: Optional[ProgressCallback] = None,
        on_task_complete: Optional[Callable[[TaskResult], None]] = None,
    ) -> PassResult:
        """Generate every missing asset.

        Raises:
            RunInProgressError: If a pass is already running
            ValidationError: If the project has no paragraphs
        """
        self._check_ready()
        return await self._run(
            lambda: self.orchestrator.run(on_progress=on_progress, on_task_complete=on_task_complete)
        )

    async def regenerate(
        self,
        paragraph_id: str,
        scene_id: Optional[str],
        slot: AssetSlot,
        on_progress: Optional[ProgressCallback] = None,
        on_task_complete: Optional[Callable[[TaskResult], None]] = None,
    ) -> PassResult:
        """Reset one asset and run a pass.

        Raises:
            RunInProgressError: If a pass is already running
            NotFoundError: If the node does not exist
            ValidationError: If the slot does not fit the node
        """
        self._check_ready()
        self.orchestrator.reset(paragraph_id, scene_id, slot)
        logger.info("Regenerating %s for %s/%s", slot.value, paragraph_id, scene_id or "-")
        return await self._run(
            lambda: self.orchestrator.run(on_progress=on_progress, on_task_complete=on_task_complete)
        )

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
