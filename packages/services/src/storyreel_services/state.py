"""In-memory asset state for a story's paragraph/scene tree."""

from typing import Callable, Optional

from storyreel_core_schemas import Paragraph, Scene, check_payload_invariant

from .exceptions import NotFoundError

StateListener = Callable[[str, Optional[str]], None]

_IMMUTABLE_FIELDS = {"id", "scenes"}


def _check_fields(model: type, fields: dict) -> None:
    unknown = [name for name in fields if name not in model.model_fields or name in _IMMUTABLE_FIELDS]
    if unknown:
        raise ValueError(f"Cannot update {model.__name__} field(s): {', '.join(sorted(unknown))}")


class AssetStateStore:
    """Holds the ordered paragraph tree and applies targeted updates.

    Every update replaces the affected Paragraph object (and, for scene
    updates, the affected Scene inside a fresh scenes list); all other
    paragraphs keep their identity. Nodes are never mutated in place, so
    a reader holding an old snapshot never sees a half-applied update.
    """

    def __init__(self, paragraphs: list[Paragraph]):
        for paragraph in paragraphs:
            check_payload_invariant(paragraph)
            for scene in paragraph.scenes:
                check_payload_invariant(scene)
        self._paragraphs: list[Paragraph] = list(paragraphs)
        self._index: dict[str, int] = {p.id: i for i, p in enumerate(self._paragraphs)}
        self._listeners: list[StateListener] = []

    @property
    def paragraphs(self) -> list[Paragraph]:
        """Snapshot of the paragraphs in story order."""
        return list(self._paragraphs)

    def get_paragraph(self, paragraph_id: str) -> Paragraph:
        """Get paragraph by ID.

        Raises:
            NotFoundError: If paragraph not found
        """
        if paragraph_id not in self._index:
            raise NotFoundError("Paragraph", paragraph_id)
        return self._paragraphs[self._index[paragraph_id]]

    def get_scene(self, paragraph_id: str, scene_id: str) -> Scene:
        """Get scene by paragraph and scene ID.

        Raises:
            NotFoundError: If paragraph or scene not found
        """
        scene = self.get_paragraph(paragraph_id).get_scene(scene_id)
        if scene is None:
            raise NotFoundError("Scene", f"{paragraph_id}/{scene_id}")
        return scene

    def apply_update(self, paragraph_id: str, scene_id: Optional[str] = None, **fields) -> Paragraph:
        """Merge ``fields`` into one paragraph, or into one of its scenes.

        Args:
            paragraph_id: Target paragraph
            scene_id: Target scene within the paragraph, or None for the paragraph itself
            **fields: Field values to set

        Returns:
            The new Paragraph object

        Raises:
            NotFoundError: If the target does not exist
            ValueError: If a field is unknown or the update would attach a
                payload to a non-success status (or drop it from a success)
        """
        paragraph = self.get_paragraph(paragraph_id)

        if scene_id is None:
            _check_fields(Paragraph, fields)
            updated = paragraph.model_copy(update=fields)
            check_payload_invariant(updated)
        else:
            _check_fields(Scene, fields)
            scene = self.get_scene(paragraph_id, scene_id)
            new_scene = scene.model_copy(update=fields)
            check_payload_invariant(new_scene)
            scenes = [new_scene if s.id == scene_id else s for s in paragraph.scenes]
            updated = paragraph.model_copy(update={"scenes": scenes})

        self._paragraphs[self._index[paragraph_id]] = updated

        for listener in list(self._listeners):
            listener(paragraph_id, scene_id)

        return updated

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
