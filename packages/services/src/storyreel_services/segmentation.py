"""Story segmentation with a deterministic local fallback."""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from storyreel_core_schemas import Credentials, SegmentationError, SegmentationMethod
from storyreel_providers import ProviderRegistry

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

_BLANK_LINES = re.compile(r"\n\s*\n")


def split_paragraphs(text: str) -> list[str]:
    """Split text on blank lines, dropping empty chunks."""
    return [chunk.strip() for chunk in _BLANK_LINES.split(text) if chunk.strip()]


@dataclass
class SegmentationResult:
    """Outcome of segmenting a story."""

    paragraphs: list[str]
    method: SegmentationMethod
    fallback_reason: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.fallback_reason is not None


class SegmentationService:
    """Splits story text into paragraphs using the configured method."""

    def __init__(self, registry: Optional[ProviderRegistry] = None):
        self.registry = registry or ProviderRegistry()

    async def segment(
        self,
        text: str,
        method: SegmentationMethod,
        credentials: Credentials,
    ) -> SegmentationResult:
        """Segment a story.

        Remote segmentation failures never propagate: the blank-line
        splitter is used instead and the reason is recorded on the result.

        Raises:
            ValidationError: If the text is empty
        """
        if not text.strip():
            raise ValidationError("Story text is empty", field="text")

        segmenter = self.registry.segmenter(method)
        if segmenter is None:
            return SegmentationResult(split_paragraphs(text), method)

        credential = self.registry.segmentation_credential(method, credentials)
        try:
            paragraphs = await segmenter.segment_text(text, credential)
        except SegmentationError as e:
            logger.warning("Segmentation with %s failed, splitting on blank lines: %s", method.value, e)
            return SegmentationResult(split_paragraphs(text), SegmentationMethod.SIMPLE, fallback_reason=str(e))

        logger.info("Segmented story into %d paragraphs with %s", len(paragraphs), method.value)
        return SegmentationResult(paragraphs, method)
