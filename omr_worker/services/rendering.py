"""Paged image renderer — one preview image per measure group.

For each two-measure window of the score:

1. Write the group's MusicXML excerpt (or the full document when slicing is
   disabled or fails).
2. Ask MuseScore to export it as PNG, bounded by the engine timeout.
3. On any engine failure, draw the synthetic placeholder instead.
4. Base64-encode the image and tag it with the group.

Groups render concurrently up to ``max_concurrent`` MuseScore processes;
results always come back in ascending measure order. A failed group only
ever affects its own image.
"""
from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from pathlib import Path

from omr_worker.core.stage_result import DegradationReason, StageResult
from omr_worker.services.engines import EngineError, ExternalEngine, degradation_reason
from omr_worker.services.measure_groups import MeasureGroup, partition_measures, slice_measures
from omr_worker.services.placeholder_image import render_placeholder_png

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedImage:
    """Encoded preview image for one measure group.

    Attributes:
        group: The measure window the image belongs to.
        image_data: Base64-encoded PNG bytes.
    """

    group: MeasureGroup
    image_data: str

    @property
    def start_measure(self) -> int:
        return self.group.start

    @property
    def end_measure(self) -> int:
        return self.group.end


def placeholder_image(group: MeasureGroup) -> RenderedImage:
    png = render_placeholder_png(group.start, group.end)
    return RenderedImage(group=group, image_data=base64.b64encode(png).decode("ascii"))


class MeasureGroupRenderer:
    """Renders every measure group of a notation document to a PNG."""

    def __init__(
        self,
        engine: ExternalEngine,
        max_concurrent: int = 2,
        slice_groups: bool = True,
    ) -> None:
        self.engine = engine
        self.max_concurrent = max(1, max_concurrent)
        self.slice_groups = slice_groups

    async def render_groups(
        self, document_path: Path, total_measures: int
    ) -> list[StageResult[RenderedImage]]:
        """Render all groups of ``1..total_measures``, in ascending order.

        Each entry is ``ok`` (MuseScore image) or ``degraded`` (placeholder).
        Group files are written next to ``document_path``.
        """
        groups = partition_measures(total_measures)
        if not groups:
            return []

        out_dir = document_path.parent
        document: bytes | None = None
        skip_reason = DegradationReason.ENGINE_UNAVAILABLE
        skip_detail: str | None = None
        if self.engine.is_available():
            try:
                document = await asyncio.to_thread(document_path.read_bytes)
            except OSError as exc:
                logger.warning("⚠️ Cannot read %s for rendering: %s", document_path, exc)
                skip_reason = DegradationReason.ENGINE_FAILED
                skip_detail = str(exc)
        else:
            logger.info(
                "%s not found, using placeholder images for %d groups",
                self.engine.name,
                len(groups),
            )

        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def _render(group: MeasureGroup) -> StageResult[RenderedImage]:
            if document is None:
                return StageResult.degraded(placeholder_image(group), skip_reason, skip_detail)
            async with semaphore:
                return await self._render_group(document, group, out_dir)

        outcomes = await asyncio.gather(
            *(_render(g) for g in groups), return_exceptions=True
        )
        results: list[StageResult[RenderedImage]] = []
        for group, outcome in zip(groups, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.warning("⚠️ Render of measures %s raised: %s", group.label, outcome)
                outcome = StageResult.degraded(
                    placeholder_image(group), DegradationReason.ENGINE_FAILED, str(outcome)
                )
            results.append(outcome)
        return results

    def group_document(self, document: bytes, group: MeasureGroup) -> bytes:
        """MusicXML for one group: an excerpt, or the whole score as fallback."""
        if not self.slice_groups:
            return document
        try:
            return slice_measures(document, group.start, group.end)
        except ValueError as exc:
            logger.debug("Slicing measures %s failed, reusing full score: %s", group.label, exc)
            return document

    async def _render_group(
        self, document: bytes, group: MeasureGroup, out_dir: Path
    ) -> StageResult[RenderedImage]:
        group_xml = out_dir / f"group-{group.number}.musicxml"
        image_path = out_dir / f"measures-{group.start}-{group.end}.png"
        try:
            await asyncio.to_thread(group_xml.write_bytes, self.group_document(document, group))
            produced = await self.engine.run(group_xml, image_path, cwd=out_dir)
            png = await asyncio.to_thread(produced.read_bytes)
        except EngineError as exc:
            reason = degradation_reason(exc)
            logger.warning(
                "⚠️ Render of measures %s degraded (%s): %s", group.label, reason.value, exc
            )
            return StageResult.degraded(placeholder_image(group), reason, str(exc))
        except OSError as exc:
            logger.warning("⚠️ Render of measures %s failed: %s", group.label, exc)
            return StageResult.degraded(
                placeholder_image(group), DegradationReason.ENGINE_FAILED, str(exc)
            )

        if not png:
            return StageResult.degraded(
                placeholder_image(group), DegradationReason.OUTPUT_MISSING, "empty image"
            )
        return StageResult.ok(
            RenderedImage(group=group, image_data=base64.b64encode(png).decode("ascii"))
        )
