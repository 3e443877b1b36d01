"""Score processing pipeline — one upload in, one ``ProcessingResult`` out.

Stages, in order, each inside the session's private workspace:

1. Save the upload as ``original.<ext>``.
2. Convert it to MusicXML (Audiveris, or the placeholder document).
3. Extract metadata (or fall back to the default record).
4. Render one preview per two-measure group (MuseScore, or placeholders).
5. Assemble the result.

Fallback policy
---------------
What happens after each stage outcome is decided by ``FALLBACK_POLICY``
below and nowhere else. Degraded outcomes keep the session going with a
lower-fidelity artifact; fatal outcomes abort it. Anything that escapes a
stage unexpectedly is treated as fatal too.

Workspace lifetime
------------------
Fatal paths release the workspace immediately, before the error result is
returned. Successful sessions are released by ``schedule_release`` after
the response has been sent, following the configured grace delay.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path

from omr_worker.config import Settings
from omr_worker.core.session import (
    ProcessingResult,
    Session,
    SessionState,
    UploadedArtifact,
)
from omr_worker.core.stage_result import DegradationReason, StageOutcome, StageResult
from omr_worker.services.conversion import NotationConverter
from omr_worker.services.engines import build_omr_engine, build_render_engine
from omr_worker.services.metadata import (
    MetadataError,
    ScoreMetadata,
    default_metadata,
    extract_metadata,
)
from omr_worker.services.rendering import MeasureGroupRenderer
from omr_worker.services.workspace import (
    WorkspaceError,
    WorkspaceManager,
    new_session_id,
)

logger = logging.getLogger(__name__)

NOTATION_FILENAME = "score.musicxml"


class Stage(str, Enum):
    CONVERSION = "conversion"
    METADATA = "metadata"
    RENDERING = "rendering"


class PolicyAction(str, Enum):
    CONTINUE = "continue"
    ABORT = "abort"


FALLBACK_POLICY: dict[tuple[Stage, StageOutcome], PolicyAction] = {
    (Stage.CONVERSION, StageOutcome.OK): PolicyAction.CONTINUE,
    (Stage.CONVERSION, StageOutcome.DEGRADED): PolicyAction.CONTINUE,
    (Stage.CONVERSION, StageOutcome.FATAL): PolicyAction.ABORT,
    (Stage.METADATA, StageOutcome.OK): PolicyAction.CONTINUE,
    (Stage.METADATA, StageOutcome.DEGRADED): PolicyAction.CONTINUE,
    (Stage.RENDERING, StageOutcome.OK): PolicyAction.CONTINUE,
    (Stage.RENDERING, StageOutcome.DEGRADED): PolicyAction.CONTINUE,
}


class SessionAborted(Exception):
    """A stage outcome that the fallback policy does not tolerate."""

    def __init__(self, stage: Stage, result: StageResult[object]):
        self.stage = stage
        self.result = result
        super().__init__(result.detail or f"{stage.value} failed")


class ScorePipeline:
    """Runs upload → MusicXML → metadata → measure previews for one session."""

    def __init__(
        self,
        workspaces: WorkspaceManager,
        converter: NotationConverter,
        renderer: MeasureGroupRenderer,
        cleanup_grace_seconds: float = 60.0,
        default_measure_count: int = 8,
    ) -> None:
        self.workspaces = workspaces
        self.converter = converter
        self.renderer = renderer
        self.cleanup_grace_seconds = cleanup_grace_seconds
        self.default_measure_count = default_measure_count

    @classmethod
    def from_settings(
        cls, settings: Settings, workspaces: WorkspaceManager | None = None
    ) -> ScorePipeline:
        """Build the pipeline and its stages from application settings."""
        omr_engine = build_omr_engine(settings.audiveris_path, settings.omr_timeout_seconds)
        render_engine = build_render_engine(
            settings.musescore_path, settings.render_timeout_seconds
        )
        return cls(
            workspaces=workspaces or WorkspaceManager(settings.scratch_root),
            converter=NotationConverter(omr_engine),
            renderer=MeasureGroupRenderer(
                render_engine,
                max_concurrent=settings.render_max_concurrent,
                slice_groups=settings.slice_measure_groups,
            ),
            cleanup_grace_seconds=settings.cleanup_grace_seconds,
            default_measure_count=settings.default_measure_count,
        )

    def engine_availability(self) -> dict[str, bool]:
        return {
            "omr_engine": self.converter.engine.is_available(),
            "render_engine": self.renderer.engine.is_available(),
        }

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def process(self, upload: UploadedArtifact, score_id: str) -> ProcessingResult:
        """Run every stage for one upload.

        Never raises for per-request failures: fatal outcomes come back as
        ``success=False`` with the workspace already released.
        """
        session = Session(session_id=new_session_id(), score_id=score_id)
        logger.info(
            "Starting OMR processing for score %s, session %s", score_id, session.short_id
        )

        try:
            session.workspace = self.workspaces.acquire(session.session_id)
        except WorkspaceError as exc:
            logger.error("❌ Workspace unavailable for score %s: %s", score_id, exc)
            session.advance(SessionState.RELEASED)
            return self._failure(session, exc)
        session.advance(SessionState.WORKSPACE_PREPARED)

        try:
            result = await self._run_stages(session, upload)
        except SessionAborted as exc:
            logger.error(
                "❌ OMR processing aborted in %s for score %s: %s",
                exc.stage.value,
                score_id,
                exc,
            )
            await self.release_now(session)
            return self._failure(session, exc)
        except asyncio.CancelledError:
            logger.warning("OMR processing cancelled for score %s", score_id)
            await self.release_now(session)
            raise
        except Exception as exc:
            logger.exception("❌ OMR processing error for score %s", score_id)
            await self.release_now(session)
            return self._failure(session, exc)

        logger.info(
            "✅ OMR processing completed for score %s (%d groups%s)",
            score_id,
            len(result.images),
            f", degraded: {', '.join(sorted(session.degradations))}"
            if session.degradations
            else "",
        )
        return result

    async def release_now(self, session: Session) -> None:
        """Remove the session's workspace immediately (fatal paths)."""
        if session.workspace is not None:
            await self.workspaces.release_async(session.workspace)
        session.advance(SessionState.RELEASED)

    def schedule_release(self, session: Session | None) -> None:
        """Release the workspace after the grace delay; call once the response is sent."""
        if session is None or session.is_released:
            return
        session.advance(SessionState.RESPONDED)
        if session.workspace is None:
            session.advance(SessionState.RELEASED)
            return
        task = self.workspaces.schedule_release(
            session.workspace, self.cleanup_grace_seconds
        )
        task.add_done_callback(lambda _t: session.advance(SessionState.RELEASED))

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _apply_policy(
        self, session: Session, stage: Stage, result: StageResult[object]
    ) -> None:
        action = FALLBACK_POLICY.get((stage, result.outcome), PolicyAction.ABORT)
        if action is PolicyAction.ABORT:
            raise SessionAborted(stage, result)
        if result.is_degraded and result.reason is not None:
            session.degradations.setdefault(stage.value, result.reason.value)

    async def _run_stages(
        self, session: Session, upload: UploadedArtifact
    ) -> ProcessingResult:
        workspace = session.workspace
        assert workspace is not None

        original = workspace.file(f"original.{upload.extension}")
        try:
            await asyncio.to_thread(original.write_bytes, upload.data)
        except OSError as exc:
            raise WorkspaceError(f"Cannot save upload to {original}: {exc}") from exc
        logger.info(
            "File saved: %s, size: %d bytes", original.name, len(upload.data)
        )

        document_path = workspace.file(NOTATION_FILENAME)
        conversion = await self.converter.convert(original, document_path)
        self._apply_policy(session, Stage.CONVERSION, conversion)
        session.advance(SessionState.CONVERTED)

        metadata_result = await self._extract_metadata(document_path)
        self._apply_policy(session, Stage.METADATA, metadata_result)
        metadata = metadata_result.unwrap()
        session.advance(SessionState.METADATA_EXTRACTED)

        rendered = await self.renderer.render_groups(document_path, metadata.measure_count)
        for group_result in rendered:
            self._apply_policy(session, Stage.RENDERING, group_result)
        session.advance(SessionState.IMAGES_RENDERED)

        notation_document = await asyncio.to_thread(
            document_path.read_text, encoding="utf-8", errors="replace"
        )

        result = ProcessingResult(
            success=True,
            score_id=session.score_id,
            session_id=session.session_id,
            notation_document=notation_document,
            metadata=metadata,
            images=[r.unwrap() for r in rendered],
            session=session,
        )
        session.advance(SessionState.ASSEMBLED)
        return result

    async def _extract_metadata(self, document_path: Path) -> StageResult[ScoreMetadata]:
        try:
            metadata = await asyncio.to_thread(extract_metadata, document_path)
        except MetadataError as exc:
            logger.warning("⚠️ Metadata extraction failed, using defaults: %s", exc)
            return StageResult.degraded(
                default_metadata(self.default_measure_count),
                DegradationReason.MALFORMED_DOCUMENT,
                str(exc),
            )
        return StageResult.ok(metadata)

    def _failure(self, session: Session, exc: BaseException) -> ProcessingResult:
        return ProcessingResult(
            success=False,
            score_id=session.score_id,
            session_id=session.session_id,
            error=str(exc) or exc.__class__.__name__,
            session=session,
        )
