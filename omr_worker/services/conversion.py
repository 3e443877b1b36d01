"""Notation conversion stage — uploaded score → MusicXML.

Runs Audiveris on the uploaded file. When Audiveris is missing, fails,
times out or writes nothing, the stage writes a small placeholder
MusicXML document instead and reports a *degraded* result: the caller
still gets a well-formed score. The only fatal outcome is being unable to
write the target file at all.
"""
from __future__ import annotations

import logging
from pathlib import Path

from omr_worker.core.stage_result import DegradationReason, StageResult
from omr_worker.services.engines import EngineError, ExternalEngine, degradation_reason

logger = logging.getLogger(__name__)

PLACEHOLDER_MUSICXML = """<?xml version="1.0" encoding="UTF-8"?>
<score-partwise version="3.1">
  <work>
    <work-title>Converted Score</work-title>
  </work>
  <identification>
    <creator type="software">OMR Worker placeholder</creator>
  </identification>
  <part-list>
    <score-part id="P1">
      <part-name>Piano</part-name>
      <score-instrument id="P1-I1">
        <instrument-name>Piano</instrument-name>
      </score-instrument>
    </score-part>
  </part-list>
  <part id="P1">
    <measure number="1">
      <attributes>
        <divisions>4</divisions>
        <key>
          <fifths>0</fifths>
        </key>
        <time>
          <beats>4</beats>
          <beat-type>4</beat-type>
        </time>
        <clef>
          <sign>G</sign>
          <line>2</line>
        </clef>
      </attributes>
      <note>
        <pitch>
          <step>C</step>
          <octave>4</octave>
        </pitch>
        <duration>4</duration>
        <type>quarter</type>
      </note>
    </measure>
  </part>
</score-partwise>
"""


class NotationConverter:
    """Converts an uploaded score into a MusicXML file at a target path."""

    def __init__(self, engine: ExternalEngine) -> None:
        self.engine = engine

    def write_placeholder(self, target_path: Path) -> None:
        """Write the placeholder MusicXML document. OSError propagates."""
        target_path.write_text(PLACEHOLDER_MUSICXML, encoding="utf-8")

    async def convert(self, input_path: Path, target_path: Path) -> StageResult[Path]:
        """Produce a MusicXML document for ``input_path`` at ``target_path``.

        Returns:
            ``ok(target_path)`` when Audiveris produced the document,
            ``degraded(target_path, reason)`` when the placeholder was written,
            ``fatal(OSError)`` when nothing could be written.
        """
        try:
            produced = await self.engine.run(
                input_path, target_path, cwd=target_path.parent
            )
        except EngineError as exc:
            reason = degradation_reason(exc)
            logger.warning("⚠️ MusicXML conversion degraded (%s): %s", reason.value, exc)
            return self._fallback(target_path, reason, str(exc))
        except Exception as exc:
            logger.warning("⚠️ MusicXML conversion raised unexpectedly: %s", exc)
            return self._fallback(target_path, DegradationReason.ENGINE_FAILED, str(exc))

        if produced != target_path:
            produced.replace(target_path)
        logger.info("✅ MusicXML conversion successful: %s", target_path.name)
        return StageResult.ok(target_path)

    def _fallback(
        self, target_path: Path, reason: DegradationReason, detail: str
    ) -> StageResult[Path]:
        try:
            self.write_placeholder(target_path)
        except OSError as exc:
            logger.error("❌ Cannot write notation document %s: %s", target_path, exc)
            return StageResult.fatal(exc)
        logger.info("Using placeholder MusicXML for %s", target_path.parent.name[:8])
        return StageResult.degraded(target_path, reason, detail)
