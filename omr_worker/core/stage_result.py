"""Per-stage outcome type for the score pipeline.

Every stage reports one of three outcomes instead of swallowing exceptions:

- ``ok``        — the stage produced its artifact with the real engine.
- ``degraded``  — the artifact exists but came from a placeholder path;
  ``reason`` says why (engine missing, timed out, malformed output, …).
- ``fatal``     — no artifact; ``error`` carries the exception that stops
  the session.

The orchestrator decides which outcomes it tolerates, so the fallback
policy lives in one visible table rather than in scattered ``except`` blocks.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class StageOutcome(str, Enum):
    """Outcome of a single pipeline stage."""

    OK = "ok"
    DEGRADED = "degraded"
    FATAL = "fatal"


class DegradationReason(str, Enum):
    """Why a stage fell back to its placeholder path."""

    ENGINE_UNAVAILABLE = "engine_unavailable"
    ENGINE_FAILED = "engine_failed"
    ENGINE_TIMEOUT = "engine_timeout"
    OUTPUT_MISSING = "output_missing"
    MALFORMED_DOCUMENT = "malformed_document"


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """Result of one stage: ``Ok(artifact) | Degraded(artifact, reason) | Fatal(error)``.

    Attributes:
        outcome: Which of the three branches this result represents.
        artifact: The stage output; ``None`` only for fatal results.
        reason: Machine-readable degradation cause (degraded results only).
        detail: Human-readable context for logs.
        error: The exception that made the stage fatal.
    """

    outcome: StageOutcome
    artifact: T | None = None
    reason: DegradationReason | None = None
    detail: str | None = None
    error: BaseException | None = None

    @classmethod
    def ok(cls, artifact: T) -> StageResult[T]:
        return cls(outcome=StageOutcome.OK, artifact=artifact)

    @classmethod
    def degraded(
        cls, artifact: T, reason: DegradationReason, detail: str | None = None
    ) -> StageResult[T]:
        return cls(
            outcome=StageOutcome.DEGRADED,
            artifact=artifact,
            reason=reason,
            detail=detail,
        )

    @classmethod
    def fatal(cls, error: BaseException) -> StageResult[T]:
        return cls(outcome=StageOutcome.FATAL, error=error, detail=str(error))

    @property
    def is_ok(self) -> bool:
        return self.outcome is StageOutcome.OK

    @property
    def is_degraded(self) -> bool:
        return self.outcome is StageOutcome.DEGRADED

    @property
    def is_fatal(self) -> bool:
        return self.outcome is StageOutcome.FATAL

    def unwrap(self) -> T:
        """Return the artifact, re-raising the stored error for fatal results."""
        if self.outcome is StageOutcome.FATAL or self.artifact is None:
            if self.error is not None:
                raise self.error
            raise RuntimeError("Stage produced no artifact")
        return self.artifact
