"""Processing session state and result records.

A session moves strictly forward through::

    created → workspace_prepared → converted → metadata_extracted
            → images_rendered → assembled → responded → released

Skipping ahead is allowed (a fatal error jumps straight to ``released``);
moving backwards is a programming error.
"""
from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum

from omr_worker.services.metadata import ScoreMetadata
from omr_worker.services.rendering import RenderedImage
from omr_worker.services.workspace import Workspace


class SessionState(str, Enum):
    CREATED = "created"
    WORKSPACE_PREPARED = "workspace_prepared"
    CONVERTED = "converted"
    METADATA_EXTRACTED = "metadata_extracted"
    IMAGES_RENDERED = "images_rendered"
    ASSEMBLED = "assembled"
    RESPONDED = "responded"
    RELEASED = "released"


_STATE_ORDER: dict[SessionState, int] = {s: i for i, s in enumerate(SessionState)}


class InvalidTransitionError(RuntimeError):
    """Raised when a session is asked to move backwards."""


_EXTENSION_RE = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class UploadedArtifact:
    """Raw upload: bytes, declared type and optional original file name."""

    data: bytes
    file_type: str
    file_name: str | None = None

    @property
    def extension(self) -> str:
        """File extension derived from ``file_type`` (``pdf``, ``application/pdf``, ``.PNG``).

        Only ASCII letters and digits survive, so the value is safe as a path part.
        """
        declared = self.file_type.strip().lower()
        if "/" in declared:
            declared = declared.rsplit("/", 1)[-1]
        # "svg+xml" → "svg"
        declared = declared.split("+", 1)[0].split(";", 1)[0]
        ext = _EXTENSION_RE.sub("", declared)[:16]
        return ext or "bin"


@dataclass
class Session:
    """One processing request's identity, workspace and progress."""

    session_id: str
    score_id: str
    created_at: float = field(default_factory=time.time)
    workspace: Workspace | None = None
    state: SessionState = SessionState.CREATED
    degradations: dict[str, str] = field(default_factory=dict)

    @property
    def short_id(self) -> str:
        return self.session_id[:8]

    @property
    def is_released(self) -> bool:
        return self.state is SessionState.RELEASED

    def advance(self, state: SessionState) -> None:
        """Move to ``state``. Raises InvalidTransitionError on a backward move."""
        if _STATE_ORDER[state] < _STATE_ORDER[self.state]:
            raise InvalidTransitionError(
                f"Session {self.short_id}: cannot move from {self.state.value} to {state.value}"
            )
        self.state = state


@dataclass
class ProcessingResult:
    """Outcome of one session, returned once and never persisted."""

    success: bool
    score_id: str
    session_id: str
    notation_document: str | None = None
    metadata: ScoreMetadata | None = None
    images: list[RenderedImage] = field(default_factory=list)
    error: str | None = None
    session: Session | None = field(default=None, repr=False)
