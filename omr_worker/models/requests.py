"""Request models for the OMR worker API."""
from __future__ import annotations

from pydantic import Field

from omr_worker.models.base import CamelModel


class ProcessScoreRequest(CamelModel):
    """Upload of one score image or PDF for processing.

    Empty strings count as missing: the route answers 400 for either.
    """

    score_id: str = Field(
        ...,
        min_length=1,
        description="Caller's identifier for the score; echoed back in the response",
    )
    file_data: str = Field(
        ...,
        min_length=1,
        description="Base64-encoded file contents",
    )
    file_type: str = Field(
        ...,
        min_length=1,
        description="Declared type: an extension ('pdf', 'png') or a media type ('application/pdf')",
        examples=["pdf"],
    )
    file_name: str | None = Field(
        default=None,
        description="Original file name, informational only",
    )
