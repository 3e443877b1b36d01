"""Response models for the OMR worker API."""
from __future__ import annotations

from typing import Literal

from omr_worker.core.session import ProcessingResult
from omr_worker.models.base import CamelModel
from omr_worker.services.metadata import ScoreMetadata
from omr_worker.services.rendering import RenderedImage


class ServiceAvailability(CamelModel):
    """Whether each external engine is installed and executable."""

    omr_engine: bool
    render_engine: bool


class HealthResponse(CamelModel):
    status: str
    timestamp: str
    service_availability: ServiceAvailability


class ScoreMetadataResponse(CamelModel):
    title: str
    composer: str
    instrument: str
    clef: str
    key_signature: str
    time_signature: str
    measure_count: int
    tempo: int | None = None
    style: str | None = None

    @classmethod
    def from_metadata(cls, metadata: ScoreMetadata) -> ScoreMetadataResponse:
        return cls(
            title=metadata.title,
            composer=metadata.composer,
            instrument=metadata.instrument,
            clef=metadata.clef,
            key_signature=metadata.key_signature,
            time_signature=metadata.time_signature,
            measure_count=metadata.measure_count,
            tempo=metadata.tempo,
            style=metadata.style,
        )


class MeasureGroupImage(CamelModel):
    """Preview image for one measure group (base64 PNG)."""

    group_number: int
    start_measure: int
    end_measure: int
    image_data: str

    @classmethod
    def from_image(cls, image: RenderedImage) -> MeasureGroupImage:
        return cls(
            group_number=image.group.number,
            start_measure=image.start_measure,
            end_measure=image.end_measure,
            image_data=image.image_data,
        )


class ProcessScoreResponse(CamelModel):
    """Successful processing result."""

    success: Literal[True] = True
    score_id: str
    session_id: str
    notation_document: str
    metadata: ScoreMetadataResponse
    measure_groups: list[MeasureGroupImage]

    @classmethod
    def from_result(cls, result: ProcessingResult) -> ProcessScoreResponse:
        if result.metadata is None or result.notation_document is None:
            raise ValueError("Cannot build a success response from a failed result")
        return cls(
            score_id=result.score_id,
            session_id=result.session_id,
            notation_document=result.notation_document,
            metadata=ScoreMetadataResponse.from_metadata(result.metadata),
            measure_groups=[MeasureGroupImage.from_image(img) for img in result.images],
        )


class ProcessScoreError(CamelModel):
    """Failed processing result (HTTP 500)."""

    success: Literal[False] = False
    error: str
    score_id: str
    session_id: str | None = None
