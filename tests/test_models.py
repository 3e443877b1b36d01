"""Tests for the camelCase wire models."""
from __future__ import annotations

from omr_worker.models.requests import ProcessScoreRequest
from omr_worker.models.responses import MeasureGroupImage, ScoreMetadataResponse
from omr_worker.services.metadata import default_metadata


def test_request_accepts_camel_case() -> None:
    body = ProcessScoreRequest.model_validate(
        {"scoreId": "s1", "fileData": "AAAA", "fileType": "pdf", "fileName": "a.pdf"}
    )
    assert (body.score_id, body.file_data, body.file_type, body.file_name) == (
        "s1",
        "AAAA",
        "pdf",
        "a.pdf",
    )


def test_request_accepts_snake_case() -> None:
    body = ProcessScoreRequest(score_id="s1", file_data="AAAA", file_type="png")
    assert body.file_name is None


def test_metadata_serializes_camel_case() -> None:
    dumped = ScoreMetadataResponse.from_metadata(default_metadata(3)).model_dump(by_alias=True)
    assert dumped == {
        "title": "Untitled",
        "composer": "Unknown",
        "instrument": "Piano",
        "clef": "treble",
        "keySignature": "C major",
        "timeSignature": "4/4",
        "measureCount": 3,
        "tempo": 120,
        "style": "Classical",
    }


def test_measure_group_serializes_camel_case() -> None:
    image = MeasureGroupImage(group_number=2, start_measure=3, end_measure=4, image_data="eA==")
    assert image.model_dump(by_alias=True) == {
        "groupNumber": 2,
        "startMeasure": 3,
        "endMeasure": 4,
        "imageData": "eA==",
    }
